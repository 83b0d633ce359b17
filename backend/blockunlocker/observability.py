"""Logfire cloud observability initialization and instrumentation."""

import logging

import logfire

from blockunlocker import __version__
from blockunlocker.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings) -> None:
    """
    Initialize Logfire tracing for the unlocker.

    Must be called ONCE at application startup, before the scheduler starts.

    Instruments:
    - HTTPX clients (chain node JSON-RPC)
    - Python logging (bridges to Logfire)

    Sweeps are recorded as ``unlocker.sweep`` spans.
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="blockunlocker",
            service_version=__version__,
        )

        logfire.instrument_httpx()

        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("✓ Logfire cloud tracking initialized")

    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")
