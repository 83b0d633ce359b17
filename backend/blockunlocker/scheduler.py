"""Sweep scheduler using APScheduler."""

import asyncio
import logging
import signal
from datetime import datetime

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from blockunlocker.config import Settings
from blockunlocker.engine import run_unlocker
from blockunlocker.guard import HaltGuard

logger = logging.getLogger(__name__)


def create_guard(settings: Settings) -> HaltGuard:
    return HaltGuard(
        state_path=settings.state_path,
        max_transient_failures=settings.unlocker.max_transient_failures,
    )


def unlocker_job(settings: Settings, guard: HaltGuard) -> None:
    """Scheduler job wrapper for one unlocker tick."""
    try:
        asyncio.run(run_unlocker(settings, guard))
    except Exception as exc:
        logger.error(f"Unlocker tick failed: {exc}", exc_info=True)


def _raise_exit(signum: int, frame: object) -> None:
    raise SystemExit(0)


def create_scheduler(settings: Settings, guard: HaltGuard) -> BlockingScheduler:
    """Register the unlocker job: first run immediately, then every interval."""
    scheduler = BlockingScheduler()

    # max_instances=1 keeps ticks from overlapping; a late tick is coalesced
    scheduler.add_job(
        unlocker_job,
        IntervalTrigger(seconds=settings.unlocker.interval_seconds),
        args=[settings, guard],
        id="block-unlocker",
        name="Block Unlocker: Confirm & Credit",
        next_run_time=datetime.now(),
        max_instances=1,
        coalesce=True,
    )
    return scheduler


def start_scheduler(settings: Settings, guard: HaltGuard | None = None) -> None:
    """Run the unlocker now and then on every interval until interrupted."""
    guard = guard or create_guard(settings)
    scheduler = create_scheduler(settings, guard)
    logger.info(
        f"Set block unlock interval to {settings.unlocker.interval_seconds}s "
        f"(depth={settings.unlocker.depth}, pool_fee={settings.unlocker.pool_fee}%)"
    )

    signal.signal(signal.SIGTERM, _raise_exit)

    try:
        logger.info("Starting block unlocker")
        logger.info("Press Ctrl+C to stop\n")

        scheduler.start()

    except (KeyboardInterrupt, SystemExit):
        logger.info("\nReceived interrupt signal")
        scheduler.shutdown(wait=False)
        logger.info("✓ Scheduler stopped cleanly")
