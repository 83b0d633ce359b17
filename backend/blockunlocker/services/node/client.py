from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import httpx

from .config import NodeConfig
from .exceptions import NodeAPIError, NodeResponseError, NodeUnavailableError
from .models import ChainBlock, ChainInfo

logger = logging.getLogger(__name__)


class ChainClient(Protocol):
    """Chain queries the unlocker depends on."""

    async def get_chain_height(self) -> int: ...

    async def get_block_by_hash(self, block_hash: str) -> ChainBlock | None: ...


class NodeClient:
    """JSON-RPC client for a DERO-style daemon."""

    def __init__(
        self,
        config: NodeConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or NodeConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._request_id = 0

        logger.info(f"Initialized NodeClient (url={self.config.url})")

    async def __aenter__(self) -> NodeClient:
        limits = httpx.Limits(
            max_connections=self.config.max_connections,
            max_keepalive_connections=self.config.max_keepalive_connections,
        )
        self._client = httpx.AsyncClient(
            timeout=self.config.timeout_seconds,
            limits=limits,
            transport=self._transport,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: Any,
    ) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.debug("Closed NodeClient")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("NodeClient must be used as async context manager")
        return self._client

    async def _call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send one JSON-RPC request, retrying timeouts and server errors.

        Returns the raw reply envelope; callers inspect ``result``/``error``.
        """
        self._request_id += 1
        payload: dict[str, Any] = {
            "jsonrpc": "2.0",
            "id": str(self._request_id),
            "method": method,
        }
        if params is not None:
            payload["params"] = params

        retry_count = 0
        last_error: Exception | None = None

        while retry_count < self.config.max_retries:
            try:
                response = await self.client.post(self.config.url, json=payload)

                if response.status_code >= 500:
                    last_error = NodeUnavailableError(
                        f"Node returned {response.status_code}",
                        status_code=response.status_code,
                    )
                    retry_count += 1
                    if retry_count < self.config.max_retries:
                        wait_time = 2 ** retry_count
                        logger.warning(
                            f"Node error {response.status_code}, "
                            f"retrying in {wait_time}s..."
                        )
                        await asyncio.sleep(wait_time)
                    continue

                if response.status_code != 200:
                    raise NodeAPIError(
                        f"Node rejected {method}: HTTP {response.status_code}",
                        status_code=response.status_code,
                    )

                try:
                    data = response.json()
                except ValueError as e:
                    raise NodeResponseError(f"Malformed {method} reply: {e}") from e

                if not isinstance(data, dict):
                    raise NodeResponseError(f"Malformed {method} reply: {data!r}")
                return data

            except (httpx.TimeoutException, httpx.ConnectError) as e:
                last_error = e
                retry_count += 1
                if retry_count < self.config.max_retries:
                    wait_time = 2 ** retry_count
                    logger.warning(f"Node unreachable ({e}), retrying in {wait_time}s...")
                    await asyncio.sleep(wait_time)

            except httpx.RequestError as e:
                raise NodeUnavailableError(f"Network error calling {method}: {e}") from e

        raise NodeUnavailableError(
            f"{method} failed after {retry_count} attempts: {last_error}"
        )

    async def get_info(self) -> ChainInfo:
        data = await self._call("get_info")
        result = data.get("result")
        if data.get("error") or not isinstance(result, dict):
            raise NodeResponseError(f"get_info returned no result: {data.get('error')}")
        try:
            return ChainInfo.from_api(result)
        except (KeyError, ValueError) as e:
            raise NodeResponseError(f"Malformed get_info result: {e}") from e

    async def get_chain_height(self) -> int:
        info = await self.get_info()
        return info.height

    async def get_block_by_hash(self, block_hash: str) -> ChainBlock | None:
        """Fetch a block header, or None if the node does not know the hash."""
        data = await self._call("getblockheaderbyhash", {"hash": block_hash})

        error = data.get("error")
        if error:
            if _is_block_not_found(error):
                logger.warning(f"Node has no block {block_hash}: {error}")
                return None
            raise NodeAPIError(f"getblockheaderbyhash failed for {block_hash}: {error}")

        result = data.get("result")
        if not isinstance(result, dict):
            raise NodeResponseError(f"getblockheaderbyhash returned no result for {block_hash}")

        header = result.get("block_header")
        if not header:
            return None
        try:
            return ChainBlock.from_api(header)
        except (KeyError, ValueError) as e:
            raise NodeResponseError(f"Malformed block header for {block_hash}: {e}") from e


def _is_block_not_found(error: object) -> bool:
    """True for the node's "block not found" reply, the only error meaning absent."""
    message = error.get("message", "") if isinstance(error, dict) else str(error)
    return "not found" in str(message).lower()
