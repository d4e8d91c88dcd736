"""
Connection provider.

One ConnectionManager is created at process start and passed to every
component that talks to the network. It owns exactly one ledger RPC client
and one pooled aiohttp session for the lifetime of the run.
"""

import asyncio
import logging
from types import SimpleNamespace
from typing import Optional

import aiohttp
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment

from .config import HttpSettings, SolanaRPCSettings
from .exceptions import InitializationError
from .models import NOT_AVAILABLE

logger = logging.getLogger(__name__)


async def _log_response(
    session: aiohttp.ClientSession,
    context: SimpleNamespace,
    params: aiohttp.TraceRequestEndParams,
) -> None:
    request_id = params.response.headers.get("x-request-id", NOT_AVAILABLE)
    logger.debug(
        f"HTTP Response: {params.response.status} {params.method} {params.url.path} "
        f"- x-request-id: {request_id}"
    )


class ConnectionManager:
    """
    Shared ledger and HTTP handles.

    Example:
        async with ConnectionManager(settings.solana, settings.http) as connections:
            rpc = connections.get_ledger_client()
            session = connections.get_http_session()
    """

    def __init__(
        self,
        solana_settings: Optional[SolanaRPCSettings] = None,
        http_settings: Optional[HttpSettings] = None,
    ):
        self.solana_settings = solana_settings or SolanaRPCSettings()
        self.http_settings = http_settings or HttpSettings()

        self._ledger: Optional[AsyncClient] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._closed = False

    async def __aenter__(self) -> "ConnectionManager":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def open(self) -> "ConnectionManager":
        """Build both handles eagerly; a failure here is fatal for the run."""
        try:
            self.get_ledger_client()
            self.get_http_session()
        except (ValueError, TypeError, RuntimeError, aiohttp.ClientError) as e:
            raise InitializationError(f"Failed to initialize connections: {e}") from e
        logger.info(f"Connections ready (rpc={self.solana_settings.url})")
        return self

    def get_ledger_client(self) -> AsyncClient:
        if self._closed:
            raise InitializationError("ConnectionManager is closed")
        if self._ledger is None:
            self._ledger = AsyncClient(
                self.solana_settings.url,
                commitment=Commitment(self.solana_settings.commitment),
                timeout=self.solana_settings.timeout,
            )
        return self._ledger

    def get_http_session(self) -> aiohttp.ClientSession:
        if self._closed:
            raise InitializationError("ConnectionManager is closed")
        if self._session is None:
            cfg = self.http_settings
            connector = aiohttp.TCPConnector(
                limit=cfg.max_connections,
                limit_per_host=cfg.max_connections_per_host,
                keepalive_timeout=cfg.keepalive_timeout,
                enable_cleanup_closed=True,
            )
            trace_config = aiohttp.TraceConfig()
            trace_config.on_request_end.append(_log_response)
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=cfg.timeout),
                headers={"Connection": "keep-alive"},
                trace_configs=[trace_config],
            )
        return self._session

    async def health_check(self) -> bool:
        """Read the current slot; report success without raising."""
        try:
            response = await self.get_ledger_client().get_slot()
            logger.debug(f"Health check ok, slot={response.value}")
            return True
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return False

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.info("Shutting down connections...")

        if self._session is not None and not self._session.closed:
            await self._session.close()
            # Wait for graceful close
            await asyncio.sleep(0.25)

        if self._ledger is not None:
            await self._ledger.close()

        self._session = None
        self._ledger = None


__all__ = ["ConnectionManager"]
