"""
Shared service instances

All protocol sessions share one store, one API client and one sync service.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from whoop_mcp.integrations.whoop.client import WhoopClient
from whoop_mcp.services.credential_store import CredentialStore
from whoop_mcp.services.whoop_store import WhoopStore
from whoop_mcp.services.whoop_sync import WhoopSyncService
from whoop_mcp.utils.datetime_helper import utc_now

logger = logging.getLogger(__name__)


class WhoopServices:
    """Store, credentials, API client and sync service wired together"""

    def __init__(
        self,
        store: WhoopStore,
        credentials: CredentialStore,
        client: WhoopClient,
        sync: WhoopSyncService,
    ):
        self.store = store
        self.credentials = credentials
        self.client = client
        self.sync = sync

    @classmethod
    def create(
        cls,
        engine: Optional[AsyncEngine] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        secret: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
        **client_options,
    ) -> "WhoopServices":
        """
        Build the service graph

        Args:
            engine: database engine (defaults to the configured one)
            http_client: HTTP client for upstream calls
            secret: encryption secret override
            clock: time source shared by all services
            **client_options: extra WhoopClient arguments (client_id, ...)
        """
        store = WhoopStore(engine, clock=clock)
        credentials = CredentialStore(store, secret=secret)
        client = WhoopClient(
            credential_sink=credentials,
            http_client=http_client,
            clock=clock,
            **client_options,
        )
        sync = WhoopSyncService(client, store, clock=clock)
        return cls(store=store, credentials=credentials, client=client, sync=sync)

    async def load_tokens(self) -> bool:
        """
        Install stored tokens on the client if it has none

        Returns:
            whether the client holds tokens afterwards
        """
        if self.client.tokens is not None:
            return True

        tokens = await self.credentials.load()
        if tokens is None:
            return False

        self.client.set_tokens(tokens)
        logger.info("Loaded stored Whoop tokens")
        return True

    async def close(self):
        await self.client.close()


_services: Optional[WhoopServices] = None


def get_services() -> WhoopServices:
    """Process-wide services (created on first use)"""
    global _services
    if _services is None:
        _services = WhoopServices.create()
        logger.info("Whoop services created")
    return _services


def set_services(services: Optional[WhoopServices]) -> None:
    global _services
    _services = services


async def close_services():
    """Close the process-wide services, if created"""
    global _services
    if _services is None:
        return
    try:
        await _services.close()
    except Exception as e:
        logger.error(f"Failed to close Whoop services: {str(e)}")
    _services = None
