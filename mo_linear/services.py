"""Contains the composition root wiring the store, credentials and sync engine together."""

from dataclasses import dataclass
from typing import Self

import httpx
import structlog

from mo_linear.auth.credentials import ClientFactory, CredentialManager
from mo_linear.commands import ALL_COMMANDS
from mo_linear.commands.router import CommandRouter
from mo_linear.config import Settings
from mo_linear.linear.abc import LinearClientBase
from mo_linear.linear.adapter import LinearGraphQLAdapter
from mo_linear.store.json_store import JsonTaskStore
from mo_linear.synchronize.engine import SyncEngine

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


def linear_client_factory(settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> ClientFactory:
    """Build a factory creating GraphQL adapters configured from settings."""

    async def factory(api_key: str) -> LinearClientBase:
        return await LinearGraphQLAdapter.create(
            api_key=api_key,
            api_url=settings.LINEAR_API_URL,
            timeout=settings.LINEAR_REQUEST_TIMEOUT,
            max_retries=settings.LINEAR_MAX_RETRIES,
            transport=transport,
        )

    return factory


@dataclass
class Services:
    """Shared collaborators handed to every command handler and the webhook listener."""

    settings: Settings
    store: JsonTaskStore
    credentials: CredentialManager
    engine: SyncEngine

    @classmethod
    def create(
        cls,
        settings: Settings,
        client_factory: ClientFactory | None = None,
        encryption_key: bytes | None = None,
    ) -> Self:
        """Create the services for the given settings.

        Args:
            settings: Application settings
            client_factory: Builds a Linear client from an API key; defaults to
                the GraphQL adapter
            encryption_key: Fernet key for the stored credential; derived from
                the machine identity when omitted
        """
        store = JsonTaskStore(settings.MO_DATA_DIR)
        credentials = CredentialManager(
            store,
            client_factory or linear_client_factory(settings),
            env_api_key=settings.LINEAR_API_KEY,
            env_team_id=settings.LINEAR_TEAM_ID,
            encryption_key=encryption_key,
        )
        engine = SyncEngine(store, credentials.get_client, credentials.get_default_team_id)
        logger.info("Services created", data_dir=str(settings.MO_DATA_DIR))
        return cls(settings=settings, store=store, credentials=credentials, engine=engine)

    def build_router(self) -> CommandRouter:
        """Create a router with every command registered."""
        router = CommandRouter(self, namespace=self.settings.MO_NAMESPACE)
        router.register_all(ALL_COMMANDS)
        return router

    async def close(self) -> None:
        """Release the Linear client."""
        await self.credentials.close()
