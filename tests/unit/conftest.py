"""Fixtures for unit tests."""

from pathlib import Path
from typing import AsyncGenerator, Generator

import pytest
import pytest_asyncio
import structlog
from cryptography.fernet import Fernet

from mo_linear.commands.router import CommandRouter
from mo_linear.config import Settings
from mo_linear.linear.abc import LinearClientBase
from mo_linear.services import Services
from mo_linear.store.json_store import JsonTaskStore
from tests.unit.fakes import FakeLinearClient

TEST_API_KEY = "lin_api_test_key"


@pytest.fixture(autouse=True)
def configure_structlog_for_caplog() -> Generator[None, None, None]:
    """Configure structlog for use with caplog."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    yield
    structlog.reset_defaults()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Directory for the store's JSON documents."""
    return tmp_path / "data"


@pytest.fixture
def store(data_dir: Path) -> JsonTaskStore:
    """An empty task store."""
    return JsonTaskStore(data_dir)


@pytest.fixture
def fake_client() -> FakeLinearClient:
    """An in-memory Linear API with the Engineering team."""
    return FakeLinearClient()


@pytest.fixture
def settings(data_dir: Path) -> Settings:
    """Settings isolated from the real environment."""
    return Settings(
        _env_file=None,
        MO_DATA_DIR=data_dir,
        LINEAR_API_KEY=None,
        LINEAR_TEAM_ID=None,
        MO_ENABLE_WEBHOOKS=False,
        HEARTBEAT_INTERVAL=0,
    )


@pytest.fixture
def services(settings: Settings, fake_client: FakeLinearClient) -> Services:
    """Services whose Linear client factory always returns the fake client."""

    async def factory(api_key: str) -> LinearClientBase:
        return fake_client

    return Services.create(settings, client_factory=factory, encryption_key=Fernet.generate_key())


@pytest_asyncio.fixture
async def authenticated_services(services: Services) -> AsyncGenerator[Services, None]:
    """Services with a stored credential and Engineering as the default team."""
    await services.credentials.authenticate(TEST_API_KEY, "team-eng")
    yield services
    await services.close()


@pytest.fixture
def router(services: Services) -> CommandRouter:
    """Router with every command registered, not authenticated."""
    return services.build_router()


@pytest.fixture
def authenticated_router(authenticated_services: Services) -> CommandRouter:
    """Router with every command registered and a stored credential."""
    return authenticated_services.build_router()
