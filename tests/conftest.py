import logging
import os

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from fakes import FIXTURE_CONFIG, GATEWAY, NODE, FakeNetwork

# Set test environment variables before imports
os.environ['CONFIG_PATH'] = FIXTURE_CONFIG
os.environ['ENV_FILE'] = os.path.join(os.path.dirname(__file__), "fixtures", "missing.env")

from core.environment.config import load_settings  # noqa: E402
from eventpool.connection import ConnectionManager  # noqa: E402
from eventpool.gateway import GatewayResolver  # noqa: E402


@pytest.fixture
def logger():
    return logging.getLogger("eventpool_client.tests")


@pytest.fixture
def network():
    return FakeNetwork()


@pytest.fixture
def settings():
    return load_settings(FIXTURE_CONFIG)


@pytest.fixture
def manager(network, logger):
    resolver = GatewayResolver(logger=logger, channel_factory=network)
    return ConnectionManager(resolver=resolver, logger=logger, channel_factory=network, dial_timeout=0)


@pytest_asyncio.fixture
async def connection(manager):
    """
    Open connection to the fake node, closed after the test.

    Parameters
    ----------
    manager : ConnectionManager
        Manager wired to the fake network

    Yields
    ------
    Connection
        Connection dialed directly to ``NODE``
    """
    conn = await manager.establish(GATEWAY, "137", use_gateway=False, fallback_address=NODE)
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def client(settings, network):
    """
    Fixture for async test client on a fake gRPC network.

    Parameters
    ----------
    settings : Settings
        Settings loaded from the fixture config
    network : FakeNetwork
        Fake gRPC network

    Yields
    ------
    AsyncClient
        Async HTTP client for testing
    """
    from core.container import build_container
    from main import create_app

    app_container = build_container(settings=settings, channel_factory=network)
    app = create_app(app_container)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await app_container.close()
