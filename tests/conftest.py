import pytest
from testsuite.databases.pgsql import discover

from webhook_service.db.migrations import MIGRATIONS_ROOT
from webhook_service.db.pool import close_pool, get_pool, init_pool
from webhook_service.main import create_app
from webhook_service.settings import settings

pytest_plugins = (
    "testsuite.pytest_plugin",
    "testsuite.databases.pgsql.pytest_plugin",
)

DB_NAME = "webhook_service"


@pytest.fixture(scope="session")
def pgsql_local(pgsql_local_create):
    # migrations/<database>/*.sql is the schema, applied in file order.
    databases = discover.find_schemas(
        service_name=None,
        schema_dirs=[MIGRATIONS_ROOT],
    )
    return pgsql_local_create(list(databases.values()))


@pytest.fixture
def database_url(pgsql):
    url = pgsql[DB_NAME].conninfo.get_uri()
    settings.database_url = url
    return url


@pytest.fixture
async def db_pool(database_url):
    await init_pool()
    yield await get_pool()
    await close_pool()


@pytest.fixture
async def service_client(aiohttp_client, db_pool):
    """Client for the HTTP API, without the dispatcher and maintenance worker."""
    app = create_app(with_background=False)
    return await aiohttp_client(app)
