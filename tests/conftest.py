import os

# Must be set before shared.config.database creates the module-level engine
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("INTERNAL_API_KEY", "test-internal-key")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from shared.config.database import Base
from services.order_service import models as order_models  # noqa: F401  (registers every table)
from tests.factories import make_customer, make_product


@pytest.fixture
async def engine(tmp_path):
    # A file database so separate sessions really are separate connections
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'backoffice.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def customer(db):
    return await make_customer(db)


@pytest.fixture
async def product(db):
    """Stock 5, price 100000.00, with capacity, two colors, a category and images."""
    return await make_product(db, stock=5, with_taxonomy=True)
