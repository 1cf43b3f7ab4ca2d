"""Shared fixtures: a per-test SQLite database and tenants."""

import pytest
import pytest_asyncio

from entityforge.engine.data import DataEngine
from entityforge.engine.entities import EntityEngine
from entityforge.metadata.store import EntityMetadataStore, TenantStore
from entityforge.persistence.config import DatabaseConfig, create_database


@pytest_asyncio.fixture
async def db(tmp_path):
    """Connected database with metadata tables, removed after the test."""
    database = create_database(DatabaseConfig(url=f"sqlite:///{tmp_path / 'test.db'}"))
    await database.connect()
    await EntityMetadataStore(database).create_all()
    yield database
    await database.close()


@pytest_asyncio.fixture
async def tenant(db):
    return (await TenantStore(db).get_or_create("org_acme", "Acme")).id


@pytest_asyncio.fixture
async def other_tenant(db):
    return (await TenantStore(db).get_or_create("org_globex", "Globex")).id


@pytest.fixture
def entity_engine(db):
    return EntityEngine(db)


@pytest.fixture
def data_engine(db):
    return DataEngine(db)


@pytest.fixture
def customers_input():
    return {
        "name": "customers",
        "label": "Customer",
        "pluralLabel": "Customers",
        "fields": [
            {"name": "name", "type": "text", "required": True},
            {"name": "email", "type": "email", "required": True, "unique": True},
        ],
    }
