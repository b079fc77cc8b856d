from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio

from simrun_api.db import Database, DatabaseConfig
from simrun_api.features.store import DocumentStore
from simrun_api.settings import Settings


def pytest_collection_modifyitems(config, items) -> None:
    for item in items:
        path = Path(str(item.fspath))
        path_str = str(path)
        if "/tests/integration/" in path_str:
            item.add_marker(pytest.mark.integration)
        elif "/tests/unit/" in path_str:
            item.add_marker(pytest.mark.unit)


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a throwaway SQLite file and fake service endpoints."""

    database_path = tmp_path / "db" / "simrun.sqlite"
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{database_path.as_posix()}",
        api_base_url="http://api.test",
        azure_tenant_id="tenant-1",
        azure_client_id="client-1",
        azure_client_secret="client-secret",
        storage_connection_string="storage-connection",
        core_registry="core.registry.test",
        solutions_registry="solutions.registry.test",
        event_bus_base_uri="amqps://bus.test",
        data_warehouse_base_uri="http://warehouse.test",
        data_warehouse_ingestion_uri="http://ingest.warehouse.test",
        workflow_base_uri="http://workflows.test",
        workflow_image_pull_secrets=["regcred"],
    )


@pytest_asyncio.fixture()
async def database(settings: Settings):
    database = Database()
    database.init(DatabaseConfig.from_settings(settings))
    await database.create_schema()
    try:
        yield database
    finally:
        await database.dispose()


@pytest_asyncio.fixture()
async def store(database: Database) -> DocumentStore:
    return DocumentStore(database.sessionmaker)
