from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from simrun_api.main import create_app
from simrun_api.settings import Settings
from tests.helpers import FakeDataWarehouseClient, FakeWorkflowClient


@pytest.fixture()
def workflow_client() -> FakeWorkflowClient:
    return FakeWorkflowClient()


@pytest.fixture()
def data_warehouse_client() -> FakeDataWarehouseClient:
    return FakeDataWarehouseClient()


@pytest_asyncio.fixture()
async def app(
    settings: Settings,
    workflow_client: FakeWorkflowClient,
    data_warehouse_client: FakeDataWarehouseClient,
) -> AsyncIterator[FastAPI]:
    application = create_app(
        settings,
        workflow_client=workflow_client,
        data_warehouse_client=data_warehouse_client,
    )
    async with LifespanManager(application):
        yield application


@pytest_asyncio.fixture()
async def async_client(app: FastAPI, settings: Settings) -> AsyncIterator[AsyncClient]:
    """Client authenticated as ``alice`` through the identity header."""

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://testserver",
        headers={settings.principal_header: "alice"},
    ) as client:
        yield client
