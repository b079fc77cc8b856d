"""FastAPI lifespan helpers for the Scenario Run API."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.routing import Lifespan
from sqlalchemy.engine import make_url

from simrun_api.common.logging import log_context
from simrun_api.common.time import utc_now
from simrun_api.db import Database, DatabaseConfig
from simrun_api.features.catalog import CatalogListeners, CatalogService
from simrun_api.features.runs import RunListeners
from simrun_api.features.runs.cleanup import RunCleanup
from simrun_api.features.runs.ingestion import AdxDataWarehouseClient, DataWarehouseClient
from simrun_api.features.runs.repository import RunStore
from simrun_api.features.runs.workflow import ArgoWorkflowClient, WorkflowClient
from simrun_api.features.store import DocumentStore
from simrun_api.infra.events import EventBus
from simrun_api.settings import Settings

logger = logging.getLogger(__name__)


def create_application_lifespan(
    *,
    settings: Settings,
    workflow_client: WorkflowClient | None = None,
    data_warehouse_client: DataWarehouseClient | None = None,
) -> Lifespan[FastAPI]:
    """Return the lifespan that owns the database, the event bus and the HTTP clients."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.settings = settings
        app.state.started_at = utc_now()
        logger.info(
            "simrun_api.startup",
            extra=log_context(
                logging_level=settings.logging_level,
                version=settings.app_version,
            ),
        )

        safe_url = make_url(str(settings.database_url)).render_as_string(hide_password=True)
        logger.info("db.init.start", extra={"database_url": safe_url})
        database = Database()
        database.init(DatabaseConfig.from_settings(settings))
        await database.create_schema()
        logger.info("db.init.complete", extra={"database_url": safe_url})

        store = DocumentStore(database.sessionmaker)
        bus = EventBus()
        workflow = workflow_client or ArgoWorkflowClient(settings)
        data_warehouse = data_warehouse_client or AdxDataWarehouseClient(settings)
        run_store = RunStore(store)

        CatalogListeners(
            catalog=CatalogService(store=store, bus=bus), store=store, bus=bus
        ).register()
        RunListeners(
            run_store=run_store,
            cleanup=RunCleanup(run_store=run_store, data_warehouse=data_warehouse),
            bus=bus,
        ).register()

        app.state.database = database
        app.state.document_store = store
        app.state.event_bus = bus
        app.state.workflow_client = workflow
        app.state.data_warehouse_client = data_warehouse

        try:
            yield
        finally:
            if bus.pending:
                logger.info("events.drain.start", extra={"pending": bus.pending})
            await bus.drain()
            await database.dispose()
            logger.info("simrun_api.shutdown")

    return lifespan


__all__ = ["create_application_lifespan"]
