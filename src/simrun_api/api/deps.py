"""Service factories used by API routers.

Long-lived collaborators (document store, event bus, HTTP clients) are built
by the lifespan and kept on ``app.state``; services are assembled per request.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from simrun_api.features.catalog.service import CatalogService
from simrun_api.features.runs.cleanup import RunCleanup
from simrun_api.features.runs.ingestion import DataWarehouseClient, IngestionMonitor
from simrun_api.features.runs.pipeline import PipelineBuilder
from simrun_api.features.runs.reconciler import RunStateReconciler
from simrun_api.features.runs.repository import RunStore
from simrun_api.features.runs.service import ScenarioRunsService
from simrun_api.features.runs.workflow import WorkflowClient
from simrun_api.features.store import DocumentStore
from simrun_api.infra.events import EventBus
from simrun_api.settings import Settings, get_settings

SettingsDep = Annotated[Settings, Depends(get_settings)]


def get_document_store(request: Request) -> DocumentStore:
    return request.app.state.document_store


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.event_bus


def get_workflow_client(request: Request) -> WorkflowClient:
    return request.app.state.workflow_client


def get_data_warehouse_client(request: Request) -> DataWarehouseClient:
    return request.app.state.data_warehouse_client


DocumentStoreDep = Annotated[DocumentStore, Depends(get_document_store)]
EventBusDep = Annotated[EventBus, Depends(get_event_bus)]
WorkflowClientDep = Annotated[WorkflowClient, Depends(get_workflow_client)]
DataWarehouseClientDep = Annotated[DataWarehouseClient, Depends(get_data_warehouse_client)]


def get_catalog_service(store: DocumentStoreDep, bus: EventBusDep) -> CatalogService:
    return CatalogService(store=store, bus=bus)


def get_runs_service(
    settings: SettingsDep,
    store: DocumentStoreDep,
    bus: EventBusDep,
    workflow: WorkflowClientDep,
    data_warehouse: DataWarehouseClientDep,
    catalog: Annotated[CatalogService, Depends(get_catalog_service)],
) -> ScenarioRunsService:
    run_store = RunStore(store)
    return ScenarioRunsService(
        catalog=catalog,
        run_store=run_store,
        builder=PipelineBuilder(settings),
        workflow=workflow,
        reconciler=RunStateReconciler(
            settings=settings,
            run_store=run_store,
            workflow=workflow,
            monitor=IngestionMonitor(settings, data_warehouse),
        ),
        cleanup=RunCleanup(run_store=run_store, data_warehouse=data_warehouse),
        bus=bus,
    )


__all__ = [
    "DataWarehouseClientDep",
    "DocumentStoreDep",
    "EventBusDep",
    "SettingsDep",
    "WorkflowClientDep",
    "get_catalog_service",
    "get_data_warehouse_client",
    "get_document_store",
    "get_event_bus",
    "get_runs_service",
    "get_workflow_client",
]
