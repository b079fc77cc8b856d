"""Scenario Run API application entry point."""

from __future__ import annotations

import logging

from fastapi import FastAPI

from .api.router import api_prefix, create_api_router
from .app.lifecycles import create_application_lifespan
from .common.exceptions import register_exception_handlers
from .common.logging import setup_logging
from .common.middleware import register_middleware
from .features.runs.ingestion import DataWarehouseClient
from .features.runs.workflow import WorkflowClient
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    workflow_client: WorkflowClient | None = None,
    data_warehouse_client: DataWarehouseClient | None = None,
) -> FastAPI:
    """Create and configure the Scenario Run FastAPI application.

    ``workflow_client`` and ``data_warehouse_client`` replace the HTTP clients
    built from settings (tests pass in-process fakes).
    """
    # Settings + logging first so everything else uses the configured root logger.
    explicit_settings = settings is not None
    settings = settings or get_settings()
    setup_logging(settings)

    lifespan = create_application_lifespan(
        settings=settings,
        workflow_client=workflow_client,
        data_warehouse_client=data_warehouse_client,
    )

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url=settings.docs_url if settings.api_docs_enabled else None,
        redoc_url=None,
        openapi_url=settings.openapi_url if settings.api_docs_enabled else None,
        debug=False,
        lifespan=lifespan,
    )
    if explicit_settings:
        app.dependency_overrides[get_settings] = lambda: settings

    register_exception_handlers(app)
    register_middleware(app)
    app.include_router(create_api_router(), prefix=api_prefix(settings))

    if settings.api_docs_enabled:
        logger.info(
            "api.docs.enabled",
            extra={"swagger_url": settings.docs_url, "openapi_url": settings.openapi_url},
        )
    return app


__all__ = ["create_app"]
