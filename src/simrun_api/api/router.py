"""Assemble the API routers."""

from __future__ import annotations

from fastapi import APIRouter

from simrun_api.features.catalog.router import router as catalog_router
from simrun_api.features.runs.router import router as runs_router
from simrun_api.settings import Settings


def api_prefix(settings: Settings) -> str:
    """``/<api_base_path>/<api_version>``, skipping empty segments."""

    segments = [segment for segment in (settings.api_base_path, settings.api_version) if segment]
    return "/" + "/".join(segments) if segments else ""


def create_api_router() -> APIRouter:
    router = APIRouter()
    router.include_router(catalog_router)
    router.include_router(runs_router)

    @router.get("/health", tags=["health"], summary="Liveness check")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return router


__all__ = ["api_prefix", "create_api_router"]
