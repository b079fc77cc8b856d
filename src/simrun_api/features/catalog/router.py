"""FastAPI router for the catalog entities runs are built from."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Response, status

from simrun_api.api.deps import get_catalog_service
from simrun_api.core.auth import get_current_principal
from simrun_api.features.store import DocumentConflictError, EntityNotFoundError

from .schemas import Connector, Dataset, Organization, Scenario, Solution, Workspace
from .service import CatalogService

router = APIRouter(tags=["catalog"], dependencies=[Depends(get_current_principal)])

OrganizationPath = Annotated[str, Path(description="Organization identifier", alias="organizationId")]
WorkspacePath = Annotated[str, Path(description="Workspace identifier", alias="workspaceId")]
CatalogServiceDep = Annotated[CatalogService, Depends(get_catalog_service)]


# ---- Organizations ---------------------------------------------------------


@router.post(
    "/organizations",
    response_model=Organization,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    summary="Register an organization",
)
async def register_organization_endpoint(
    payload: Annotated[Organization, Body()],
    service: CatalogServiceDep,
) -> Organization:
    try:
        return await service.register_organization(payload)
    except DocumentConflictError as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, detail=str(exc)) from exc


@router.get(
    "/organizations/{organizationId}",
    response_model=Organization,
    response_model_exclude_none=True,
    summary="Get an organization",
)
async def get_organization_endpoint(
    organization_id: OrganizationPath,
    service: CatalogServiceDep,
) -> Organization:
    try:
        return await service.get_organization(organization_id)
    except EntityNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.delete(
    "/organizations/{organizationId}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Unregister an organization",
)
async def unregister_organization_endpoint(
    organization_id: OrganizationPath,
    service: CatalogServiceDep,
) -> Response:
    try:
        await service.unregister_organization(organization_id)
    except EntityNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---- Connectors ------------------------------------------------------------


@router.put(
    "/connectors/{connectorId}",
    response_model=Connector,
    response_model_exclude_none=True,
    summary="Create or replace a connector",
)
async def save_connector_endpoint(
    connector_id: Annotated[str, Path(alias="connectorId")],
    payload: Annotated[Connector, Body()],
    service: CatalogServiceDep,
) -> Connector:
    return await service.save_connector(payload.model_copy(update={"id": connector_id}))


@router.delete(
    "/connectors/{connectorId}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Remove a connector and detach it from every dataset",
)
async def remove_connector_endpoint(
    connector_id: Annotated[str, Path(alias="connectorId")],
    service: CatalogServiceDep,
) -> Response:
    try:
        await service.remove_connector(connector_id)
    except EntityNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---- Organization-scoped entities ------------------------------------------


@router.put(
    "/organizations/{organizationId}/datasets/{datasetId}",
    response_model=Dataset,
    response_model_exclude_none=True,
    summary="Create or replace a dataset",
)
async def save_dataset_endpoint(
    organization_id: OrganizationPath,
    dataset_id: Annotated[str, Path(alias="datasetId")],
    payload: Annotated[Dataset, Body()],
    service: CatalogServiceDep,
) -> Dataset:
    return await service.save_dataset(
        organization_id, payload.model_copy(update={"id": dataset_id})
    )


@router.get(
    "/organizations/{organizationId}/datasets/{datasetId}",
    response_model=Dataset,
    response_model_exclude_none=True,
    summary="Get a dataset",
)
async def get_dataset_endpoint(
    organization_id: OrganizationPath,
    dataset_id: Annotated[str, Path(alias="datasetId")],
    service: CatalogServiceDep,
) -> Dataset:
    try:
        return await service.get_dataset(organization_id, dataset_id)
    except EntityNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.put(
    "/organizations/{organizationId}/solutions/{solutionId}",
    response_model=Solution,
    response_model_exclude_none=True,
    summary="Create or replace a solution",
)
async def save_solution_endpoint(
    organization_id: OrganizationPath,
    solution_id: Annotated[str, Path(alias="solutionId")],
    payload: Annotated[Solution, Body()],
    service: CatalogServiceDep,
) -> Solution:
    return await service.save_solution(
        organization_id, payload.model_copy(update={"id": solution_id})
    )


@router.put(
    "/organizations/{organizationId}/workspaces/{workspaceId}",
    response_model=Workspace,
    response_model_exclude_none=True,
    summary="Create or replace a workspace",
)
async def save_workspace_endpoint(
    organization_id: OrganizationPath,
    workspace_id: WorkspacePath,
    payload: Annotated[Workspace, Body()],
    service: CatalogServiceDep,
) -> Workspace:
    return await service.save_workspace(
        organization_id, payload.model_copy(update={"id": workspace_id})
    )


@router.put(
    "/organizations/{organizationId}/workspaces/{workspaceId}/scenarios/{scenarioId}",
    response_model=Scenario,
    response_model_exclude_none=True,
    summary="Create or replace a scenario",
)
async def save_scenario_endpoint(
    organization_id: OrganizationPath,
    workspace_id: WorkspacePath,
    scenario_id: Annotated[str, Path(alias="scenarioId")],
    payload: Annotated[Scenario, Body()],
    service: CatalogServiceDep,
) -> Scenario:
    scenario = payload.model_copy(update={"id": scenario_id, "workspace_id": workspace_id})
    return await service.save_scenario(organization_id, workspace_id, scenario)


@router.delete(
    "/organizations/{organizationId}/workspaces/{workspaceId}/scenarios/{scenarioId}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Delete a scenario and, in the background, all of its runs",
)
async def delete_scenario_endpoint(
    organization_id: OrganizationPath,
    workspace_id: WorkspacePath,
    scenario_id: Annotated[str, Path(alias="scenarioId")],
    service: CatalogServiceDep,
) -> Response:
    try:
        await service.delete_scenario(organization_id, workspace_id, scenario_id)
    except EntityNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]
