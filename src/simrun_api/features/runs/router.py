"""FastAPI router exposing scenario run APIs."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Response, status
from fastapi.responses import PlainTextResponse

from simrun_api.api.deps import get_runs_service
from simrun_api.core.auth import CurrentPrincipal
from simrun_api.features.store import EntityNotFoundError

from .exceptions import (
    PipelineConfigurationError,
    ScenarioRunAccessForbiddenError,
    ScenarioRunNotFoundError,
    WorkflowServiceError,
)
from .schemas import (
    ScenarioRun,
    ScenarioRunLogs,
    ScenarioRunSearch,
    ScenarioRunStartContainers,
    ScenarioRunStatus,
)
from .service import ScenarioRunsService

router = APIRouter(prefix="/organizations/{organizationId}", tags=["scenarioruns"])

OrganizationPath = Annotated[str, Path(description="Organization identifier", alias="organizationId")]
WorkspacePath = Annotated[str, Path(description="Workspace identifier", alias="workspaceId")]
ScenarioPath = Annotated[str, Path(description="Scenario identifier", alias="scenarioId")]
RunPath = Annotated[str, Path(description="Scenario run identifier", alias="scenariorunId")]
RunsServiceDep = Annotated[ScenarioRunsService, Depends(get_runs_service)]


@router.post(
    "/workspaces/{workspaceId}/scenarios/{scenarioId}/run",
    response_model=ScenarioRun,
    response_model_exclude_none=True,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Run a scenario",
)
async def run_scenario_endpoint(
    organization_id: OrganizationPath,
    workspace_id: WorkspacePath,
    scenario_id: ScenarioPath,
    service: RunsServiceDep,
    principal: CurrentPrincipal,
) -> ScenarioRun:
    """Build the scenario pipeline, submit it and record the run."""

    try:
        return await service.run_scenario(principal, organization_id, workspace_id, scenario_id)
    except EntityNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PipelineConfigurationError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except WorkflowServiceError as exc:
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


@router.post(
    "/scenarioruns/startcontainers",
    response_model=ScenarioRun,
    response_model_exclude_none=True,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start raw containers",
)
async def start_containers_endpoint(
    organization_id: OrganizationPath,
    payload: Annotated[ScenarioRunStartContainers, Body()],
    service: RunsServiceDep,
    principal: CurrentPrincipal,
) -> ScenarioRun:
    try:
        return await service.start_containers(principal, organization_id, payload)
    except EntityNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except WorkflowServiceError as exc:
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


@router.post(
    "/scenarioruns/search",
    response_model=list[ScenarioRun],
    response_model_exclude_none=True,
    summary="Search scenario runs",
)
async def search_runs_endpoint(
    organization_id: OrganizationPath,
    payload: Annotated[ScenarioRunSearch, Body()],
    service: RunsServiceDep,
    _principal: CurrentPrincipal,
) -> list[ScenarioRun]:
    return await service.search_runs(organization_id, payload)


@router.get(
    "/workspaces/{workspaceId}/scenarioruns",
    response_model=list[ScenarioRun],
    response_model_exclude_none=True,
    summary="List the runs of a workspace",
)
async def list_workspace_runs_endpoint(
    organization_id: OrganizationPath,
    workspace_id: WorkspacePath,
    service: RunsServiceDep,
    _principal: CurrentPrincipal,
) -> list[ScenarioRun]:
    return await service.list_workspace_runs(organization_id, workspace_id)


@router.get(
    "/workspaces/{workspaceId}/scenarios/{scenarioId}/scenarioruns",
    response_model=list[ScenarioRun],
    response_model_exclude_none=True,
    summary="List the runs of a scenario",
)
async def list_scenario_runs_endpoint(
    organization_id: OrganizationPath,
    workspace_id: WorkspacePath,
    scenario_id: ScenarioPath,
    service: RunsServiceDep,
    _principal: CurrentPrincipal,
) -> list[ScenarioRun]:
    return await service.list_scenario_runs(organization_id, workspace_id, scenario_id)


@router.get(
    "/scenarioruns/{scenariorunId}",
    response_model=ScenarioRun,
    response_model_exclude_none=True,
    summary="Get a scenario run",
)
async def get_run_endpoint(
    organization_id: OrganizationPath,
    run_id: RunPath,
    service: RunsServiceDep,
    _principal: CurrentPrincipal,
) -> ScenarioRun:
    try:
        return await service.find_run(organization_id, run_id)
    except ScenarioRunNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.delete(
    "/scenarioruns/{scenariorunId}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Delete a scenario run",
)
async def delete_run_endpoint(
    organization_id: OrganizationPath,
    run_id: RunPath,
    service: RunsServiceDep,
    principal: CurrentPrincipal,
) -> Response:
    """Only the run owner may delete it; warehouse data goes first, then the record."""

    try:
        await service.delete_run(principal, organization_id, run_id)
    except ScenarioRunNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ScenarioRunAccessForbiddenError as exc:
        raise HTTPException(status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/scenarioruns/{scenariorunId}/status",
    response_model=ScenarioRunStatus,
    response_model_exclude_none=True,
    summary="Get the status of a scenario run",
)
async def get_run_status_endpoint(
    organization_id: OrganizationPath,
    run_id: RunPath,
    service: RunsServiceDep,
    _principal: CurrentPrincipal,
) -> ScenarioRunStatus:
    try:
        return await service.get_status(organization_id, run_id)
    except ScenarioRunNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.get(
    "/scenarioruns/{scenariorunId}/logs",
    response_model=ScenarioRunLogs,
    response_model_exclude_none=True,
    summary="Get the per-container logs of a scenario run",
)
async def get_run_logs_endpoint(
    organization_id: OrganizationPath,
    run_id: RunPath,
    service: RunsServiceDep,
    _principal: CurrentPrincipal,
) -> ScenarioRunLogs:
    try:
        return await service.get_logs(organization_id, run_id)
    except ScenarioRunNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except WorkflowServiceError as exc:
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


@router.get(
    "/scenarioruns/{scenariorunId}/cumulatedlogs",
    response_class=PlainTextResponse,
    summary="Get the logs of every container as one text",
)
async def get_run_cumulated_logs_endpoint(
    organization_id: OrganizationPath,
    run_id: RunPath,
    service: RunsServiceDep,
    _principal: CurrentPrincipal,
) -> PlainTextResponse:
    try:
        text = await service.get_cumulated_logs(organization_id, run_id)
    except ScenarioRunNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except WorkflowServiceError as exc:
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return PlainTextResponse(text)


@router.post(
    "/scenarioruns/{scenariorunId}/stop",
    response_model=ScenarioRunStatus,
    response_model_exclude_none=True,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Stop a scenario run",
)
async def stop_run_endpoint(
    organization_id: OrganizationPath,
    run_id: RunPath,
    service: RunsServiceDep,
    _principal: CurrentPrincipal,
) -> ScenarioRunStatus:
    try:
        return await service.stop(organization_id, run_id)
    except ScenarioRunNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except WorkflowServiceError as exc:
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


__all__ = ["router"]
