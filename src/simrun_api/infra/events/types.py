"""Domain events exchanged in-process between features."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "ConnectorRemoved",
    "ConnectorRemovedForOrganization",
    "DomainEvent",
    "OrganizationRegistered",
    "OrganizationUnregistered",
    "ScenarioDeleted",
    "ScenarioRunData",
    "ScenarioRunStartedForScenario",
    "WorkflowData",
]


@dataclass(frozen=True, slots=True)
class OrganizationRegistered:
    organization_id: str


@dataclass(frozen=True, slots=True)
class OrganizationUnregistered:
    organization_id: str


@dataclass(frozen=True, slots=True)
class ConnectorRemoved:
    connector_id: str


@dataclass(frozen=True, slots=True)
class ConnectorRemovedForOrganization:
    organization_id: str
    connector_id: str


@dataclass(frozen=True, slots=True)
class ScenarioDeleted:
    organization_id: str
    workspace_id: str
    scenario_id: str


@dataclass(frozen=True, slots=True)
class ScenarioRunData:
    scenario_run_id: str
    csm_simulation_run: str


@dataclass(frozen=True, slots=True)
class WorkflowData:
    workflow_id: str
    workflow_name: str


@dataclass(frozen=True, slots=True)
class ScenarioRunStartedForScenario:
    """Published once a run was accepted by the workflow executor and recorded."""

    organization_id: str
    workspace_id: str
    scenario_id: str
    scenario_run: ScenarioRunData
    workflow: WorkflowData


DomainEvent = (
    OrganizationRegistered
    | OrganizationUnregistered
    | ConnectorRemoved
    | ConnectorRemovedForOrganization
    | ScenarioDeleted
    | ScenarioRunStartedForScenario
)
