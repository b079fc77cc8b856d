"""Pydantic schemas for scenario runs."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import Field, model_validator

from simrun_api.common.schema import BaseSchema, DocumentSchema
from simrun_api.features.catalog.schemas import ScenarioParameterValue

__all__ = [
    "ENTRYPOINT_TEMPLATE",
    "DataIngestionState",
    "RunState",
    "ScenarioRun",
    "ScenarioRunContainer",
    "ScenarioRunContainerLogs",
    "ScenarioRunLogs",
    "ScenarioRunSearch",
    "ScenarioRunStartContainers",
    "ScenarioRunStatus",
    "ScenarioRunStatusNode",
]

# Name of the workflow template that sequences the containers.
ENTRYPOINT_TEMPLATE = "default"


class RunState(str, Enum):
    """Client-facing run state."""

    RUNNING = "Running"
    SUCCESSFUL = "Successful"
    FAILED = "Failed"
    UNKNOWN = "Unknown"
    DATA_INGESTION_IN_PROGRESS = "DataIngestionInProgress"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.SUCCESSFUL, RunState.FAILED)


class DataIngestionState(str, Enum):
    """Ingestion status reported by the data warehouse, independent of the executor phase."""

    UNKNOWN = "Unknown"
    IN_PROGRESS = "InProgress"
    SUCCESSFUL = "Successful"
    FAILURE = "Failure"


class ScenarioRunContainer(BaseSchema):
    """One step of the pipeline handed to the workflow executor."""

    name: str
    image: str
    entrypoint: str | None = None
    env_vars: dict[str, str] = Field(default_factory=dict)
    run_args: list[str] | None = None


class ScenarioRunStartContainers(BaseSchema):
    """The pipeline artifact: ordered containers plus placement and naming."""

    generate_name: str | None = None
    node_label: str | None = None
    csm_simulation_id: str | None = None
    labels: dict[str, str] | None = None
    containers: list[ScenarioRunContainer]

    @model_validator(mode="after")
    def _check_container_names(self) -> ScenarioRunStartContainers:
        seen: set[str] = set()
        for container in self.containers:
            if container.name == ENTRYPOINT_TEMPLATE:
                raise ValueError(
                    f"Container name '{ENTRYPOINT_TEMPLATE}' is reserved for the entrypoint"
                )
            if container.name in seen:
                raise ValueError(f"Duplicate container name '{container.name}'")
            seen.add(container.name)
        return self


class ScenarioRun(DocumentSchema):
    """A recorded run. Only the cached ``state``/``phase``/``end_time`` change after insert."""

    id: str
    owner_id: str | None = None
    organization_id: str
    workspace_id: str
    workspace_key: str | None = None
    scenario_id: str
    solution_id: str | None = None
    run_template_id: str | None = None
    csm_simulation_run: str | None = None
    generate_name: str | None = None
    workflow_id: str | None = None
    workflow_name: str | None = None
    compute_size: str | None = None
    sdk_version: str | None = None
    no_data_ingestion_state: bool | None = None
    dataset_list: list[str] | None = None
    parameters_values: list[ScenarioParameterValue] | None = None
    send_datasets_to_data_warehouse: bool | None = None
    send_input_parameters_to_data_warehouse: bool | None = None
    node_label: str | None = None
    containers: list[ScenarioRunContainer] | None = None
    state: RunState | None = None
    phase: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    created_at: datetime | None = None

    def without_sensitive_data(self) -> ScenarioRun:
        """Copy without the submitted containers (they carry credentials)."""
        return self.model_copy(update={"containers": None})


class ScenarioRunStatusNode(BaseSchema):
    id: str
    name: str | None = None
    container_name: str | None = None
    phase: str | None = None
    message: str | None = None
    progress: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None


class ScenarioRunStatus(BaseSchema):
    id: str
    organization_id: str
    workflow_id: str | None = None
    workflow_name: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    phase: str | None = None
    progress: str | None = None
    message: str | None = None
    state: RunState
    nodes: list[ScenarioRunStatusNode] | None = None


class ScenarioRunContainerLogs(BaseSchema):
    node_id: str | None = None
    container_name: str | None = None
    children: list[str] | None = None
    text_log: str = ""


class ScenarioRunLogs(BaseSchema):
    scenariorun_id: str
    containers: dict[str, ScenarioRunContainerLogs] = Field(default_factory=dict)


class ScenarioRunSearch(BaseSchema):
    """Optional equality filters; empty fields are ignored."""

    solution_id: str | None = None
    run_template_id: str | None = None
    workspace_id: str | None = None
    scenario_id: str | None = None
    owner_id: str | None = None
    workflow_id: str | None = None
    workflow_name: str | None = None
    csm_simulation_run: str | None = None
    state: RunState | None = None
