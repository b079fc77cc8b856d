"""Catalog entities consumed by the run pipeline.

Organization, Connector, Dataset, Solution, Workspace and Scenario are stored
as camelCase JSON documents. Unknown keys are dropped on load so documents
written by other services stay readable.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any

from pydantic import BeforeValidator, Field, PlainSerializer

from simrun_api.common.schema import DocumentSchema

__all__ = [
    "DATASET_PARAMETER_TYPE",
    "Connector",
    "ConnectorParameter",
    "ConnectorParameterGroup",
    "Dataset",
    "DatasetCompatibility",
    "DatasetConnector",
    "Organization",
    "RunTemplate",
    "RunTemplateParameter",
    "RunTemplateStepSource",
    "Scenario",
    "ScenarioParameterValue",
    "Solution",
    "StepFlag",
    "StepToggle",
    "Workspace",
    "WorkspaceSolution",
]

# Solution parameters of this type hold a dataset id as their scenario value.
DATASET_PARAMETER_TYPE = "%DATASETID%"


class StepToggle(str, Enum):
    """Three-valued stage flag: an unset flag means the stage runs."""

    UNSET = "unset"
    ENABLED = "enabled"
    DISABLED = "disabled"

    @property
    def enabled(self) -> bool:
        return self is not StepToggle.DISABLED

    @classmethod
    def from_flag(cls, value: Any) -> StepToggle:
        if isinstance(value, StepToggle):
            return value
        if value is None:
            return cls.UNSET
        if isinstance(value, bool):
            return cls.ENABLED if value else cls.DISABLED
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {"true", "false"}:
                return cls.ENABLED if lowered == "true" else cls.DISABLED
            return cls(lowered)
        raise ValueError(f"Unsupported stage flag: {value!r}")

    def as_flag(self) -> bool | None:
        if self is StepToggle.UNSET:
            return None
        return self is StepToggle.ENABLED


StepFlag = Annotated[
    StepToggle,
    BeforeValidator(StepToggle.from_flag),
    PlainSerializer(lambda toggle: toggle.as_flag(), return_type=bool | None),
]


class RunTemplateStepSource(str, Enum):
    """Where a solution step's code lives."""

    LOCAL = "local"
    CLOUD = "cloud"


# ---------------------------------------------------------------------------
# Organization / Connector / Dataset
# ---------------------------------------------------------------------------


class Organization(DocumentSchema):
    id: str
    name: str | None = None
    owner_id: str | None = None


class ConnectorParameter(DocumentSchema):
    id: str
    label: str | None = None
    value_type: str | None = None
    default: str | None = None
    env_var: str | None = None


class ConnectorParameterGroup(DocumentSchema):
    id: str
    label: str | None = None
    parameters: list[ConnectorParameter] = Field(default_factory=list)


class Connector(DocumentSchema):
    id: str
    key: str | None = None
    name: str | None = None
    repository: str
    version: str
    parameter_groups: list[ConnectorParameterGroup] = Field(default_factory=list)

    def iter_parameters(self) -> list[ConnectorParameter]:
        """Parameters in group declaration order."""
        return [parameter for group in self.parameter_groups for parameter in group.parameters]


class DatasetConnector(DocumentSchema):
    id: str | None = None
    name: str | None = None
    version: str | None = None
    parameters_values: dict[str, str] | None = None


class DatasetCompatibility(DocumentSchema):
    solution_key: str
    minimum_version: str | None = None
    maximum_version: str | None = None


class Dataset(DocumentSchema):
    id: str
    name: str | None = None
    owner_id: str | None = None
    connector: DatasetConnector | None = None
    compatibility: list[DatasetCompatibility] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Solution / RunTemplate
# ---------------------------------------------------------------------------


class RunTemplateParameter(DocumentSchema):
    """A parameter declared by a Solution."""

    id: str
    label: str | None = None
    var_type: str | None = None


class RunTemplate(DocumentSchema):
    id: str
    name: str | None = None
    description: str | None = None
    csm_simulation: str | None = None
    compute_size: str | None = None
    no_data_ingestion_state: bool | None = None

    fetch_datasets: StepFlag = StepToggle.UNSET
    fetch_scenario_parameters: StepFlag = StepToggle.UNSET
    apply_parameters: StepFlag = StepToggle.UNSET
    validate_data: StepFlag = StepToggle.UNSET
    pre_run: StepFlag = StepToggle.UNSET
    run: StepFlag = StepToggle.UNSET
    post_run: StepFlag = StepToggle.UNSET

    parameters_handler_source: RunTemplateStepSource | None = None
    dataset_validator_source: RunTemplateStepSource | None = None
    pre_run_source: RunTemplateStepSource | None = None
    run_source: RunTemplateStepSource | None = None
    post_run_source: RunTemplateStepSource | None = None

    send_datasets_to_data_warehouse: bool | None = None
    send_input_parameters_to_data_warehouse: bool | None = None


class Solution(DocumentSchema):
    id: str
    key: str | None = None
    name: str | None = None
    repository: str
    version: str
    sdk_version: str | None = None
    parameters: list[RunTemplateParameter] = Field(default_factory=list)
    run_templates: list[RunTemplate] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Workspace / Scenario
# ---------------------------------------------------------------------------


class WorkspaceSolution(DocumentSchema):
    solution_id: str


class Workspace(DocumentSchema):
    id: str
    key: str
    name: str | None = None
    solution: WorkspaceSolution
    send_input_to_data_warehouse: bool | None = None


class ScenarioParameterValue(DocumentSchema):
    parameter_id: str
    var_type: str | None = None
    value: str


class Scenario(DocumentSchema):
    id: str
    name: str | None = None
    owner_id: str | None = None
    workspace_id: str | None = None
    solution_id: str | None = None
    run_template_id: str | None = None
    dataset_list: list[str] = Field(default_factory=list)
    parameters_values: list[ScenarioParameterValue] = Field(default_factory=list)
