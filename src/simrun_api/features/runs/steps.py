"""Solution step table.

Each of the five solution stages maps to a container name, a container mode,
a pair of provider/path environment variables, the run-template field holding
its source and the run-template flag that switches it on or off.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from simrun_api.features.catalog.schemas import RunTemplate, RunTemplateStepSource

__all__ = [
    "STEP_SOURCE_CLOUD",
    "STEP_SOURCE_LOCAL",
    "STEP_SPECS",
    "SolutionContainerStepSpec",
    "StepResource",
    "cloud_path",
    "step_source_value",
]

STEP_SOURCE_LOCAL = "local"
STEP_SOURCE_CLOUD = "azureStorage"


class StepResource(str, Enum):
    PARAMETERS_HANDLER = "parameters_handler"
    VALIDATOR = "validator"
    PRERUN = "prerun"
    ENGINE = "engine"
    POSTRUN = "postrun"


def cloud_path(organization_id: str, workspace_id: str, resource: StepResource) -> str:
    """Storage path of a step's code bundle, e.g. ``o-1/w-1/engine.zip``."""
    return f"{organization_id.lower()}/{workspace_id.lower()}/{resource.value}.zip"


def step_source_value(source: RunTemplateStepSource | None) -> str | None:
    if source is None:
        return None
    if source is RunTemplateStepSource.LOCAL:
        return STEP_SOURCE_LOCAL
    return STEP_SOURCE_CLOUD


@dataclass(frozen=True, slots=True)
class SolutionContainerStepSpec:
    mode: str
    container_name: str
    provider_var: str
    path_var: str
    resource: StepResource
    source_field: str
    toggle_field: str

    def is_enabled(self, template: RunTemplate) -> bool:
        return getattr(template, self.toggle_field).enabled

    def source(self, template: RunTemplate) -> str | None:
        return step_source_value(getattr(template, self.source_field))

    def path(self, organization_id: str, workspace_id: str) -> str:
        return cloud_path(organization_id, workspace_id, self.resource)


STEP_SPECS: Mapping[str, SolutionContainerStepSpec] = MappingProxyType(
    {
        "handle-parameters": SolutionContainerStepSpec(
            mode="handle-parameters",
            container_name="applyParametersContainer",
            provider_var="CSM_PARAMETERS_HANDLER_PROVIDER",
            path_var="CSM_PARAMETERS_HANDLER_PATH",
            resource=StepResource.PARAMETERS_HANDLER,
            source_field="parameters_handler_source",
            toggle_field="apply_parameters",
        ),
        "validate": SolutionContainerStepSpec(
            mode="validate",
            container_name="validateDataContainer",
            provider_var="CSM_DATASET_VALIDATOR_PROVIDER",
            path_var="CSM_DATASET_VALIDATOR_PATH",
            resource=StepResource.VALIDATOR,
            source_field="dataset_validator_source",
            toggle_field="validate_data",
        ),
        "prerun": SolutionContainerStepSpec(
            mode="prerun",
            container_name="preRunContainer",
            provider_var="CSM_PRERUN_PROVIDER",
            path_var="CSM_PRERUN_PATH",
            resource=StepResource.PRERUN,
            source_field="pre_run_source",
            toggle_field="pre_run",
        ),
        "engine": SolutionContainerStepSpec(
            mode="engine",
            container_name="runContainer",
            provider_var="CSM_ENGINE_PROVIDER",
            path_var="CSM_ENGINE_PATH",
            resource=StepResource.ENGINE,
            source_field="run_source",
            toggle_field="run",
        ),
        "postrun": SolutionContainerStepSpec(
            mode="postrun",
            container_name="postRunContainer",
            provider_var="CSM_POSTRUN_PROVIDER",
            path_var="CSM_POSTRUN_PATH",
            resource=StepResource.POSTRUN,
            source_field="post_run_source",
            toggle_field="post_run",
        ),
    }
)
