"""Domain exceptions for the runs feature."""

from __future__ import annotations

__all__ = [
    "DataWarehouseError",
    "PipelineConfigurationError",
    "RunTemplateNotFoundError",
    "ScenarioRunAccessForbiddenError",
    "ScenarioRunNotFoundError",
    "WorkflowServiceError",
]


class PipelineConfigurationError(ValueError):
    """Raised when run inputs reference something missing or mismatched.

    The pipeline build is aborted as a whole; no partial container list escapes.
    """


class RunTemplateNotFoundError(PipelineConfigurationError):
    """Raised when a scenario's run template is not declared by its solution."""

    def __init__(self, run_template_id: str, solution_id: str) -> None:
        super().__init__(f"runTemplateId {run_template_id} not found in Solution {solution_id}")
        self.run_template_id = run_template_id
        self.solution_id = solution_id


class ScenarioRunNotFoundError(RuntimeError):
    """Raised when a requested run record cannot be located."""

    def __init__(self, run_id: str, organization_id: str) -> None:
        super().__init__(f"ScenarioRun #{run_id} not found in organization #{organization_id}")
        self.run_id = run_id
        self.organization_id = organization_id


class ScenarioRunAccessForbiddenError(RuntimeError):
    """Raised when a principal may not mutate a run (e.g. not its owner)."""


class WorkflowServiceError(RuntimeError):
    """Raised when the workflow executor rejects a call or cannot be reached."""


class DataWarehouseError(RuntimeError):
    """Raised when the data warehouse rejects a query or cannot be reached."""
