"""Search filters for scenario runs."""

from __future__ import annotations

from simrun_api.features.store import FieldClause

from .schemas import ScenarioRunSearch

__all__ = ["search_clauses"]


def search_clauses(search: ScenarioRunSearch) -> list[FieldClause]:
    """One equality clause per populated search field, keyed by the stored camelCase name."""

    clauses: list[FieldClause] = []
    if search.solution_id:
        clauses.append(FieldClause("solutionId", search.solution_id))
    if search.run_template_id:
        clauses.append(FieldClause("runTemplateId", search.run_template_id))
    if search.workspace_id:
        clauses.append(FieldClause("workspaceId", search.workspace_id))
    if search.scenario_id:
        clauses.append(FieldClause("scenarioId", search.scenario_id))
    if search.owner_id:
        clauses.append(FieldClause("ownerId", search.owner_id))
    if search.workflow_id:
        clauses.append(FieldClause("workflowId", search.workflow_id))
    if search.workflow_name:
        clauses.append(FieldClause("workflowName", search.workflow_name))
    if search.csm_simulation_run:
        clauses.append(FieldClause("csmSimulationRun", search.csm_simulation_run))
    if search.state is not None:
        clauses.append(FieldClause("state", search.state.value))
    return clauses
