"""Scenario run orchestration: start, query, stop and delete runs."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from simrun_api.common.ids import SCENARIO_RUN_ID_PREFIX, generate_correlation_id, generate_id
from simrun_api.common.logging import log_context
from simrun_api.common.time import utc_now
from simrun_api.core.auth import Principal
from simrun_api.features.catalog.schemas import (
    Connector,
    Dataset,
    Organization,
    RunTemplate,
    Scenario,
    Solution,
    Workspace,
)
from simrun_api.features.catalog.service import CatalogService
from simrun_api.features.store import EntityNotFoundError
from simrun_api.infra.events import (
    EventBus,
    ScenarioRunData,
    ScenarioRunStartedForScenario,
    WorkflowData,
)

from .cleanup import RunCleanup
from .exceptions import ScenarioRunAccessForbiddenError, ScenarioRunNotFoundError
from .pipeline import PipelineBuilder, dataset_ids_for, resolve_send_flag
from .reconciler import RunStateReconciler, map_phase
from .repository import RunStore
from .schemas import (
    ScenarioRun,
    ScenarioRunLogs,
    ScenarioRunSearch,
    ScenarioRunStartContainers,
    ScenarioRunStatus,
)
from .templates import get_run_template
from .workflow import WorkflowClient

__all__ = ["PLACEHOLDER_ID", "ScenarioRunsService", "StartInfo"]

logger = logging.getLogger(__name__)

# Workspace and scenario ids recorded for runs started from raw containers.
PLACEHOLDER_ID = "None"

LABEL_ORGANIZATION = "simrun/organization-id"
LABEL_WORKSPACE = "simrun/workspace-id"
LABEL_SCENARIO = "simrun/scenario-id"


@dataclass(frozen=True, slots=True)
class StartInfo:
    """Everything needed to submit one scenario run."""

    organization: Organization
    workspace: Workspace
    solution: Solution
    scenario: Scenario
    run_template: RunTemplate
    datasets: list[Dataset]
    connectors: list[Connector]
    start_containers: ScenarioRunStartContainers
    csm_simulation_run: str


class ScenarioRunsService:
    """Run lifecycle on top of the catalog, the workflow executor and the run store."""

    def __init__(
        self,
        *,
        catalog: CatalogService,
        run_store: RunStore,
        builder: PipelineBuilder,
        workflow: WorkflowClient,
        reconciler: RunStateReconciler,
        cleanup: RunCleanup,
        bus: EventBus,
    ) -> None:
        self._catalog = catalog
        self._run_store = run_store
        self._builder = builder
        self._workflow = workflow
        self._reconciler = reconciler
        self._cleanup = cleanup
        self._bus = bus

    # ---- Start ------------------------------------------------------------

    async def start_info(
        self, organization_id: str, workspace_id: str, scenario_id: str
    ) -> StartInfo:
        organization = await self._catalog.get_organization(organization_id)
        workspace = await self._catalog.get_workspace(organization_id, workspace_id)
        solution = await self._catalog.get_solution(
            organization_id, workspace.solution.solution_id
        )
        scenario = await self._catalog.get_scenario(organization_id, workspace_id, scenario_id)
        run_template = get_run_template(solution, scenario.run_template_id or "")

        datasets: list[Dataset] = []
        for dataset_id in dataset_ids_for(scenario, solution):
            try:
                datasets.append(await self._catalog.get_dataset(organization_id, dataset_id))
            except EntityNotFoundError:
                # Left out here; the builder reports the dangling reference.
                continue
        connectors = await self._catalog.find_connectors(
            dataset.connector.id
            for dataset in datasets
            if dataset.connector is not None and dataset.connector.id
        )

        csm_simulation_run = generate_correlation_id()
        start_containers = self._builder.build_start_containers(
            scenario=scenario,
            datasets=datasets,
            connectors=connectors,
            workspace=workspace,
            organization=organization,
            solution=solution,
            correlation_id=csm_simulation_run,
        )
        return StartInfo(
            organization=organization,
            workspace=workspace,
            solution=solution,
            scenario=scenario,
            run_template=run_template,
            datasets=datasets,
            connectors=connectors,
            start_containers=start_containers,
            csm_simulation_run=csm_simulation_run,
        )

    async def run_scenario(
        self,
        principal: Principal,
        organization_id: str,
        workspace_id: str,
        scenario_id: str,
    ) -> ScenarioRun:
        info = await self.start_info(organization_id, workspace_id, scenario_id)
        submission = await self._workflow.launch(
            info.start_containers,
            labels={
                LABEL_ORGANIZATION: organization_id,
                LABEL_WORKSPACE: workspace_id,
                LABEL_SCENARIO: scenario_id,
            },
        )

        template = info.run_template
        now = utc_now()
        run = ScenarioRun(
            id=generate_id(SCENARIO_RUN_ID_PREFIX),
            owner_id=principal.user_id,
            organization_id=organization_id,
            workspace_id=workspace_id,
            workspace_key=info.workspace.key,
            scenario_id=scenario_id,
            solution_id=info.solution.id,
            run_template_id=template.id,
            csm_simulation_run=info.csm_simulation_run,
            generate_name=info.start_containers.generate_name,
            workflow_id=submission.workflow_id,
            workflow_name=submission.workflow_name,
            compute_size=template.compute_size,
            sdk_version=info.solution.sdk_version,
            no_data_ingestion_state=template.no_data_ingestion_state,
            dataset_list=list(info.scenario.dataset_list),
            parameters_values=list(info.scenario.parameters_values),
            send_datasets_to_data_warehouse=resolve_send_flag(
                info.workspace.send_input_to_data_warehouse,
                template.send_datasets_to_data_warehouse,
            ),
            send_input_parameters_to_data_warehouse=resolve_send_flag(
                info.workspace.send_input_to_data_warehouse,
                template.send_input_parameters_to_data_warehouse,
            ),
            node_label=info.start_containers.node_label,
            containers=info.start_containers.containers,
            start_time=now,
            created_at=now,
        )
        await self._run_store.insert(run)

        logger.info(
            "run.start.success",
            extra=log_context(
                organization_id=organization_id,
                workspace_id=workspace_id,
                scenario_id=scenario_id,
                run_id=run.id,
                user_id=principal.user_id,
                csm_simulation_run=run.csm_simulation_run,
                workflow_name=run.workflow_name,
            ),
        )
        await self._bus.publish(
            ScenarioRunStartedForScenario(
                organization_id=organization_id,
                workspace_id=workspace_id,
                scenario_id=scenario_id,
                scenario_run=ScenarioRunData(
                    scenario_run_id=run.id,
                    csm_simulation_run=info.csm_simulation_run,
                ),
                workflow=WorkflowData(
                    workflow_id=submission.workflow_id,
                    workflow_name=submission.workflow_name,
                ),
            )
        )
        return run.without_sensitive_data()

    async def start_containers(
        self,
        principal: Principal,
        organization_id: str,
        start_containers: ScenarioRunStartContainers,
    ) -> ScenarioRun:
        """Dispatch a caller-built pipeline as is."""

        await self._catalog.get_organization(organization_id)
        csm_simulation_run = start_containers.csm_simulation_id or generate_correlation_id()
        start_containers = start_containers.model_copy(
            update={"csm_simulation_id": csm_simulation_run}
        )
        submission = await self._workflow.launch(
            start_containers, labels={LABEL_ORGANIZATION: organization_id}
        )
        now = utc_now()
        run = ScenarioRun(
            id=generate_id(SCENARIO_RUN_ID_PREFIX),
            owner_id=principal.user_id,
            organization_id=organization_id,
            workspace_id=PLACEHOLDER_ID,
            scenario_id=PLACEHOLDER_ID,
            csm_simulation_run=csm_simulation_run,
            generate_name=start_containers.generate_name,
            workflow_id=submission.workflow_id,
            workflow_name=submission.workflow_name,
            node_label=start_containers.node_label,
            containers=start_containers.containers,
            start_time=now,
            created_at=now,
        )
        await self._run_store.insert(run)
        logger.info(
            "run.start_containers.success",
            extra=log_context(
                organization_id=organization_id,
                run_id=run.id,
                user_id=principal.user_id,
                csm_simulation_run=csm_simulation_run,
            ),
        )
        return run.without_sensitive_data()

    # ---- Queries ----------------------------------------------------------

    async def find_run(self, organization_id: str, run_id: str) -> ScenarioRun:
        run = await self._require_run(organization_id, run_id)
        refreshed = await self._reconciler.refresh(run)
        return refreshed.without_sensitive_data()

    async def list_scenario_runs(
        self, organization_id: str, workspace_id: str, scenario_id: str
    ) -> list[ScenarioRun]:
        runs = await self._run_store.list_for_scenario(organization_id, workspace_id, scenario_id)
        return await self._with_state(runs)

    async def list_workspace_runs(
        self, organization_id: str, workspace_id: str
    ) -> list[ScenarioRun]:
        runs = await self._run_store.list_for_workspace(organization_id, workspace_id)
        return await self._with_state(runs)

    async def search_runs(
        self, organization_id: str, search: ScenarioRunSearch
    ) -> list[ScenarioRun]:
        runs = await self._run_store.search(organization_id, search)
        return await self._with_state(runs)

    async def get_status(self, organization_id: str, run_id: str) -> ScenarioRunStatus:
        run = await self._require_run(organization_id, run_id)
        return await self._reconciler.status(run)

    async def get_logs(self, organization_id: str, run_id: str) -> ScenarioRunLogs:
        run = await self._require_run(organization_id, run_id)
        if not run.workflow_name:
            return ScenarioRunLogs(scenariorun_id=run.id)
        containers = await self._workflow.get_logs(run.workflow_name)
        return ScenarioRunLogs(scenariorun_id=run.id, containers=containers)

    async def get_cumulated_logs(self, organization_id: str, run_id: str) -> str:
        logs = await self.get_logs(organization_id, run_id)
        return "\n".join(
            container.text_log for container in logs.containers.values() if container.text_log
        )

    # ---- Mutations --------------------------------------------------------

    async def stop(self, organization_id: str, run_id: str) -> ScenarioRunStatus:
        """Ask the executor to stop the workflow; completion is not awaited."""

        run = await self._require_run(organization_id, run_id)
        if not run.workflow_name:
            raise ScenarioRunNotFoundError(run_id, organization_id)
        workflow_status = await self._workflow.stop(run.workflow_name)
        logger.info(
            "run.stop.requested",
            extra=log_context(organization_id=organization_id, run_id=run.id),
        )
        return ScenarioRunStatus(
            id=run.id,
            organization_id=organization_id,
            workflow_id=run.workflow_id,
            workflow_name=run.workflow_name,
            start_time=workflow_status.start_time,
            end_time=workflow_status.end_time,
            phase=workflow_status.phase,
            progress=workflow_status.progress,
            message=workflow_status.message,
            state=map_phase(workflow_status.phase, check_ingestion=False, run_id=run.id),
        )

    async def delete_run(self, principal: Principal, organization_id: str, run_id: str) -> None:
        run = await self._require_run(organization_id, run_id)
        if run.owner_id != principal.user_id:
            logger.warning(
                "run.delete.forbidden",
                extra=log_context(
                    organization_id=organization_id, run_id=run_id, user_id=principal.user_id
                ),
            )
            raise ScenarioRunAccessForbiddenError(
                f"User {principal.user_id} is not allowed to delete ScenarioRun #{run_id}"
            )
        await self._cleanup.delete_run(run)

    # ---- Helpers ----------------------------------------------------------

    async def _require_run(self, organization_id: str, run_id: str) -> ScenarioRun:
        run = await self._run_store.get(organization_id, run_id)
        if run is None:
            raise ScenarioRunNotFoundError(run_id, organization_id)
        return run

    async def _with_state(self, runs: list[ScenarioRun]) -> list[ScenarioRun]:
        refreshed = []
        for run in runs:
            run = await self._reconciler.refresh(run)
            refreshed.append(run.without_sensitive_data())
        return refreshed
