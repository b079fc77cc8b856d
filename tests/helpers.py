"""Entity factories and in-process fakes for the workflow executor and data warehouse."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from simrun_api.common.time import utc_now
from simrun_api.features.catalog.schemas import (
    DATASET_PARAMETER_TYPE,
    Connector,
    ConnectorParameter,
    ConnectorParameterGroup,
    Dataset,
    DatasetConnector,
    Organization,
    RunTemplate,
    RunTemplateParameter,
    Scenario,
    ScenarioParameterValue,
    Solution,
    Workspace,
    WorkspaceSolution,
)
from simrun_api.features.catalog.service import CatalogService
from simrun_api.features.runs.cleanup import RunCleanup
from simrun_api.features.runs.exceptions import DataWarehouseError, WorkflowServiceError
from simrun_api.features.runs.ingestion import IngestionMonitor, IngestionSnapshot
from simrun_api.features.runs.pipeline import CONTROL_PLANE_TOPIC_VAR, PipelineBuilder
from simrun_api.features.runs.reconciler import RunStateReconciler
from simrun_api.features.runs.repository import RunStore
from simrun_api.features.runs.schemas import (
    ScenarioRun,
    ScenarioRunContainer,
    ScenarioRunContainerLogs,
    ScenarioRunStartContainers,
)
from simrun_api.features.runs.service import ScenarioRunsService
from simrun_api.features.runs.workflow import WorkflowStatus, WorkflowSubmission
from simrun_api.features.store import DocumentStore
from simrun_api.infra.events import EventBus
from simrun_api.settings import Settings

ORGANIZATION_ID = "o-1"
WORKSPACE_ID = "w-1"
WORKSPACE_KEY = "brewerywsp"
SOLUTION_ID = "sol-1"
SCENARIO_ID = "s-1"
RUN_TEMPLATE_ID = "rt-1"
CONNECTOR_ID = "c-1"

WORKFLOW_ENDED_AT = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Catalog factories
# ---------------------------------------------------------------------------


def make_organization(organization_id: str = ORGANIZATION_ID) -> Organization:
    return Organization(id=organization_id, name="Brewery Inc.")


def make_connector(connector_id: str = CONNECTOR_ID) -> Connector:
    """Two groups: one env-var parameter and two positional ones."""

    return Connector(
        id=connector_id,
        key="storage",
        repository="csm-connector",
        version="2.0.0",
        parameter_groups=[
            ConnectorParameterGroup(
                id="storage",
                parameters=[
                    ConnectorParameter(id="container", env_var="STORAGE_CONTAINER"),
                    ConnectorParameter(id="path"),
                ],
            ),
            ConnectorParameterGroup(id="options", parameters=[ConnectorParameter(id="mode")]),
        ],
    )


def make_dataset(
    dataset_id: str,
    *,
    connector_id: str | None = CONNECTOR_ID,
    values: dict[str, str] | None = None,
) -> Dataset:
    connector = None
    if connector_id is not None:
        connector = DatasetConnector(
            id=connector_id,
            parameters_values=values
            if values is not None
            else {"container": "data", "path": f"/{dataset_id}"},
        )
    return Dataset(id=dataset_id, name=f"Dataset {dataset_id}", connector=connector)


def make_template(**overrides: Any) -> RunTemplate:
    fields: dict[str, Any] = {
        "id": RUN_TEMPLATE_ID,
        "compute_size": "highcpu",
        "csm_simulation": "BreweryDemo",
    }
    fields.update(overrides)
    return RunTemplate(**fields)


def make_solution(
    template: RunTemplate | None = None,
    *,
    sdk_version: str | None = "9.0",
) -> Solution:
    return Solution(
        id=SOLUTION_ID,
        key="brewery",
        repository="brewery-solution",
        version="1.0.0",
        sdk_version=sdk_version,
        parameters=[
            RunTemplateParameter(id="stock", var_type="int"),
            RunTemplateParameter(id="prices", var_type=DATASET_PARAMETER_TYPE),
        ],
        run_templates=[template or make_template()],
    )


def make_workspace(*, send_input_to_data_warehouse: bool | None = None) -> Workspace:
    return Workspace(
        id=WORKSPACE_ID,
        key=WORKSPACE_KEY,
        name="Brewery",
        solution=WorkspaceSolution(solution_id=SOLUTION_ID),
        send_input_to_data_warehouse=send_input_to_data_warehouse,
    )


def make_scenario(
    *,
    scenario_id: str = SCENARIO_ID,
    dataset_list: Sequence[str] = ("d-1", "d-2"),
    parameters: Sequence[tuple[str, str]] = (("stock", "12"), ("prices", "d-3")),
    run_template_id: str = RUN_TEMPLATE_ID,
) -> Scenario:
    return Scenario(
        id=scenario_id,
        name="Scenario",
        owner_id="alice",
        workspace_id=WORKSPACE_ID,
        solution_id=SOLUTION_ID,
        run_template_id=run_template_id,
        dataset_list=list(dataset_list),
        parameters_values=[
            ScenarioParameterValue(parameter_id=parameter_id, value=value)
            for parameter_id, value in parameters
        ],
    )


def pipeline_inputs(**overrides: Any) -> dict[str, Any]:
    """Keyword arguments for ``PipelineBuilder.build_pipeline``."""

    inputs: dict[str, Any] = {
        "scenario": make_scenario(),
        "datasets": [make_dataset("d-1"), make_dataset("d-2"), make_dataset("d-3")],
        "connectors": [make_connector()],
        "workspace": make_workspace(),
        "organization": make_organization(),
        "solution": make_solution(),
    }
    inputs.update(overrides)
    return inputs


async def seed_catalog(catalog: CatalogService, *, solution: Solution | None = None) -> None:
    """Store every entity needed to run ``SCENARIO_ID``."""

    await catalog.register_organization(make_organization())
    await catalog.save_connector(make_connector())
    for dataset_id in ("d-1", "d-2", "d-3"):
        await catalog.save_dataset(ORGANIZATION_ID, make_dataset(dataset_id))
    await catalog.save_solution(ORGANIZATION_ID, solution or make_solution())
    await catalog.save_workspace(ORGANIZATION_ID, make_workspace())
    await catalog.save_scenario(ORGANIZATION_ID, WORKSPACE_ID, make_scenario())


# ---------------------------------------------------------------------------
# Run factories
# ---------------------------------------------------------------------------


def make_run(
    run_id: str = "sr-1",
    *,
    owner_id: str = "alice",
    scenario_id: str = SCENARIO_ID,
    correlation_id: str = "corr-1",
    emits_telemetry: bool = True,
    **overrides: Any,
) -> ScenarioRun:
    env_vars = {"CSM_RUN_TEMPLATE_ID": RUN_TEMPLATE_ID}
    if emits_telemetry:
        env_vars[CONTROL_PLANE_TOPIC_VAR] = f"amqps://bus.test/{WORKSPACE_KEY}-scenariorun"
    fields: dict[str, Any] = {
        "id": run_id,
        "owner_id": owner_id,
        "organization_id": ORGANIZATION_ID,
        "workspace_id": WORKSPACE_ID,
        "workspace_key": WORKSPACE_KEY,
        "scenario_id": scenario_id,
        "solution_id": SOLUTION_ID,
        "run_template_id": RUN_TEMPLATE_ID,
        "csm_simulation_run": correlation_id,
        "workflow_id": f"uid-{run_id}",
        "workflow_name": f"workflow-{scenario_id}-{run_id}",
        "sdk_version": "9.0",
        "containers": [
            ScenarioRunContainer(
                name="runContainer",
                image="solutions.registry.test/brewery-solution:1.0.0",
                env_vars=env_vars,
            )
        ],
        "start_time": WORKFLOW_ENDED_AT - timedelta(minutes=10),
        "created_at": utc_now(),
    }
    fields.update(overrides)
    return ScenarioRun(**fields)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeWorkflowClient:
    """Records submissions and answers status queries with a configurable phase."""

    def __init__(self, *, phase: str | None = "Running", end_time: datetime | None = None) -> None:
        self.phase = phase
        self.end_time = end_time
        self.launched: list[tuple[ScenarioRunStartContainers, dict[str, str]]] = []
        self.status_calls: list[str] = []
        self.stopped: list[str] = []
        self.logs: dict[str, ScenarioRunContainerLogs] = {}
        self.fail_launch = False
        self.fail_status = False

    async def launch(
        self, start_containers: ScenarioRunStartContainers, *, labels: dict[str, str]
    ) -> WorkflowSubmission:
        if self.fail_launch:
            raise WorkflowServiceError("Workflow executor answered 503")
        self.launched.append((start_containers, labels))
        count = len(self.launched)
        return WorkflowSubmission(
            workflow_id=f"uid-{count}",
            workflow_name=f"{start_containers.generate_name or 'workflow-'}{count:05d}",
        )

    async def get_status(self, workflow_name: str) -> WorkflowStatus:
        self.status_calls.append(workflow_name)
        if self.fail_status:
            raise WorkflowServiceError("Workflow executor answered 503")
        return WorkflowStatus(
            phase=self.phase,
            start_time=WORKFLOW_ENDED_AT - timedelta(minutes=10),
            end_time=self.end_time,
        )

    async def stop(self, workflow_name: str) -> WorkflowStatus:
        self.stopped.append(workflow_name)
        return WorkflowStatus(phase="Failed", message="Stopped with strategy 'Stop'")

    async def get_logs(self, workflow_name: str) -> dict[str, ScenarioRunContainerLogs]:
        return dict(self.logs)


class FakeDataWarehouseClient:
    """Returns a fixed snapshot and records lookups and deletions."""

    def __init__(self, snapshot: IngestionSnapshot | None = None) -> None:
        self.snapshot = snapshot or IngestionSnapshot(
            sent_messages_total=10, probes_measures_count=10, ingestion_failures=0
        )
        self.snapshot_calls: list[dict[str, Any]] = []
        self.deleted: list[str] = []
        self.fail_delete_for: set[str] = set()
        self.error: Exception | None = None

    async def ingestion_snapshot(
        self,
        *,
        workspace_key: str,
        correlation_id: str,
        failures_since: datetime,
        failures_until: datetime,
    ) -> IngestionSnapshot:
        self.snapshot_calls.append(
            {
                "workspace_key": workspace_key,
                "correlation_id": correlation_id,
                "failures_since": failures_since,
                "failures_until": failures_until,
            }
        )
        if self.error is not None:
            raise self.error
        return self.snapshot

    async def delete_run_data(self, *, workspace_key: str, correlation_id: str) -> None:
        self.deleted.append(correlation_id)
        if correlation_id in self.fail_delete_for:
            raise DataWarehouseError(f"drop failed for {correlation_id}")


def fixed_clock(moment: datetime) -> Callable[[], datetime]:
    return lambda: moment


def build_reconciler(
    settings: Settings,
    store: DocumentStore,
    *,
    workflow: FakeWorkflowClient,
    data_warehouse: FakeDataWarehouseClient,
    run_store: RunStore | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> RunStateReconciler:
    return RunStateReconciler(
        settings=settings,
        run_store=run_store or RunStore(store),
        workflow=workflow,
        monitor=IngestionMonitor(settings, data_warehouse, clock=clock),
    )


def build_runs_service(
    settings: Settings,
    store: DocumentStore,
    *,
    workflow: FakeWorkflowClient,
    data_warehouse: FakeDataWarehouseClient,
    bus: EventBus | None = None,
) -> tuple[ScenarioRunsService, CatalogService, EventBus]:
    bus = bus or EventBus()
    catalog = CatalogService(store=store, bus=bus)
    run_store = RunStore(store)
    service = ScenarioRunsService(
        catalog=catalog,
        run_store=run_store,
        builder=PipelineBuilder(settings),
        workflow=workflow,
        reconciler=build_reconciler(
            settings, store, workflow=workflow, data_warehouse=data_warehouse, run_store=run_store
        ),
        cleanup=RunCleanup(run_store=run_store, data_warehouse=data_warehouse),
        bus=bus,
    )
    return service, catalog, bus


__all__ = [
    "CONNECTOR_ID",
    "ORGANIZATION_ID",
    "RUN_TEMPLATE_ID",
    "SCENARIO_ID",
    "SOLUTION_ID",
    "WORKFLOW_ENDED_AT",
    "WORKSPACE_ID",
    "WORKSPACE_KEY",
    "FakeDataWarehouseClient",
    "FakeWorkflowClient",
    "build_reconciler",
    "build_runs_service",
    "fixed_clock",
    "make_connector",
    "make_dataset",
    "make_organization",
    "make_run",
    "make_scenario",
    "make_solution",
    "make_template",
    "make_workspace",
    "pipeline_inputs",
    "seed_catalog",
]
