from __future__ import annotations

import pytest

from simrun_api.core.auth import Principal
from simrun_api.features.runs.exceptions import (
    PipelineConfigurationError,
    ScenarioRunAccessForbiddenError,
    ScenarioRunNotFoundError,
    WorkflowServiceError,
)
from simrun_api.features.runs.pipeline import SIMULATION_ID_VAR
from simrun_api.features.runs.repository import RunStore
from simrun_api.features.runs.schemas import (
    RunState,
    ScenarioRunContainer,
    ScenarioRunContainerLogs,
    ScenarioRunSearch,
    ScenarioRunStartContainers,
)
from simrun_api.features.runs.service import PLACEHOLDER_ID
from simrun_api.features.store import EntityNotFoundError
from simrun_api.infra.events import ScenarioRunStartedForScenario
from tests.helpers import (
    ORGANIZATION_ID,
    SCENARIO_ID,
    WORKFLOW_ENDED_AT,
    WORKSPACE_ID,
    FakeDataWarehouseClient,
    FakeWorkflowClient,
    build_runs_service,
    make_run,
    make_solution,
    make_template,
    seed_catalog,
)

pytestmark = pytest.mark.asyncio

ALICE = Principal(user_id="alice")
BOB = Principal(user_id="bob")


async def test_run_scenario_launches_and_records(settings, store) -> None:
    workflow = FakeWorkflowClient()
    service, catalog, bus = build_runs_service(
        settings, store, workflow=workflow, data_warehouse=FakeDataWarehouseClient()
    )
    events: list[ScenarioRunStartedForScenario] = []

    async def capture(event: ScenarioRunStartedForScenario) -> None:
        events.append(event)

    bus.subscribe(ScenarioRunStartedForScenario, capture)
    await seed_catalog(catalog)

    run = await service.run_scenario(ALICE, ORGANIZATION_ID, WORKSPACE_ID, SCENARIO_ID)

    assert run.id.startswith("sr-")
    assert run.owner_id == "alice"
    assert run.containers is None
    assert run.workflow_id == "uid-1"
    assert run.workflow_name == "workflow-s-1-00001"
    assert run.workspace_key == "brewerywsp"
    assert run.compute_size == "highcpu"
    assert run.node_label == "highcpupool"
    assert run.dataset_list == ["d-1", "d-2"]
    assert run.send_datasets_to_data_warehouse is True

    (launched, labels) = workflow.launched[0]
    assert labels == {
        "simrun/organization-id": ORGANIZATION_ID,
        "simrun/workspace-id": WORKSPACE_ID,
        "simrun/scenario-id": SCENARIO_ID,
    }
    assert launched.csm_simulation_id == run.csm_simulation_run

    stored = await RunStore(store).get(ORGANIZATION_ID, run.id)
    containers = {container.name: container for container in stored.containers}
    assert containers["runContainer"].env_vars[SIMULATION_ID_VAR] == run.csm_simulation_run

    (event,) = events
    assert event.scenario_id == SCENARIO_ID
    assert event.scenario_run.scenario_run_id == run.id
    assert event.scenario_run.csm_simulation_run == run.csm_simulation_run
    assert event.workflow.workflow_name == run.workflow_name


async def test_run_scenario_with_unknown_template_fails_before_launch(settings, store) -> None:
    workflow = FakeWorkflowClient()
    service, catalog, _ = build_runs_service(
        settings, store, workflow=workflow, data_warehouse=FakeDataWarehouseClient()
    )
    await seed_catalog(catalog, solution=make_solution(make_template(id="rt-other")))

    with pytest.raises(PipelineConfigurationError, match="runTemplateId rt-1 not found"):
        await service.run_scenario(ALICE, ORGANIZATION_ID, WORKSPACE_ID, SCENARIO_ID)
    assert workflow.launched == []


async def test_launch_failure_records_nothing(settings, store) -> None:
    workflow = FakeWorkflowClient()
    workflow.fail_launch = True
    service, catalog, _ = build_runs_service(
        settings, store, workflow=workflow, data_warehouse=FakeDataWarehouseClient()
    )
    await seed_catalog(catalog)

    with pytest.raises(WorkflowServiceError):
        await service.run_scenario(ALICE, ORGANIZATION_ID, WORKSPACE_ID, SCENARIO_ID)
    assert await RunStore(store).list_for_workspace(ORGANIZATION_ID, WORKSPACE_ID) == []


async def test_missing_organization_is_not_found(settings, store) -> None:
    service, _, _ = build_runs_service(
        settings, store, workflow=FakeWorkflowClient(), data_warehouse=FakeDataWarehouseClient()
    )

    with pytest.raises(EntityNotFoundError, match="Organization #o-1 not found"):
        await service.run_scenario(ALICE, ORGANIZATION_ID, WORKSPACE_ID, SCENARIO_ID)


async def test_start_containers_uses_placeholder_ids(settings, store) -> None:
    workflow = FakeWorkflowClient()
    service, catalog, _ = build_runs_service(
        settings, store, workflow=workflow, data_warehouse=FakeDataWarehouseClient()
    )
    await seed_catalog(catalog)
    start = ScenarioRunStartContainers(
        generate_name="custom-",
        node_label="basicpool",
        containers=[ScenarioRunContainer(name="only", image="registry/only:1")],
    )

    run = await service.start_containers(ALICE, ORGANIZATION_ID, start)

    assert run.workspace_id == PLACEHOLDER_ID
    assert run.scenario_id == PLACEHOLDER_ID
    assert run.workflow_name == "custom-00001"
    assert run.csm_simulation_run
    (launched, labels) = workflow.launched[0]
    assert launched.csm_simulation_id == run.csm_simulation_run
    assert labels == {"simrun/organization-id": ORGANIZATION_ID}


async def test_start_containers_keeps_a_given_correlation_id(settings, store) -> None:
    service, catalog, _ = build_runs_service(
        settings, store, workflow=FakeWorkflowClient(), data_warehouse=FakeDataWarehouseClient()
    )
    await seed_catalog(catalog)
    start = ScenarioRunStartContainers(
        csm_simulation_id="corr-given",
        containers=[ScenarioRunContainer(name="only", image="registry/only:1")],
    )

    run = await service.start_containers(ALICE, ORGANIZATION_ID, start)

    assert run.csm_simulation_run == "corr-given"


async def test_find_run_refreshes_state_and_strips_containers(settings, store) -> None:
    service, _, _ = build_runs_service(
        settings, store, workflow=FakeWorkflowClient(), data_warehouse=FakeDataWarehouseClient()
    )
    await RunStore(store).insert(make_run())

    run = await service.find_run(ORGANIZATION_ID, "sr-1")

    assert run.state is RunState.RUNNING
    assert run.containers is None
    with pytest.raises(ScenarioRunNotFoundError, match="ScenarioRun #sr-404 not found"):
        await service.find_run(ORGANIZATION_ID, "sr-404")


async def test_listings_and_search(settings, store) -> None:
    service, _, _ = build_runs_service(
        settings, store, workflow=FakeWorkflowClient(), data_warehouse=FakeDataWarehouseClient()
    )
    run_store = RunStore(store)
    await run_store.insert(make_run("sr-1"))
    await run_store.insert(make_run("sr-2", owner_id="bob"))
    await run_store.insert(make_run("sr-3", scenario_id="s-2"))

    by_scenario = await service.list_scenario_runs(ORGANIZATION_ID, WORKSPACE_ID, SCENARIO_ID)
    by_workspace = await service.list_workspace_runs(ORGANIZATION_ID, WORKSPACE_ID)
    by_owner = await service.search_runs(ORGANIZATION_ID, ScenarioRunSearch(owner_id="bob"))

    assert [run.id for run in by_scenario] == ["sr-1", "sr-2"]
    assert [run.id for run in by_workspace] == ["sr-1", "sr-2", "sr-3"]
    assert [run.id for run in by_owner] == ["sr-2"]
    assert all(run.containers is None for run in by_workspace)


async def test_status_caches_terminal_state(settings, store) -> None:
    workflow = FakeWorkflowClient(phase="Failed", end_time=WORKFLOW_ENDED_AT)
    service, _, _ = build_runs_service(
        settings, store, workflow=workflow, data_warehouse=FakeDataWarehouseClient()
    )
    await RunStore(store).insert(make_run())

    first = await service.get_status(ORGANIZATION_ID, "sr-1")
    second = await service.get_status(ORGANIZATION_ID, "sr-1")

    assert first.state is RunState.FAILED
    assert second.state is RunState.FAILED
    assert workflow.status_calls == ["workflow-s-1-sr-1"]


async def test_logs_and_cumulated_logs(settings, store) -> None:
    workflow = FakeWorkflowClient()
    workflow.logs = {
        "fetchDatasetContainer-1": ScenarioRunContainerLogs(
            node_id="n-1", container_name="fetchDatasetContainer-1", text_log="fetched"
        ),
        "applyParametersContainer": ScenarioRunContainerLogs(node_id="n-2", text_log=""),
        "runContainer": ScenarioRunContainerLogs(node_id="n-3", text_log="simulated"),
    }
    service, _, _ = build_runs_service(
        settings, store, workflow=workflow, data_warehouse=FakeDataWarehouseClient()
    )
    await RunStore(store).insert(make_run())
    await RunStore(store).insert(make_run("sr-2", workflow_name=None))

    logs = await service.get_logs(ORGANIZATION_ID, "sr-1")
    cumulated = await service.get_cumulated_logs(ORGANIZATION_ID, "sr-1")
    empty = await service.get_logs(ORGANIZATION_ID, "sr-2")

    assert logs.scenariorun_id == "sr-1"
    assert list(logs.containers) == [
        "fetchDatasetContainer-1",
        "applyParametersContainer",
        "runContainer",
    ]
    assert cumulated == "fetched\nsimulated"
    assert empty.containers == {}


async def test_stop_requests_termination(settings, store) -> None:
    workflow = FakeWorkflowClient()
    service, _, _ = build_runs_service(
        settings, store, workflow=workflow, data_warehouse=FakeDataWarehouseClient()
    )
    await RunStore(store).insert(make_run())

    status = await service.stop(ORGANIZATION_ID, "sr-1")

    assert workflow.stopped == ["workflow-s-1-sr-1"]
    assert status.state is RunState.FAILED
    assert status.message == "Stopped with strategy 'Stop'"


async def test_only_the_owner_may_delete(settings, store) -> None:
    data_warehouse = FakeDataWarehouseClient()
    service, _, _ = build_runs_service(
        settings, store, workflow=FakeWorkflowClient(), data_warehouse=data_warehouse
    )
    run_store = RunStore(store)
    await run_store.insert(make_run())

    with pytest.raises(ScenarioRunAccessForbiddenError):
        await service.delete_run(BOB, ORGANIZATION_ID, "sr-1")
    assert data_warehouse.deleted == []
    assert await run_store.get(ORGANIZATION_ID, "sr-1") is not None

    await service.delete_run(ALICE, ORGANIZATION_ID, "sr-1")
    assert data_warehouse.deleted == ["corr-1"]
    assert await run_store.get(ORGANIZATION_ID, "sr-1") is None
