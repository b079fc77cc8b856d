from __future__ import annotations

import pytest

from simrun_api.features.runs.filters import search_clauses
from simrun_api.features.runs.repository import RunStore, runs_container
from simrun_api.features.runs.schemas import RunState, ScenarioRunSearch
from simrun_api.features.store import FieldClause
from tests.helpers import ORGANIZATION_ID, WORKSPACE_ID, make_run


def test_search_clauses_only_for_populated_fields() -> None:
    search = ScenarioRunSearch(
        solution_id="sol-1",
        scenario_id="s-1",
        owner_id="",
        csm_simulation_run="corr-1",
        state=RunState.SUCCESSFUL,
    )

    assert search_clauses(search) == [
        FieldClause("solutionId", "sol-1"),
        FieldClause("scenarioId", "s-1"),
        FieldClause("csmSimulationRun", "corr-1"),
        FieldClause("state", "Successful"),
    ]
    assert search_clauses(ScenarioRunSearch()) == []


def test_search_payload_uses_camel_case() -> None:
    search = ScenarioRunSearch.model_validate({"workflowName": "wf-1", "runTemplateId": "rt-1"})

    assert search_clauses(search) == [
        FieldClause("runTemplateId", "rt-1"),
        FieldClause("workflowName", "wf-1"),
    ]


@pytest.mark.asyncio
async def test_run_store_round_trip(store) -> None:
    run_store = RunStore(store)
    run = make_run()

    await run_store.insert(run)
    loaded = await run_store.get(ORGANIZATION_ID, run.id)

    assert loaded.model_dump() == run.model_dump()
    raw = await store.get(runs_container(ORGANIZATION_ID), run.id)
    assert raw["type"] == "ScenarioRun"
    assert raw["csmSimulationRun"] == "corr-1"


@pytest.mark.asyncio
async def test_run_store_ignores_other_document_types(store) -> None:
    await store.insert(runs_container(ORGANIZATION_ID), "sr-x", {"id": "sr-x", "type": "Other"})
    run_store = RunStore(store)

    assert await run_store.get(ORGANIZATION_ID, "sr-x") is None
    assert await run_store.list_for_workspace(ORGANIZATION_ID, WORKSPACE_ID) == []


@pytest.mark.asyncio
async def test_run_store_listing_and_search(store) -> None:
    run_store = RunStore(store)
    await run_store.insert(make_run("sr-1", scenario_id="s-1"))
    await run_store.insert(make_run("sr-2", scenario_id="s-1", owner_id="bob"))
    await run_store.insert(make_run("sr-3", scenario_id="s-2", state=RunState.FAILED))

    by_scenario = await run_store.list_for_scenario(ORGANIZATION_ID, WORKSPACE_ID, "s-1")
    by_workspace = await run_store.list_for_workspace(ORGANIZATION_ID, WORKSPACE_ID)
    by_owner = await run_store.search(ORGANIZATION_ID, ScenarioRunSearch(owner_id="bob"))
    by_state = await run_store.search(ORGANIZATION_ID, ScenarioRunSearch(state=RunState.FAILED))

    assert [run.id for run in by_scenario] == ["sr-1", "sr-2"]
    assert [run.id for run in by_workspace] == ["sr-1", "sr-2", "sr-3"]
    assert [run.id for run in by_owner] == ["sr-2"]
    assert [run.id for run in by_state] == ["sr-3"]


@pytest.mark.asyncio
async def test_run_store_upsert_and_delete(store) -> None:
    run_store = RunStore(store)
    run = make_run()
    await run_store.insert(run)

    await run_store.upsert(run.model_copy(update={"state": RunState.SUCCESSFUL}))
    assert (await run_store.get(ORGANIZATION_ID, run.id)).state is RunState.SUCCESSFUL

    assert await run_store.delete(run) is True
    assert await run_store.delete(run) is False
    assert await run_store.get(ORGANIZATION_ID, run.id) is None


@pytest.mark.asyncio
async def test_run_container_lifecycle(store) -> None:
    run_store = RunStore(store)
    await run_store.create_container(ORGANIZATION_ID)
    await run_store.insert(make_run())

    assert await store.container_exists("o-1_scenario_data")
    assert await run_store.drop_container(ORGANIZATION_ID) == 1
    assert not await store.container_exists("o-1_scenario_data")
