from __future__ import annotations

import pytest

from simrun_api.features.catalog.listeners import CatalogListeners
from simrun_api.features.catalog.service import CatalogService, organization_containers
from simrun_api.features.store import DocumentConflictError, EntityNotFoundError
from simrun_api.infra.events import EventBus, ScenarioDeleted
from tests.helpers import (
    CONNECTOR_ID,
    ORGANIZATION_ID,
    SCENARIO_ID,
    WORKSPACE_ID,
    make_connector,
    make_dataset,
    make_organization,
    make_scenario,
)

pytestmark = pytest.mark.asyncio


def _catalog(store) -> tuple[CatalogService, EventBus]:
    bus = EventBus()
    catalog = CatalogService(store=store, bus=bus)
    CatalogListeners(catalog=catalog, store=store, bus=bus).register()
    return catalog, bus


async def test_register_creates_organization_containers(store) -> None:
    catalog, _ = _catalog(store)

    await catalog.register_organization(make_organization())

    assert organization_containers(ORGANIZATION_ID) == [
        "o-1_solutions",
        "o-1_workspaces",
        "o-1_datasets",
        "o-1_scenarios",
    ]
    for container in organization_containers(ORGANIZATION_ID):
        assert await store.container_exists(container)
    assert [org.id for org in await catalog.list_organizations()] == [ORGANIZATION_ID]
    with pytest.raises(DocumentConflictError):
        await catalog.register_organization(make_organization())


async def test_unregister_drops_organization_containers(store) -> None:
    catalog, bus = _catalog(store)
    await catalog.register_organization(make_organization())
    await catalog.save_dataset(ORGANIZATION_ID, make_dataset("d-1"))

    await catalog.unregister_organization(ORGANIZATION_ID)
    await bus.drain()

    for container in organization_containers(ORGANIZATION_ID):
        assert not await store.container_exists(container)
    with pytest.raises(EntityNotFoundError):
        await catalog.get_organization(ORGANIZATION_ID)
    with pytest.raises(EntityNotFoundError):
        await catalog.unregister_organization(ORGANIZATION_ID)


async def test_removed_connector_is_detached_from_every_organization(store) -> None:
    catalog, bus = _catalog(store)
    await catalog.register_organization(make_organization("o-1"))
    await catalog.register_organization(make_organization("o-2"))
    await catalog.save_connector(make_connector())
    await catalog.save_dataset("o-1", make_dataset("d-1"))
    await catalog.save_dataset("o-1", make_dataset("d-2", connector_id="c-other"))
    await catalog.save_dataset("o-2", make_dataset("d-3"))

    await catalog.remove_connector(CONNECTOR_ID)
    await bus.drain()

    assert (await catalog.get_dataset("o-1", "d-1")).connector is None
    assert (await catalog.get_dataset("o-1", "d-2")).connector.id == "c-other"
    assert (await catalog.get_dataset("o-2", "d-3")).connector is None
    with pytest.raises(EntityNotFoundError):
        await catalog.get_connector(CONNECTOR_ID)


async def test_find_connectors_skips_missing_and_duplicates(store) -> None:
    catalog, _ = _catalog(store)
    await catalog.save_connector(make_connector("c-1"))
    await catalog.save_connector(make_connector("c-2"))

    found = await catalog.find_connectors(["c-2", "c-404", "c-1", "c-2"])

    assert [connector.id for connector in found] == ["c-2", "c-1"]


async def test_scenario_in_another_workspace_is_not_found(store) -> None:
    catalog, _ = _catalog(store)
    await catalog.save_scenario(ORGANIZATION_ID, WORKSPACE_ID, make_scenario())

    assert (await catalog.get_scenario(ORGANIZATION_ID, WORKSPACE_ID, SCENARIO_ID)).id == SCENARIO_ID
    with pytest.raises(EntityNotFoundError, match="Scenario #s-1 not found"):
        await catalog.get_scenario(ORGANIZATION_ID, "w-2", SCENARIO_ID)


async def test_save_scenario_fills_in_workspace(store) -> None:
    catalog, _ = _catalog(store)
    scenario = make_scenario().model_copy(update={"workspace_id": None})

    saved = await catalog.save_scenario(ORGANIZATION_ID, WORKSPACE_ID, scenario)

    assert saved.workspace_id == WORKSPACE_ID


async def test_delete_scenario_publishes_event(store) -> None:
    catalog, bus = _catalog(store)
    events: list[ScenarioDeleted] = []

    async def capture(event: ScenarioDeleted) -> None:
        events.append(event)

    bus.subscribe(ScenarioDeleted, capture)
    await catalog.save_scenario(ORGANIZATION_ID, WORKSPACE_ID, make_scenario())

    await catalog.delete_scenario(ORGANIZATION_ID, WORKSPACE_ID, SCENARIO_ID)

    assert events == [
        ScenarioDeleted(
            organization_id=ORGANIZATION_ID, workspace_id=WORKSPACE_ID, scenario_id=SCENARIO_ID
        )
    ]
    with pytest.raises(EntityNotFoundError):
        await catalog.delete_scenario(ORGANIZATION_ID, WORKSPACE_ID, SCENARIO_ID)
