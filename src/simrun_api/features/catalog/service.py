"""Catalog reads and the writes that publish cascade events."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from simrun_api.common.logging import log_context
from simrun_api.features.store import DocumentStore, EntityNotFoundError, FieldClause
from simrun_api.infra.events import (
    ConnectorRemoved,
    EventBus,
    OrganizationRegistered,
    OrganizationUnregistered,
    ScenarioDeleted,
)

from .schemas import Connector, Dataset, Organization, Scenario, Solution, Workspace

__all__ = [
    "CONNECTORS_CONTAINER",
    "ORGANIZATIONS_CONTAINER",
    "CatalogService",
    "datasets_container",
    "organization_containers",
    "scenarios_container",
    "solutions_container",
    "workspaces_container",
]

logger = logging.getLogger(__name__)

ORGANIZATIONS_CONTAINER = "organizations"
CONNECTORS_CONTAINER = "connectors"


def solutions_container(organization_id: str) -> str:
    return f"{organization_id}_solutions"


def workspaces_container(organization_id: str) -> str:
    return f"{organization_id}_workspaces"


def datasets_container(organization_id: str) -> str:
    return f"{organization_id}_datasets"


def scenarios_container(organization_id: str) -> str:
    return f"{organization_id}_scenarios"


def organization_containers(organization_id: str) -> list[str]:
    """Per-organization catalog containers, created and dropped together."""
    return [
        solutions_container(organization_id),
        workspaces_container(organization_id),
        datasets_container(organization_id),
        scenarios_container(organization_id),
    ]


class CatalogService:
    """Load and persist Organization, Connector, Dataset, Solution, Workspace and Scenario."""

    def __init__(self, *, store: DocumentStore, bus: EventBus) -> None:
        self._store = store
        self._bus = bus

    # ---- Organizations ----------------------------------------------------

    async def get_organization(self, organization_id: str) -> Organization:
        body = await self._store.get(ORGANIZATIONS_CONTAINER, organization_id)
        if body is None:
            raise EntityNotFoundError("Organization", organization_id)
        return Organization.model_validate(body)

    async def list_organizations(self) -> list[Organization]:
        bodies = await self._store.list_all(ORGANIZATIONS_CONTAINER)
        return [Organization.model_validate(body) for body in bodies]

    async def register_organization(self, organization: Organization) -> Organization:
        await self._store.insert(
            ORGANIZATIONS_CONTAINER,
            organization.id,
            organization.model_dump(mode="json"),
        )
        logger.info(
            "catalog.organization.registered",
            extra=log_context(organization_id=organization.id),
        )
        await self._bus.publish(OrganizationRegistered(organization_id=organization.id))
        return organization

    async def unregister_organization(self, organization_id: str) -> None:
        if not await self._store.delete(ORGANIZATIONS_CONTAINER, organization_id):
            raise EntityNotFoundError("Organization", organization_id)
        logger.info(
            "catalog.organization.unregistered",
            extra=log_context(organization_id=organization_id),
        )
        await self._bus.publish(OrganizationUnregistered(organization_id=organization_id))

    # ---- Connectors -------------------------------------------------------

    async def get_connector(self, connector_id: str) -> Connector:
        body = await self._store.get(CONNECTORS_CONTAINER, connector_id)
        if body is None:
            raise EntityNotFoundError("Connector", connector_id)
        return Connector.model_validate(body)

    async def save_connector(self, connector: Connector) -> Connector:
        await self._store.upsert(
            CONNECTORS_CONTAINER, connector.id, connector.model_dump(mode="json")
        )
        return connector

    async def remove_connector(self, connector_id: str) -> None:
        if not await self._store.delete(CONNECTORS_CONTAINER, connector_id):
            raise EntityNotFoundError("Connector", connector_id)
        logger.info("catalog.connector.removed", extra=log_context(connector_id=connector_id))
        await self._bus.publish(ConnectorRemoved(connector_id=connector_id))

    async def find_connectors(self, connector_ids: Iterable[str]) -> list[Connector]:
        """Return the connectors that exist among ``connector_ids`` (missing ones are skipped)."""

        connectors: list[Connector] = []
        for connector_id in dict.fromkeys(connector_ids):
            body = await self._store.get(CONNECTORS_CONTAINER, connector_id)
            if body is not None:
                connectors.append(Connector.model_validate(body))
        return connectors

    # ---- Datasets ---------------------------------------------------------

    async def get_dataset(self, organization_id: str, dataset_id: str) -> Dataset:
        container = datasets_container(organization_id)
        body = await self._store.get(container, dataset_id)
        if body is None:
            raise EntityNotFoundError("Dataset", dataset_id, container=container)
        return Dataset.model_validate(body)

    async def save_dataset(self, organization_id: str, dataset: Dataset) -> Dataset:
        await self._store.upsert(
            datasets_container(organization_id), dataset.id, dataset.model_dump(mode="json")
        )
        return dataset

    async def list_datasets_using_connector(
        self, organization_id: str, connector_id: str
    ) -> list[Dataset]:
        bodies = await self._store.query(
            datasets_container(organization_id),
            [FieldClause("connector.id", connector_id)],
        )
        return [Dataset.model_validate(body) for body in bodies]

    # ---- Solutions / Workspaces ------------------------------------------

    async def get_solution(self, organization_id: str, solution_id: str) -> Solution:
        container = solutions_container(organization_id)
        body = await self._store.get(container, solution_id)
        if body is None:
            raise EntityNotFoundError("Solution", solution_id, container=container)
        return Solution.model_validate(body)

    async def save_solution(self, organization_id: str, solution: Solution) -> Solution:
        await self._store.upsert(
            solutions_container(organization_id), solution.id, solution.model_dump(mode="json")
        )
        return solution

    async def get_workspace(self, organization_id: str, workspace_id: str) -> Workspace:
        container = workspaces_container(organization_id)
        body = await self._store.get(container, workspace_id)
        if body is None:
            raise EntityNotFoundError("Workspace", workspace_id, container=container)
        return Workspace.model_validate(body)

    async def save_workspace(self, organization_id: str, workspace: Workspace) -> Workspace:
        await self._store.upsert(
            workspaces_container(organization_id), workspace.id, workspace.model_dump(mode="json")
        )
        return workspace

    # ---- Scenarios --------------------------------------------------------

    async def get_scenario(
        self, organization_id: str, workspace_id: str, scenario_id: str
    ) -> Scenario:
        container = scenarios_container(organization_id)
        body = await self._store.get(container, scenario_id)
        if body is None:
            raise EntityNotFoundError("Scenario", scenario_id, container=container)
        scenario = Scenario.model_validate(body)
        if scenario.workspace_id is not None and scenario.workspace_id != workspace_id:
            raise EntityNotFoundError("Scenario", scenario_id, container=container)
        return scenario

    async def save_scenario(
        self, organization_id: str, workspace_id: str, scenario: Scenario
    ) -> Scenario:
        if scenario.workspace_id is None:
            scenario = scenario.model_copy(update={"workspace_id": workspace_id})
        await self._store.upsert(
            scenarios_container(organization_id), scenario.id, scenario.model_dump(mode="json")
        )
        return scenario

    async def delete_scenario(
        self, organization_id: str, workspace_id: str, scenario_id: str
    ) -> None:
        await self.get_scenario(organization_id, workspace_id, scenario_id)
        await self._store.delete(scenarios_container(organization_id), scenario_id)
        logger.info(
            "catalog.scenario.deleted",
            extra=log_context(
                organization_id=organization_id,
                workspace_id=workspace_id,
                scenario_id=scenario_id,
            ),
        )
        await self._bus.publish(
            ScenarioDeleted(
                organization_id=organization_id,
                workspace_id=workspace_id,
                scenario_id=scenario_id,
            )
        )
