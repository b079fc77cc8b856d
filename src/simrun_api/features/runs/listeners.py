"""Run reactions to catalog events."""

from __future__ import annotations

import logging

from simrun_api.common.logging import log_context
from simrun_api.infra.events import (
    EventBus,
    OrganizationRegistered,
    OrganizationUnregistered,
    ScenarioDeleted,
)

from .cleanup import RunCleanup
from .repository import RunStore

__all__ = ["RunListeners"]

logger = logging.getLogger(__name__)


class RunListeners:
    def __init__(self, *, run_store: RunStore, cleanup: RunCleanup, bus: EventBus) -> None:
        self._run_store = run_store
        self._cleanup = cleanup
        self._bus = bus

    def register(self) -> None:
        self._bus.subscribe(OrganizationRegistered, self.on_organization_registered)
        self._bus.subscribe(
            OrganizationUnregistered, self.on_organization_unregistered, background=True
        )
        self._bus.subscribe(ScenarioDeleted, self.on_scenario_deleted, background=True)

    async def on_organization_registered(self, event: OrganizationRegistered) -> None:
        await self._run_store.create_container(event.organization_id)

    async def on_organization_unregistered(self, event: OrganizationUnregistered) -> None:
        removed = await self._run_store.drop_container(event.organization_id)
        logger.info(
            "run.organization.container_dropped",
            extra=log_context(organization_id=event.organization_id, documents=removed),
        )

    async def on_scenario_deleted(self, event: ScenarioDeleted) -> None:
        """Delete every run of the scenario concurrently and wait for all attempts."""

        runs = await self._run_store.list_for_scenario(
            event.organization_id, event.workspace_id, event.scenario_id
        )
        attempted = await self._cleanup.delete_runs(runs)
        logger.info(
            "run.cascade.scenario_deleted",
            extra=log_context(
                organization_id=event.organization_id,
                workspace_id=event.workspace_id,
                scenario_id=event.scenario_id,
                runs=attempted,
            ),
        )
