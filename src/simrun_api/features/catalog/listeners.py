"""Catalog reactions to organization and connector lifecycle events."""

from __future__ import annotations

import logging

from simrun_api.common.logging import log_context
from simrun_api.features.store import DocumentStore
from simrun_api.infra.events import (
    ConnectorRemoved,
    ConnectorRemovedForOrganization,
    EventBus,
    OrganizationRegistered,
    OrganizationUnregistered,
)

from .service import CatalogService, datasets_container, organization_containers

__all__ = ["CatalogListeners"]

logger = logging.getLogger(__name__)


class CatalogListeners:
    """Container lifecycle per organization and connector detachment from datasets."""

    def __init__(self, *, catalog: CatalogService, store: DocumentStore, bus: EventBus) -> None:
        self._catalog = catalog
        self._store = store
        self._bus = bus

    def register(self) -> None:
        self._bus.subscribe(OrganizationRegistered, self.on_organization_registered)
        self._bus.subscribe(
            OrganizationUnregistered, self.on_organization_unregistered, background=True
        )
        self._bus.subscribe(ConnectorRemoved, self.on_connector_removed, background=True)
        self._bus.subscribe(
            ConnectorRemovedForOrganization,
            self.on_connector_removed_for_organization,
            background=True,
        )

    async def on_organization_registered(self, event: OrganizationRegistered) -> None:
        for container in organization_containers(event.organization_id):
            await self._store.create_container(container)

    async def on_organization_unregistered(self, event: OrganizationUnregistered) -> None:
        for container in organization_containers(event.organization_id):
            await self._store.delete_container(container)
        logger.info(
            "catalog.organization.containers_dropped",
            extra=log_context(organization_id=event.organization_id),
        )

    async def on_connector_removed(self, event: ConnectorRemoved) -> None:
        for organization in await self._catalog.list_organizations():
            await self._bus.publish(
                ConnectorRemovedForOrganization(
                    organization_id=organization.id,
                    connector_id=event.connector_id,
                )
            )

    async def on_connector_removed_for_organization(
        self, event: ConnectorRemovedForOrganization
    ) -> None:
        datasets = await self._catalog.list_datasets_using_connector(
            event.organization_id, event.connector_id
        )
        for dataset in datasets:
            detached = dataset.model_copy(update={"connector": None})
            await self._store.upsert(
                datasets_container(event.organization_id),
                detached.id,
                detached.model_dump(mode="json"),
            )
        if datasets:
            logger.info(
                "catalog.connector.detached",
                extra=log_context(
                    organization_id=event.organization_id,
                    connector_id=event.connector_id,
                    datasets=len(datasets),
                ),
            )
