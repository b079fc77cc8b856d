"""In-process domain events."""

from .bus import EventBus, EventHandler
from .types import (
    ConnectorRemoved,
    ConnectorRemovedForOrganization,
    DomainEvent,
    OrganizationRegistered,
    OrganizationUnregistered,
    ScenarioDeleted,
    ScenarioRunData,
    ScenarioRunStartedForScenario,
    WorkflowData,
)

__all__ = [
    "ConnectorRemoved",
    "ConnectorRemovedForOrganization",
    "DomainEvent",
    "EventBus",
    "EventHandler",
    "OrganizationRegistered",
    "OrganizationUnregistered",
    "ScenarioDeleted",
    "ScenarioRunData",
    "ScenarioRunStartedForScenario",
    "WorkflowData",
]
