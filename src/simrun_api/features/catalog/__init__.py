"""Catalog entities (organizations, connectors, datasets, solutions, workspaces, scenarios)."""

from .listeners import CatalogListeners
from .service import CatalogService

__all__ = ["CatalogListeners", "CatalogService"]
