"""Domain exceptions for the document store."""

from __future__ import annotations

__all__ = ["DocumentConflictError", "EntityNotFoundError"]


class EntityNotFoundError(RuntimeError):
    """Raised when a required document is absent from its container."""

    def __init__(self, kind: str, entity_id: str, *, container: str | None = None) -> None:
        where = f" in {container}" if container else ""
        super().__init__(f"{kind} #{entity_id} not found{where}")
        self.kind = kind
        self.entity_id = entity_id
        self.container = container


class DocumentConflictError(RuntimeError):
    """Raised when inserting a document whose id already exists."""
