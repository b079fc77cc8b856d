"""Keyed-document store."""

from .exceptions import DocumentConflictError, EntityNotFoundError
from .repository import DocumentStore, FieldClause

__all__ = ["DocumentConflictError", "DocumentStore", "EntityNotFoundError", "FieldClause"]
