"""Keyed-document store over SQLAlchemy.

Documents are JSON bodies grouped in named containers (one set per
organization, e.g. ``o-1_scenario_data``). Each public method runs in its own
short transaction so callers fanning out concurrently never share a session.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import and_, delete, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from simrun_api.common.logging import log_context
from simrun_api.common.time import utc_now
from simrun_api.db import session_scope

from .exceptions import DocumentConflictError
from .models import StoredContainer, StoredDocument

__all__ = ["DocumentStore", "FieldClause"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FieldClause:
    """Equality match on a string field of the document body.

    ``field`` may be dotted (``connector.id``) to reach into nested objects.
    """

    field: str
    value: str


def _json_field(field: str):
    if "." in field:
        return StoredDocument.body[tuple(field.split("."))]
    return StoredDocument.body[field]


class DocumentStore:
    """Get, list, query, insert, upsert and delete JSON documents by id."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ---- Containers -------------------------------------------------------

    async def create_container(self, name: str) -> None:
        """Create ``name`` if it does not exist yet."""

        async with session_scope(self._session_factory) as session:
            await self._ensure_container(session, name)
        logger.debug("store.container.created", extra=log_context(container=name))

    async def delete_container(self, name: str) -> int:
        """Drop ``name`` and every document in it; return the document count removed."""

        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                delete(StoredDocument).where(StoredDocument.container == name)
            )
            await session.execute(delete(StoredContainer).where(StoredContainer.name == name))
        removed = int(result.rowcount or 0)
        logger.info(
            "store.container.deleted",
            extra=log_context(container=name, documents_removed=removed),
        )
        return removed

    async def container_exists(self, name: str) -> bool:
        async with session_scope(self._session_factory) as session:
            return await session.get(StoredContainer, name) is not None

    async def list_containers(self, *, prefix: str | None = None) -> list[str]:
        stmt = select(StoredContainer.name).order_by(StoredContainer.name.asc())
        if prefix:
            stmt = stmt.where(StoredContainer.name.startswith(prefix, autoescape=True))
        async with session_scope(self._session_factory) as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ---- Reads ------------------------------------------------------------

    async def get(self, container: str, doc_id: str) -> dict[str, Any] | None:
        async with session_scope(self._session_factory) as session:
            row = await session.get(StoredDocument, (container, doc_id))
            return copy.deepcopy(row.body) if row is not None else None

    async def list_all(self, container: str) -> list[dict[str, Any]]:
        return await self.query(container, ())

    async def query(
        self,
        container: str,
        clauses: Sequence[FieldClause],
    ) -> list[dict[str, Any]]:
        """Return documents in ``container`` matching every clause (AND)."""

        predicates = [StoredDocument.container == container]
        for clause in clauses:
            predicates.append(_json_field(clause.field).as_string() == clause.value)

        stmt = (
            select(StoredDocument)
            .where(and_(*predicates))
            .order_by(StoredDocument.created_at.asc(), StoredDocument.id.asc())
        )
        async with session_scope(self._session_factory) as session:
            result = await session.execute(stmt)
            return [copy.deepcopy(row.body) for row in result.scalars().all()]

    async def count(self, container: str) -> int:
        stmt = select(func.count()).select_from(StoredDocument).where(
            StoredDocument.container == container
        )
        async with session_scope(self._session_factory) as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())

    # ---- Writes -----------------------------------------------------------

    async def insert(
        self,
        container: str,
        doc_id: str,
        body: dict[str, Any],
        *,
        partition_key: str | None = None,
    ) -> dict[str, Any]:
        """Insert a new document; raise ``DocumentConflictError`` if ``doc_id`` exists."""

        try:
            async with session_scope(self._session_factory) as session:
                await self._ensure_container(session, container)
                if await session.get(StoredDocument, (container, doc_id)) is not None:
                    raise DocumentConflictError(f"Document {doc_id} already exists in {container}")
                session.add(
                    StoredDocument(
                        container=container,
                        id=doc_id,
                        partition_key=partition_key,
                        body=copy.deepcopy(body),
                    )
                )
                await session.flush()
        except IntegrityError as exc:
            raise DocumentConflictError(
                f"Document {doc_id} already exists in {container}"
            ) from exc
        return body

    async def upsert(
        self,
        container: str,
        doc_id: str,
        body: dict[str, Any],
        *,
        partition_key: str | None = None,
    ) -> dict[str, Any]:
        """Replace the document keyed by ``doc_id``, creating it when absent."""

        async with session_scope(self._session_factory) as session:
            await self._ensure_container(session, container)
            row = await session.get(StoredDocument, (container, doc_id))
            if row is None:
                session.add(
                    StoredDocument(
                        container=container,
                        id=doc_id,
                        partition_key=partition_key,
                        body=copy.deepcopy(body),
                    )
                )
            else:
                row.body = copy.deepcopy(body)
                if partition_key is not None:
                    row.partition_key = partition_key
                row.updated_at = utc_now()
        return body

    async def delete(self, container: str, doc_id: str) -> bool:
        """Delete one document; return ``False`` when it did not exist."""

        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                delete(StoredDocument).where(
                    StoredDocument.container == container,
                    StoredDocument.id == doc_id,
                )
            )
        return bool(result.rowcount)

    # ---- Internal ---------------------------------------------------------

    @staticmethod
    async def _ensure_container(session: AsyncSession, name: str) -> None:
        stmt = (
            sqlite_insert(StoredContainer)
            .values(name=name, created_at=utc_now())
            .on_conflict_do_nothing(index_elements=["name"])
        )
        await session.execute(stmt)
