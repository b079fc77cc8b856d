"""Run records kept in the per-organization ``<org>_scenario_data`` container."""

from __future__ import annotations

from collections.abc import Sequence

from simrun_api.features.store import DocumentStore, FieldClause

from .filters import search_clauses
from .schemas import ScenarioRun, ScenarioRunSearch

__all__ = ["RUN_DOCUMENT_TYPE", "RunStore", "runs_container"]

RUN_DOCUMENT_TYPE = "ScenarioRun"


def runs_container(organization_id: str) -> str:
    return f"{organization_id}_scenario_data"


class RunStore:
    """Typed access to run documents; the partition key is the run owner."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def create_container(self, organization_id: str) -> None:
        await self._store.create_container(runs_container(organization_id))

    async def drop_container(self, organization_id: str) -> int:
        return await self._store.delete_container(runs_container(organization_id))

    async def get(self, organization_id: str, run_id: str) -> ScenarioRun | None:
        body = await self._store.get(runs_container(organization_id), run_id)
        if body is None or body.get("type") != RUN_DOCUMENT_TYPE:
            return None
        return ScenarioRun.model_validate(body)

    async def insert(self, run: ScenarioRun) -> ScenarioRun:
        await self._store.insert(
            runs_container(run.organization_id),
            run.id,
            self._to_document(run),
            partition_key=run.owner_id,
        )
        return run

    async def upsert(self, run: ScenarioRun) -> ScenarioRun:
        await self._store.upsert(
            runs_container(run.organization_id),
            run.id,
            self._to_document(run),
            partition_key=run.owner_id,
        )
        return run

    async def delete(self, run: ScenarioRun) -> bool:
        return await self._store.delete(runs_container(run.organization_id), run.id)

    async def list_for_scenario(
        self, organization_id: str, workspace_id: str, scenario_id: str
    ) -> list[ScenarioRun]:
        return await self._query(
            organization_id,
            [FieldClause("workspaceId", workspace_id), FieldClause("scenarioId", scenario_id)],
        )

    async def list_for_workspace(self, organization_id: str, workspace_id: str) -> list[ScenarioRun]:
        return await self._query(organization_id, [FieldClause("workspaceId", workspace_id)])

    async def search(self, organization_id: str, search: ScenarioRunSearch) -> list[ScenarioRun]:
        return await self._query(organization_id, search_clauses(search))

    async def _query(
        self, organization_id: str, clauses: Sequence[FieldClause]
    ) -> list[ScenarioRun]:
        bodies = await self._store.query(
            runs_container(organization_id),
            [FieldClause("type", RUN_DOCUMENT_TYPE), *clauses],
        )
        return [ScenarioRun.model_validate(body) for body in bodies]

    @staticmethod
    def _to_document(run: ScenarioRun) -> dict:
        document = run.model_dump(mode="json")
        document["type"] = RUN_DOCUMENT_TYPE
        return document
