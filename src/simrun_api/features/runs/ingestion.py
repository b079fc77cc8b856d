"""Data warehouse client and ingestion state monitor.

The warehouse is queried with the workspace key as database name. A run's
records are found by their correlation id (``SimulationRun`` column) and
dropped through the ``drop-by:<correlation id>`` extent tag set at ingestion.
The same tag scopes the ingestion failures counted for a run.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

import httpx

from simrun_api.common.logging import log_context
from simrun_api.common.time import utc_now
from simrun_api.settings import Settings

from .exceptions import DataWarehouseError
from .schemas import DataIngestionState

__all__ = [
    "AdxDataWarehouseClient",
    "DataWarehouseClient",
    "IngestionMonitor",
    "IngestionSnapshot",
]

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_.:-]+$")
INGESTED_TABLES = ("ProbesMeasures", "ControlPlane")


@dataclass(frozen=True, slots=True)
class IngestionSnapshot:
    """Counters gathered for one correlation id.

    ``sent_messages_total`` is ``None`` until the simulator reported on the control plane.
    """

    sent_messages_total: int | None
    probes_measures_count: int
    ingestion_failures: int


class DataWarehouseClient(Protocol):
    async def ingestion_snapshot(
        self,
        *,
        workspace_key: str,
        correlation_id: str,
        failures_since: datetime,
        failures_until: datetime,
    ) -> IngestionSnapshot: ...

    async def delete_run_data(self, *, workspace_key: str, correlation_id: str) -> None: ...


def _checked_correlation_id(correlation_id: str) -> str:
    if not _IDENTIFIER_RE.match(correlation_id):
        raise DataWarehouseError(f"Invalid correlation id: {correlation_id!r}")
    return correlation_id


def _checked_database(workspace_key: str) -> str:
    if not _IDENTIFIER_RE.match(workspace_key):
        raise DataWarehouseError(f"Invalid workspace key: {workspace_key!r}")
    return workspace_key


def _kusto_datetime(value: datetime) -> str:
    return f"datetime({value.isoformat()})"


class AdxDataWarehouseClient:
    """Azure Data Explorer REST (v1 query and management endpoints) over httpx."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    async def ingestion_snapshot(
        self,
        *,
        workspace_key: str,
        correlation_id: str,
        failures_since: datetime,
        failures_until: datetime,
    ) -> IngestionSnapshot:
        run = _checked_correlation_id(correlation_id)
        database = _checked_database(workspace_key)
        control_plane = await self._query(
            workspace_key,
            f"ControlPlane | where SimulationRun == '{run}' "
            "| summarize Rows = count(), SentMessagesTotal = sum(toint(SimulatorTotalMessages))",
        )
        probes = await self._query(
            workspace_key,
            f"ProbesMeasures | where SimulationRun == '{run}' | count",
        )
        tables = ", ".join(f"'{table}'" for table in INGESTED_TABLES)
        # Failures are listed cluster-wide; keep those of this run's tagged ingestions.
        failures = await self._management(
            workspace_key,
            ".show ingestion failures "
            f"| where FailedOn between ({_kusto_datetime(failures_since)} "
            f".. {_kusto_datetime(failures_until)}) "
            f"| where Database == '{database}' and Table in ({tables}) "
            f"| where IngestionProperties has 'drop-by:{run}' | count",
        )

        sent = None
        if _first_int(control_plane, "Rows") > 0:
            sent = _first_int(control_plane, "SentMessagesTotal")
        return IngestionSnapshot(
            sent_messages_total=sent,
            probes_measures_count=_first_int(probes, "Count"),
            ingestion_failures=_first_int(failures, "Count"),
        )

    async def delete_run_data(self, *, workspace_key: str, correlation_id: str) -> None:
        run = _checked_correlation_id(correlation_id)
        await self._management(
            workspace_key,
            f".drop extents <| .show database extents where tags has 'drop-by:{run}'",
        )

    # ------------------------------------------------------------------ #
    # HTTP plumbing
    # ------------------------------------------------------------------ #

    async def _query(self, database: str, csl: str) -> list[dict[str, Any]]:
        return await self._post("v1/rest/query", database, csl)

    async def _management(self, database: str, csl: str) -> list[dict[str, Any]]:
        return await self._post("v1/rest/mgmt", database, csl)

    async def _post(self, path: str, database: str, csl: str) -> list[dict[str, Any]]:
        base = self._settings.data_warehouse_base_uri
        if not base:
            raise DataWarehouseError("Data warehouse is not configured")
        headers = {"Accept": "application/json"}
        token = self._settings.data_warehouse_token
        if token is not None and token.get_secret_value():
            headers["Authorization"] = f"Bearer {token.get_secret_value()}"
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.http_timeout.total_seconds(),
                headers=headers,
                transport=self._transport,
            ) as client:
                response = await client.post(f"{base}/{path}", json={"db": database, "csl": csl})
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise DataWarehouseError(f"Data warehouse call failed: {exc}") from exc
        return _first_table_rows(payload)


def _first_table_rows(payload: Any) -> list[dict[str, Any]]:
    """Rows of the primary result table as ``{column: value}`` dicts."""

    if not isinstance(payload, dict):
        raise DataWarehouseError("Unexpected data warehouse response: not an object")
    tables = payload.get("Tables")
    if not tables:
        return []
    if not isinstance(tables, list) or not isinstance(tables[0], dict):
        raise DataWarehouseError("Unexpected data warehouse response: malformed Tables")
    table = tables[0]
    columns = table.get("Columns") or []
    rows = table.get("Rows") or []
    well_formed = (
        isinstance(columns, list)
        and isinstance(rows, list)
        and all(isinstance(column, dict) for column in columns)
        and all(isinstance(row, list) for row in rows)
    )
    if not well_formed:
        raise DataWarehouseError("Unexpected data warehouse response: malformed table")
    names = [column.get("ColumnName") for column in columns]
    return [dict(zip(names, row, strict=False)) for row in rows]


def _first_int(rows: list[dict[str, Any]], column: str) -> int:
    value = rows[0].get(column) if rows else None
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise DataWarehouseError(f"Unexpected {column} value: {value!r}") from exc


class IngestionMonitor:
    """Turn warehouse counters into a ``DataIngestionState``.

    - Within ``ingestion_waiting_time`` of the workflow end nothing is queried: ``InProgress``.
    - Ingestion failures inside the observation window mark the run ``Failure``.
    - No control-plane report yet: ``InProgress`` until ``ingestion_no_data_timeout``, then
      ``Unknown``.
    - Fewer probes measures than announced: ``InProgress``; otherwise ``Successful``.

    Lookup errors and timeouts degrade to ``Unknown``.
    """

    def __init__(
        self,
        settings: Settings,
        client: DataWarehouseClient,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._settings = settings
        self._client = client
        self._clock = clock

    async def get_state(
        self,
        *,
        workspace_key: str,
        correlation_id: str,
        workflow_end_time: datetime | None,
        run_id: str | None = None,
    ) -> DataIngestionState:
        now = self._clock()
        if (
            workflow_end_time is not None
            and now < workflow_end_time + self._settings.ingestion_waiting_time
        ):
            return DataIngestionState.IN_PROGRESS

        ended_at = workflow_end_time or now
        window_end = ended_at + self._settings.ingestion_observation_window
        try:
            snapshot = await asyncio.wait_for(
                self._client.ingestion_snapshot(
                    workspace_key=workspace_key,
                    correlation_id=correlation_id,
                    failures_since=ended_at,
                    failures_until=window_end,
                ),
                timeout=self._settings.ingestion_lookup_timeout.total_seconds(),
            )
        except (DataWarehouseError, TimeoutError):
            logger.warning(
                "run.ingestion.lookup_failed",
                extra=log_context(run_id=run_id, csm_simulation_run=correlation_id),
                exc_info=True,
            )
            return DataIngestionState.UNKNOWN

        if snapshot.ingestion_failures > 0:
            return DataIngestionState.FAILURE
        if snapshot.sent_messages_total is None:
            if (
                workflow_end_time is not None
                and now < workflow_end_time + self._settings.ingestion_no_data_timeout
            ):
                return DataIngestionState.IN_PROGRESS
            return DataIngestionState.UNKNOWN
        if snapshot.probes_measures_count < snapshot.sent_messages_total:
            return DataIngestionState.IN_PROGRESS
        return DataIngestionState.SUCCESSFUL