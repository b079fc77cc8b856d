"""Best-effort teardown of run records and their warehouse data."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from simrun_api.common.logging import log_context

from .ingestion import DataWarehouseClient
from .repository import RunStore
from .schemas import ScenarioRun

__all__ = ["RunCleanup"]

logger = logging.getLogger(__name__)


class RunCleanup:
    """Delete warehouse records, then the run record; neither failure stops the other."""

    def __init__(self, *, run_store: RunStore, data_warehouse: DataWarehouseClient) -> None:
        self._run_store = run_store
        self._data_warehouse = data_warehouse

    async def delete_run(self, run: ScenarioRun) -> None:
        context = log_context(
            organization_id=run.organization_id,
            workspace_id=run.workspace_id,
            scenario_id=run.scenario_id,
            run_id=run.id,
            csm_simulation_run=run.csm_simulation_run,
        )

        if run.workspace_key and run.csm_simulation_run:
            try:
                await self._data_warehouse.delete_run_data(
                    workspace_key=run.workspace_key,
                    correlation_id=run.csm_simulation_run,
                )
            except Exception:
                logger.warning("run.delete.data_warehouse_failed", extra=context, exc_info=True)
        else:
            logger.debug("run.delete.data_warehouse_skipped", extra=context)

        try:
            await self._run_store.delete(run)
        except Exception:
            logger.warning("run.delete.store_failed", extra=context, exc_info=True)
            return
        logger.info("run.delete.success", extra=context)

    async def delete_runs(self, runs: Sequence[ScenarioRun]) -> int:
        """Delete ``runs`` concurrently and wait for every attempt; return how many were tried."""

        results = await asyncio.gather(
            *(self.delete_run(run) for run in runs), return_exceptions=True
        )
        for run, result in zip(runs, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(
                    "run.delete.failed",
                    extra=log_context(organization_id=run.organization_id, run_id=run.id),
                    exc_info=result,
                )
        return len(results)
