"""Run state reconciliation.

Executor phase plus (optionally) data-warehouse ingestion state yield the
client-facing ``RunState``. Terminal states are written back onto the run
record once and answered from the record afterwards.
"""

from __future__ import annotations

import logging
from datetime import datetime

from simrun_api.common.logging import log_context
from simrun_api.settings import Settings

from .exceptions import WorkflowServiceError
from .ingestion import IngestionMonitor
from .pipeline import CONTROL_PLANE_TOPIC_VAR
from .repository import RunStore
from .schemas import DataIngestionState, RunState, ScenarioRun, ScenarioRunStatus
from .workflow import WorkflowClient, WorkflowStatus

__all__ = [
    "FAILED_PHASES",
    "RUNNING_PHASES",
    "SUCCEEDED_PHASE",
    "RunStateReconciler",
    "map_phase",
    "sdk_version_supports_ingestion",
    "should_check_ingestion",
]

logger = logging.getLogger(__name__)

RUNNING_PHASES = frozenset({"Pending", "Running"})
SUCCEEDED_PHASE = "Succeeded"
FAILED_PHASES = frozenset({"Skipped", "Failed", "Error", "Omitted"})

_INGESTION_TO_RUN_STATE = {
    DataIngestionState.IN_PROGRESS: RunState.DATA_INGESTION_IN_PROGRESS,
    DataIngestionState.SUCCESSFUL: RunState.SUCCESSFUL,
    DataIngestionState.FAILURE: RunState.FAILED,
    DataIngestionState.UNKNOWN: RunState.UNKNOWN,
}


def sdk_version_supports_ingestion(sdk_version: str | None, minimum: tuple[int, int]) -> bool:
    """Whether a solution built with ``sdk_version`` reports ingestion telemetry.

    Missing or unparsable versions count as compatible so the check stays on.
    """

    if sdk_version is None:
        return True
    parts = sdk_version.split(".")
    if len(parts) < 2:
        logger.error("run.sdk_version.malformed", extra={"sdk_version": sdk_version})
        return True
    try:
        major, minor = int(parts[0]), int(parts[1])
    except ValueError:
        logger.error("run.sdk_version.malformed", extra={"sdk_version": sdk_version})
        return True
    min_major, min_minor = minimum
    return (major == min_major and minor >= min_minor) or major > min_major


def should_check_ingestion(run: ScenarioRun, *, minimum_sdk: tuple[int, int]) -> bool:
    emits_telemetry = any(
        (container.env_vars.get(CONTROL_PLANE_TOPIC_VAR) or "").strip()
        for container in run.containers or ()
    )
    return (
        emits_telemetry
        and not run.no_data_ingestion_state
        and bool(run.workspace_key)
        and sdk_version_supports_ingestion(run.sdk_version, minimum_sdk)
    )


def map_phase(
    phase: str | None,
    *,
    check_ingestion: bool,
    ingestion_state: DataIngestionState | None = None,
    run_id: str | None = None,
) -> RunState:
    if phase in RUNNING_PHASES:
        return RunState.RUNNING
    if phase == SUCCEEDED_PHASE:
        if not check_ingestion:
            return RunState.SUCCESSFUL
        if ingestion_state is None:
            return RunState.UNKNOWN
        return _INGESTION_TO_RUN_STATE[ingestion_state]
    if phase in FAILED_PHASES:
        return RunState.FAILED
    logger.warning("run.status.unhandled_phase", extra=log_context(run_id=run_id, phase=phase))
    return RunState.UNKNOWN


class RunStateReconciler:
    """Single writer of a run's cached terminal state."""

    def __init__(
        self,
        *,
        settings: Settings,
        run_store: RunStore,
        workflow: WorkflowClient,
        monitor: IngestionMonitor,
    ) -> None:
        self._settings = settings
        self._run_store = run_store
        self._workflow = workflow
        self._monitor = monitor

    async def reconcile(
        self,
        phase: str | None,
        *,
        correlation_id: str | None,
        check_ingestion: bool,
        workspace_key: str | None = None,
        workflow_end_time: datetime | None = None,
        run_id: str | None = None,
    ) -> RunState:
        """Map ``phase`` to a ``RunState``, querying ingestion at most once.

        Runs recorded without a correlation id have nothing to look up in the
        warehouse and are mapped as if ingestion were not checked.
        """

        check_ingestion = check_ingestion and correlation_id is not None
        ingestion_state = None
        if phase == SUCCEEDED_PHASE and check_ingestion and workspace_key:
            ingestion_state = await self._monitor.get_state(
                workspace_key=workspace_key,
                correlation_id=correlation_id,
                workflow_end_time=workflow_end_time,
                run_id=run_id,
            )
        return map_phase(
            phase,
            check_ingestion=check_ingestion,
            ingestion_state=ingestion_state,
            run_id=run_id,
        )

    async def status(self, run: ScenarioRun) -> ScenarioRunStatus:
        if run.state is not None and run.state.is_terminal:
            return self._status_from_record(run)
        if not run.workflow_name:
            return self._status_from_record(run, state=RunState.UNKNOWN)

        try:
            workflow_status = await self._workflow.get_status(run.workflow_name)
        except WorkflowServiceError:
            logger.warning(
                "run.status.workflow_unavailable",
                extra=log_context(organization_id=run.organization_id, run_id=run.id),
                exc_info=True,
            )
            return self._status_from_record(run, state=RunState.UNKNOWN)

        state = await self.reconcile(
            workflow_status.phase,
            correlation_id=run.csm_simulation_run,
            check_ingestion=should_check_ingestion(
                run, minimum_sdk=self._settings.min_sdk_version_tuple
            ),
            workspace_key=run.workspace_key,
            workflow_end_time=workflow_status.end_time,
            run_id=run.id,
        )
        if state.is_terminal:
            await self._cache_terminal(run, state, workflow_status)
        return self._status_from_workflow(run, state, workflow_status)

    async def refresh(self, run: ScenarioRun) -> ScenarioRun:
        """Return ``run`` carrying its current state; terminal runs come back untouched."""

        if run.state is not None and run.state.is_terminal:
            return run
        status = await self.status(run)
        return run.model_copy(
            update={"state": status.state, "phase": status.phase, "end_time": status.end_time}
        )

    async def _cache_terminal(
        self, run: ScenarioRun, state: RunState, workflow_status: WorkflowStatus
    ) -> None:
        cached = run.model_copy(
            update={
                "state": state,
                "phase": workflow_status.phase,
                "end_time": workflow_status.end_time,
            }
        )
        try:
            await self._run_store.upsert(cached)
        except Exception:
            logger.warning(
                "run.status.cache_failed",
                extra=log_context(organization_id=run.organization_id, run_id=run.id),
                exc_info=True,
            )
            return
        logger.info(
            "run.status.terminal",
            extra=log_context(
                organization_id=run.organization_id,
                run_id=run.id,
                state=state.value,
            ),
        )

    @staticmethod
    def _status_from_record(
        run: ScenarioRun, *, state: RunState | None = None
    ) -> ScenarioRunStatus:
        return ScenarioRunStatus(
            id=run.id,
            organization_id=run.organization_id,
            workflow_id=run.workflow_id,
            workflow_name=run.workflow_name,
            start_time=run.start_time,
            end_time=run.end_time,
            phase=run.phase,
            state=state or run.state or RunState.UNKNOWN,
        )

    @staticmethod
    def _status_from_workflow(
        run: ScenarioRun, state: RunState, workflow_status: WorkflowStatus
    ) -> ScenarioRunStatus:
        return ScenarioRunStatus(
            id=run.id,
            organization_id=run.organization_id,
            workflow_id=run.workflow_id,
            workflow_name=run.workflow_name,
            start_time=workflow_status.start_time or run.start_time,
            end_time=workflow_status.end_time,
            phase=workflow_status.phase,
            progress=workflow_status.progress,
            message=workflow_status.message,
            state=state,
            nodes=list(workflow_status.nodes) or None,
        )
