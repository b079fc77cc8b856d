"""Scenario runs: pipeline construction, dispatch, state reconciliation and cleanup."""

from .listeners import RunListeners
from .pipeline import PipelineBuilder
from .reconciler import RunStateReconciler
from .service import ScenarioRunsService

__all__ = ["PipelineBuilder", "RunListeners", "RunStateReconciler", "ScenarioRunsService"]
