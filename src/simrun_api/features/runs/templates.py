"""Run template lookup."""

from __future__ import annotations

from simrun_api.features.catalog.schemas import RunTemplate, Solution

from .exceptions import RunTemplateNotFoundError

__all__ = ["get_run_template"]


def get_run_template(solution: Solution, run_template_id: str) -> RunTemplate:
    """Return the run template ``run_template_id`` declared by ``solution``."""

    for template in solution.run_templates:
        if template.id == run_template_id:
            return template
    raise RunTemplateNotFoundError(run_template_id, solution.id)
