"""`simrun` command line: serve the API or render a pipeline offline."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

import typer
import uvicorn
from pydantic import ValidationError

from simrun_api.features.catalog.schemas import (
    Connector,
    Dataset,
    Organization,
    Scenario,
    Solution,
    Workspace,
)
from simrun_api.features.runs.exceptions import PipelineConfigurationError
from simrun_api.features.runs.pipeline import PipelineBuilder
from simrun_api.settings import get_settings

app = typer.Typer(
    add_completion=False,
    invoke_without_command=True,
    help="Scenario Run API command line.",
)


@app.callback()
def _main(ctx: typer.Context) -> None:
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


@app.command(name="start", help="Serve the API with uvicorn.")
def start(
    host: str = typer.Option("0.0.0.0", "--host", help="Bind address."),
    port: int = typer.Option(8080, "--port", help="Bind port."),
    reload: bool = typer.Option(False, "--reload/--no-reload", help="Reload on code changes."),
) -> None:
    uvicorn.run(
        "simrun_api.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_config=None,
    )


def _load_bundle(path: Path) -> dict[str, Any]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        typer.echo(f"error: cannot read bundle {path}: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    if not isinstance(payload, dict):
        typer.echo("error: bundle must be a JSON object", err=True)
        raise typer.Exit(code=1)
    return payload


@app.command(
    name="pipeline",
    help=(
        "Render the container pipeline for a JSON bundle holding organization, workspace, "
        "solution, scenario, datasets and connectors."
    ),
)
def pipeline(
    bundle: Annotated[Path, typer.Argument(help="Path to the JSON bundle.")],
    correlation_id: Annotated[
        str | None,
        typer.Option("--correlation-id", help="Stamp this run correlation id into the steps."),
    ] = None,
) -> None:
    payload = _load_bundle(bundle)
    try:
        start_containers = PipelineBuilder(get_settings()).build_start_containers(
            organization=Organization.model_validate(payload.get("organization") or {}),
            workspace=Workspace.model_validate(payload.get("workspace") or {}),
            solution=Solution.model_validate(payload.get("solution") or {}),
            scenario=Scenario.model_validate(payload.get("scenario") or {}),
            datasets=[Dataset.model_validate(item) for item in payload.get("datasets") or []],
            connectors=[
                Connector.model_validate(item) for item in payload.get("connectors") or []
            ],
            correlation_id=correlation_id,
        )
    except ValidationError as exc:
        typer.echo(f"error: invalid bundle: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    except PipelineConfigurationError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    typer.echo(start_containers.model_dump_json(indent=2))


__all__ = ["app"]
