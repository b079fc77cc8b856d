"""Workflow executor client (Argo Workflows REST API)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

import httpx

from simrun_api.common.time import parse_timestamp
from simrun_api.settings import Settings

from .exceptions import WorkflowServiceError
from .pipeline import DATASET_PATH, PARAMETERS_PATH
from .schemas import (
    ENTRYPOINT_TEMPLATE,
    ScenarioRunContainer,
    ScenarioRunContainerLogs,
    ScenarioRunStartContainers,
    ScenarioRunStatusNode,
)

__all__ = [
    "ArgoWorkflowClient",
    "WorkflowClient",
    "WorkflowStatus",
    "WorkflowSubmission",
    "build_workflow_manifest",
]

logger = logging.getLogger(__name__)

VOLUME_NAME = "datadir"
MAIN_CONTAINER = "main"
POD_NODE_TYPE = "Pod"


@dataclass(frozen=True, slots=True)
class WorkflowSubmission:
    workflow_id: str
    workflow_name: str


@dataclass(frozen=True, slots=True)
class WorkflowStatus:
    phase: str | None
    start_time: datetime | None = None
    end_time: datetime | None = None
    progress: str | None = None
    message: str | None = None
    nodes: tuple[ScenarioRunStatusNode, ...] = field(default_factory=tuple)


class WorkflowClient(Protocol):
    async def launch(
        self, start_containers: ScenarioRunStartContainers, *, labels: dict[str, str]
    ) -> WorkflowSubmission: ...

    async def get_status(self, workflow_name: str) -> WorkflowStatus: ...

    async def stop(self, workflow_name: str) -> WorkflowStatus: ...

    async def get_logs(self, workflow_name: str) -> dict[str, ScenarioRunContainerLogs]: ...


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------


def _container_template(container: ScenarioRunContainer) -> dict[str, Any]:
    spec: dict[str, Any] = {
        "image": container.image,
        "imagePullPolicy": "IfNotPresent",
        "env": [{"name": name, "value": value} for name, value in container.env_vars.items()],
        "volumeMounts": [
            {"name": VOLUME_NAME, "mountPath": DATASET_PATH, "subPath": "datasetsdir"},
            {"name": VOLUME_NAME, "mountPath": PARAMETERS_PATH, "subPath": "parametersdir"},
        ],
    }
    if container.entrypoint:
        spec["command"] = [container.entrypoint]
    if container.run_args:
        spec["args"] = list(container.run_args)
    return {"name": container.name, "container": spec}


def build_workflow_manifest(
    start_containers: ScenarioRunStartContainers,
    settings: Settings,
    *,
    labels: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Render the pipeline as a workflow with one sequential step per container."""

    metadata: dict[str, Any] = {"generateName": start_containers.generate_name or "workflow-"}
    merged_labels = {**(start_containers.labels or {}), **(labels or {})}
    if merged_labels:
        metadata["labels"] = merged_labels

    claim_spec: dict[str, Any] = {
        "accessModes": list(settings.workflow_access_modes),
        "resources": {"requests": {"storage": settings.workflow_storage_request}},
    }
    if settings.workflow_storage_class:
        claim_spec["storageClassName"] = settings.workflow_storage_class

    spec: dict[str, Any] = {
        "entrypoint": ENTRYPOINT_TEMPLATE,
        "serviceAccountName": settings.workflow_service_account,
        "volumeClaimTemplates": [{"metadata": {"name": VOLUME_NAME}, "spec": claim_spec}],
        "templates": [
            {
                "name": ENTRYPOINT_TEMPLATE,
                "steps": [
                    [{"name": container.name, "template": container.name}]
                    for container in start_containers.containers
                ],
            },
            *(_container_template(container) for container in start_containers.containers),
        ],
    }
    if settings.workflow_image_pull_secrets:
        spec["imagePullSecrets"] = [
            {"name": secret} for secret in settings.workflow_image_pull_secrets
        ]
    if start_containers.node_label:
        spec["nodeSelector"] = {settings.workflow_node_pool_label: start_containers.node_label}

    return {"workflow": {"metadata": metadata, "spec": spec}}


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ArgoWorkflowClient:
    """Submit, inspect, stop and read logs of workflows over HTTP."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    async def launch(
        self, start_containers: ScenarioRunStartContainers, *, labels: dict[str, str]
    ) -> WorkflowSubmission:
        manifest = build_workflow_manifest(start_containers, self._settings, labels=labels)
        payload = await self._request("POST", self._workflows_url(), json=manifest)
        metadata = payload.get("metadata") or {}
        uid = metadata.get("uid")
        name = metadata.get("name")
        if not uid or not name:
            raise WorkflowServiceError("Workflow executor returned no workflow identifiers")
        return WorkflowSubmission(workflow_id=uid, workflow_name=name)

    async def get_status(self, workflow_name: str) -> WorkflowStatus:
        payload = await self._request("GET", self._workflows_url(workflow_name))
        return _status_from_payload(payload)

    async def stop(self, workflow_name: str) -> WorkflowStatus:
        payload = await self._request("PUT", self._workflows_url(workflow_name, "stop"), json={})
        return _status_from_payload(payload)

    async def get_logs(self, workflow_name: str) -> dict[str, ScenarioRunContainerLogs]:
        status = await self.get_status(workflow_name)
        logs: dict[str, ScenarioRunContainerLogs] = {}
        for node in status.nodes:
            text = await self._pod_log(workflow_name, node.id)
            key = node.container_name or node.name or node.id
            logs[key] = ScenarioRunContainerLogs(
                node_id=node.id,
                container_name=node.container_name,
                text_log=text,
            )
        return logs

    # ------------------------------------------------------------------ #
    # HTTP plumbing
    # ------------------------------------------------------------------ #

    def _workflows_url(self, *parts: str) -> str:
        base = self._settings.workflow_base_uri
        if not base:
            raise WorkflowServiceError("Workflow executor is not configured")
        segments = ["api", "v1", "workflows", self._settings.workflow_namespace, *parts]
        return f"{base}/" + "/".join(segments)

    def _client(self) -> httpx.AsyncClient:
        headers = {"Accept": "application/json"}
        token = self._settings.workflow_token
        if token is not None and token.get_secret_value():
            headers["Authorization"] = f"Bearer {token.get_secret_value()}"
        return httpx.AsyncClient(
            timeout=self._settings.http_timeout.total_seconds(),
            headers=headers,
            transport=self._transport,
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise WorkflowServiceError(
                f"Workflow executor answered {exc.response.status_code} for {method} {url}"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise WorkflowServiceError(f"Workflow executor call failed: {exc}") from exc
        if not isinstance(payload, dict):
            raise WorkflowServiceError("Workflow executor returned an unexpected payload")
        return payload

    async def _pod_log(self, workflow_name: str, pod_name: str) -> str:
        url = self._workflows_url(workflow_name, "log")
        params = {"podName": pod_name, "logOptions.container": MAIN_CONTAINER}
        try:
            async with self._client() as client:
                response = await client.get(url, params=params)
                response.raise_for_status()
                body = response.text
        except httpx.HTTPError as exc:
            raise WorkflowServiceError(f"Unable to read logs of pod {pod_name}: {exc}") from exc
        return _join_log_lines(body)


def _join_log_lines(body: str) -> str:
    """Log endpoint streams one JSON object per line: ``{"result": {"content": ...}}``."""

    lines: list[str] = []
    for raw in body.splitlines():
        raw = raw.strip()
        if not raw:
            continue
        try:
            entry = json.loads(raw)
        except ValueError:
            lines.append(raw)
            continue
        result = entry.get("result") if isinstance(entry, dict) else None
        if isinstance(result, dict) and isinstance(result.get("content"), str):
            lines.append(result["content"])
    return "\n".join(lines)


def _status_from_payload(payload: dict[str, Any]) -> WorkflowStatus:
    status = payload.get("status") or {}
    nodes = []
    for node_id, node in (status.get("nodes") or {}).items():
        if not isinstance(node, dict) or node.get("type") != POD_NODE_TYPE:
            continue
        nodes.append(
            ScenarioRunStatusNode(
                id=node.get("id") or node_id,
                name=node.get("name"),
                container_name=node.get("displayName") or node.get("templateName"),
                phase=node.get("phase"),
                message=node.get("message"),
                progress=node.get("progress"),
                start_time=parse_timestamp(node.get("startedAt")),
                end_time=parse_timestamp(node.get("finishedAt")),
            )
        )
    nodes.sort(key=lambda node: (node.start_time is None, node.start_time, node.id))
    return WorkflowStatus(
        phase=status.get("phase"),
        start_time=parse_timestamp(status.get("startedAt")),
        end_time=parse_timestamp(status.get("finishedAt")),
        progress=status.get("progress"),
        message=status.get("message"),
        nodes=tuple(nodes),
    )
