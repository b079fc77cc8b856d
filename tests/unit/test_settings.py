from __future__ import annotations

import os
from datetime import timedelta

import pytest
from pydantic import ValidationError

from simrun_api.settings import Settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("SIMRUN_"):
            monkeypatch.delenv(key, raising=False)


def test_defaults() -> None:
    settings = Settings(_env_file=None)

    assert settings.workflow_namespace == "phoenix"
    assert settings.workflow_access_modes == ["ReadWriteOnce"]
    assert settings.workflow_image_pull_secrets == []
    assert settings.ingestion_waiting_time == timedelta(seconds=15)
    assert settings.ingestion_observation_window == timedelta(minutes=5)
    assert settings.min_sdk_version_tuple == (8, 5)
    assert settings.principal_header == "X-Simrun-User"
    assert settings.database_url.startswith("sqlite+aiosqlite:///")
    assert settings.csm_api_url == "http://localhost:8080/api/v1"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SIMRUN_WORKFLOW_IMAGE_PULL_SECRETS", "regcred, other ,regcred")
    monkeypatch.setenv("SIMRUN_WORKFLOW_ACCESS_MODES", '["ReadWriteMany"]')
    monkeypatch.setenv("SIMRUN_INGESTION_WAITING_TIME", "30s")
    monkeypatch.setenv("SIMRUN_INGESTION_OBSERVATION_WINDOW", "2m")
    monkeypatch.setenv("SIMRUN_HTTP_TIMEOUT", "45")
    monkeypatch.setenv("SIMRUN_WORKFLOW_BASE_URI", "https://argo.example.com/")
    monkeypatch.setenv("SIMRUN_API_BASE_URL", "https://api.example.com/")
    monkeypatch.setenv("SIMRUN_API_BASE_PATH", "/cosmotech-api/")
    monkeypatch.setenv("SIMRUN_API_VERSION", "v2")
    monkeypatch.setenv("SIMRUN_MIN_SDK_VERSION", "9.1")

    settings = Settings(_env_file=None)

    assert settings.workflow_image_pull_secrets == ["regcred", "other"]
    assert settings.workflow_access_modes == ["ReadWriteMany"]
    assert settings.ingestion_waiting_time == timedelta(seconds=30)
    assert settings.ingestion_observation_window == timedelta(minutes=2)
    assert settings.http_timeout == timedelta(seconds=45)
    assert settings.workflow_base_uri == "https://argo.example.com"
    assert settings.csm_api_url == "https://api.example.com/cosmotech-api/v2"
    assert settings.min_sdk_version_tuple == (9, 1)


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("ingestion_waiting_time", "soon"),
        ("ingestion_no_data_timeout", "0"),
        ("workflow_base_uri", "ftp://argo"),
        ("data_warehouse_base_uri", "not a url"),
        ("min_sdk_version", "eight"),
    ],
)
def test_invalid_values_are_rejected(field: str, value: str) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})


def test_sqlite_path(tmp_path) -> None:
    database = tmp_path / "runs.sqlite"
    settings = Settings(_env_file=None, database_url=f"sqlite+aiosqlite:///{database.as_posix()}")

    assert settings.sqlite_path == database
