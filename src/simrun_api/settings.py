"""Scenario run API settings (conventional Pydantic v2)."""

from __future__ import annotations

import json
from datetime import timedelta
from functools import lru_cache
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Annotated, Any
from urllib.parse import urlparse

from pydantic import Field, SecretStr, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from sqlalchemy.engine import make_url

# ---- Defaults ---------------------------------------------------------------

DEFAULT_STORAGE_ROOT = Path("./data")
DEFAULT_DB_FILENAME = "simrun.sqlite"
DEFAULT_SQLITE_PATH = DEFAULT_STORAGE_ROOT / "db" / DEFAULT_DB_FILENAME
DEFAULT_API_BASE_URL = "http://localhost:8080"
DEFAULT_FETCH_PARAMETERS_IMAGE = "cosmotech/scenariofetchparameters:1.0.0"
DEFAULT_SEND_DATA_WAREHOUSE_IMAGE = "cosmotech/senddatawarehouse:1.0.0"
DEFAULT_WORKFLOW_ACCESS_MODES = ["ReadWriteOnce"]
DEFAULT_MIN_SDK_VERSION = "8.5"

_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def _package_version() -> str:
    try:
        return version("simrun-api")
    except PackageNotFoundError:  # pragma: no cover - source checkout without install
        return "0.0.0"


# ---- Helpers ----------------------------------------------------------------

def _parse_duration(value: Any, *, field_name: str) -> timedelta:
    """Accept seconds (int/float/str) or '60s'/'5m'/'1h'/'14d'."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            raise ValueError(f"{field_name} must not be blank")
        try:
            seconds = float(s)
        except ValueError:
            unit = s[-1].lower()
            num = s[:-1].strip()
            if unit not in _UNIT_SECONDS or not num:
                raise ValueError(
                    f"{field_name} must be secs or 'Xs','Xm','Xh','Xd'"
                ) from None
            try:
                seconds = float(num) * _UNIT_SECONDS[unit]
            except ValueError as exc:
                raise ValueError(
                    f"{field_name} must be secs or 'Xs','Xm','Xh','Xd'"
                ) from exc
    else:
        raise TypeError(f"{field_name} must be number, duration string, or timedelta")
    if seconds <= 0:
        raise ValueError(f"{field_name} must be > 0 seconds")
    return timedelta(seconds=seconds)


def _list_from_env(value: Any, *, default: list[str]) -> list[str]:
    """JSON array or comma string; strip empties; dedupe preserving order."""
    if value in (None, "", []):
        items = list(default)
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            items = list(default)
        elif s.startswith("["):
            try:
                parsed = json.loads(s)
            except json.JSONDecodeError as exc:
                raise ValueError("Expected a JSON array") from exc
            if not isinstance(parsed, list):
                raise ValueError("Expected a JSON array")
            items = [str(x).strip() for x in parsed if str(x).strip()]
        else:
            items = [seg.strip() for seg in s.split(",") if seg.strip()]
    elif isinstance(value, (list, tuple, set)):
        items = [str(x).strip() for x in value if str(x).strip()]
    else:
        raise TypeError("Expected string or list")

    seen, out = set(), []
    for x in items:
        if x not in seen:
            seen.add(x)
            out.append(x)
    return out


def _strip_url(value: Any, *, field_name: str, required_scheme: bool = True) -> str:
    s = ("" if value is None else str(value)).strip()
    if not s:
        return ""
    p = urlparse(s)
    if required_scheme and (p.scheme not in {"http", "https"} or not p.netloc):
        raise ValueError(f"SIMRUN_{field_name.upper()} must be an http(s) URL")
    return s.rstrip("/")


# ---- Settings ---------------------------------------------------------------

class Settings(BaseSettings):
    """FastAPI settings loaded from SIMRUN_* environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SIMRUN_",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )

    # Core
    app_name: str = "Scenario Run API"
    app_version: str = Field(default_factory=_package_version)
    api_docs_enabled: bool = False
    docs_url: str = "/docs"
    openapi_url: str = "/openapi.json"
    logging_level: str = "INFO"

    # Database
    database_url: str | None = None
    database_echo: bool = False

    # Platform API, as seen from inside run containers
    api_base_url: str = DEFAULT_API_BASE_URL
    api_base_path: str = "api"
    api_version: str = "v1"

    # Credentials handed to run containers
    azure_tenant_id: str = ""
    azure_client_id: str = ""
    azure_client_secret: SecretStr = SecretStr("")
    storage_connection_string: SecretStr = SecretStr("")

    # Images
    core_registry: str = ""
    solutions_registry: str = ""
    fetch_parameters_image: str = DEFAULT_FETCH_PARAMETERS_IMAGE
    send_data_warehouse_image: str = DEFAULT_SEND_DATA_WAREHOUSE_IMAGE

    # Event bus topics
    event_bus_base_uri: str = ""

    # Data warehouse
    data_warehouse_base_uri: str = ""
    data_warehouse_ingestion_uri: str = ""
    data_warehouse_token: SecretStr | None = None

    # Workflow executor
    workflow_base_uri: str = ""
    workflow_namespace: str = "phoenix"
    workflow_node_pool_label: str = "agentpool"
    workflow_service_account: str = "workflow"
    workflow_image_pull_secrets: Annotated[list[str], NoDecode] = Field(default_factory=list)
    workflow_storage_class: str | None = None
    workflow_access_modes: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_WORKFLOW_ACCESS_MODES)
    )
    workflow_storage_request: str = "100Gi"
    workflow_token: SecretStr | None = None

    # Timeouts and ingestion windows
    http_timeout: timedelta = Field(default=timedelta(seconds=30))
    ingestion_waiting_time: timedelta = Field(default=timedelta(seconds=15))
    ingestion_observation_window: timedelta = Field(default=timedelta(minutes=5))
    ingestion_no_data_timeout: timedelta = Field(default=timedelta(seconds=60))
    ingestion_lookup_timeout: timedelta = Field(default=timedelta(seconds=10))
    min_sdk_version: str = DEFAULT_MIN_SDK_VERSION

    # Identity
    principal_header: str = "X-Simrun-User"

    # ---- Validators ----

    @field_validator("logging_level", mode="before")
    @classmethod
    def _v_log_level(cls, v: Any) -> str:
        s = ("" if v is None else str(v).strip()).upper()
        return s or "INFO"

    @field_validator("api_base_url", mode="before")
    @classmethod
    def _v_api_base_url(cls, v: Any, info: ValidationInfo) -> str:
        return _strip_url(v, field_name=info.field_name) or DEFAULT_API_BASE_URL

    @field_validator(
        "workflow_base_uri",
        "data_warehouse_base_uri",
        "data_warehouse_ingestion_uri",
        mode="before",
    )
    @classmethod
    def _v_service_urls(cls, v: Any, info: ValidationInfo) -> str:
        return _strip_url(v, field_name=info.field_name)

    @field_validator("event_bus_base_uri", mode="before")
    @classmethod
    def _v_event_bus(cls, v: Any) -> str:
        # amqps:// and sb:// endpoints are valid here, so only trim.
        return ("" if v is None else str(v)).strip().rstrip("/")

    @field_validator("api_base_path", "api_version", mode="before")
    @classmethod
    def _v_path_segment(cls, v: Any) -> str:
        return ("" if v is None else str(v)).strip().strip("/")

    @field_validator("core_registry", "solutions_registry", mode="before")
    @classmethod
    def _v_registry(cls, v: Any) -> str:
        return ("" if v is None else str(v)).strip().rstrip("/")

    @field_validator("workflow_image_pull_secrets", mode="before")
    @classmethod
    def _v_pull_secrets(cls, v: Any) -> list[str]:
        return _list_from_env(v, default=[])

    @field_validator("workflow_access_modes", mode="before")
    @classmethod
    def _v_access_modes(cls, v: Any) -> list[str]:
        return _list_from_env(v, default=DEFAULT_WORKFLOW_ACCESS_MODES)

    @field_validator(
        "http_timeout",
        "ingestion_waiting_time",
        "ingestion_observation_window",
        "ingestion_no_data_timeout",
        "ingestion_lookup_timeout",
        mode="before",
    )
    @classmethod
    def _v_durations(cls, v: Any, info: ValidationInfo) -> timedelta:
        return _parse_duration(v, field_name=info.field_name)

    @field_validator("min_sdk_version", mode="before")
    @classmethod
    def _v_min_sdk(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip() or DEFAULT_MIN_SDK_VERSION
        parts = s.split(".")
        if len(parts) < 2 or not parts[0].isdigit() or not parts[1].isdigit():
            raise ValueError("SIMRUN_MIN_SDK_VERSION must look like MAJOR.MINOR")
        return s

    @model_validator(mode="after")
    def _finalize(self) -> Settings:
        if not self.database_url:
            sqlite = DEFAULT_SQLITE_PATH.expanduser().resolve()
            self.database_url = f"sqlite+aiosqlite:///{sqlite.as_posix()}"
        make_url(self.database_url)
        return self

    # ---- Convenience ----

    @property
    def csm_api_url(self) -> str:
        segments = [self.api_base_url, self.api_base_path, self.api_version]
        return "/".join(segment for segment in segments if segment)

    @property
    def min_sdk_version_tuple(self) -> tuple[int, int]:
        major, minor = self.min_sdk_version.split(".")[:2]
        return int(major), int(minor)

    @property
    def sqlite_path(self) -> Path | None:
        url = make_url(self.database_url)
        if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
            return None
        return Path(url.database)


@lru_cache(maxsize=1)
def _build_settings() -> Settings:
    return Settings()


def get_settings() -> Settings:
    return _build_settings()


def reload_settings() -> Settings:
    _build_settings.cache_clear()
    return _build_settings()


__all__ = [
    "DEFAULT_DB_FILENAME",
    "DEFAULT_MIN_SDK_VERSION",
    "Settings",
    "get_settings",
    "reload_settings",
]
