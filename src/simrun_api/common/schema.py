"""Shared Pydantic schema utilities."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    """Base class for API schemas: camelCase on the wire, snake_case in code."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        extra="forbid",
    )

    def model_dump(self, *args: Any, **kwargs: Any) -> dict[str, Any]:  # type: ignore[override]
        """Ensure serialization defaults exclude ``None`` and honor aliases."""

        kwargs.setdefault("exclude_none", True)
        kwargs.setdefault("by_alias", True)
        return super().model_dump(*args, **kwargs)

    def model_dump_json(self, *args: Any, **kwargs: Any) -> str:  # type: ignore[override]
        """JSON serialization with the same defaults."""

        kwargs.setdefault("exclude_none", True)
        kwargs.setdefault("by_alias", True)
        return super().model_dump_json(*args, **kwargs)


class DocumentSchema(BaseSchema):
    """Base for stored entities: unknown keys are tolerated and dropped."""

    model_config = ConfigDict(extra="ignore")


class ErrorMessage(BaseSchema):
    """Standard error envelope mirroring FastAPI's ``{"detail": ...}`` payload."""

    detail: str | dict[str, Any]


__all__ = ["BaseSchema", "DocumentSchema", "ErrorMessage"]
