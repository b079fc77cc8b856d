"""Identifier helpers."""

from __future__ import annotations

import secrets
import uuid
from collections.abc import Callable

__all__ = ["SCENARIO_RUN_ID_PREFIX", "generate_correlation_id", "generate_id", "generate_uuid7"]

SCENARIO_RUN_ID_PREFIX = "sr-"

_ID_ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


def _resolve_uuid7() -> Callable[[], uuid.UUID]:
    """Return a callable that produces a UUIDv7, falling back to uuid4 when absent."""

    maybe_uuid7 = getattr(uuid, "uuid7", None)
    if callable(maybe_uuid7):
        return maybe_uuid7
    return uuid.uuid4


_uuid7_factory = _resolve_uuid7()


def generate_uuid7() -> uuid.UUID:
    """Return a sortable UUID (prefers RFC 9562 uuid7)."""

    return _uuid7_factory()


def generate_id(prefix: str, *, length: int = 10) -> str:
    """Return ``prefix`` followed by ``length`` random alphanumerics, e.g. ``sr-Xk3p9QaZ1b``."""

    return prefix + "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def generate_correlation_id() -> str:
    """Return a fresh run correlation id (``csmSimulationRun``)."""

    return str(generate_uuid7())
