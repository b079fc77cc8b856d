"""Request principal.

Authentication happens upstream; the gateway forwards the caller's user id in
``settings.principal_header``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from simrun_api.settings import Settings, get_settings

__all__ = ["CurrentPrincipal", "Principal", "get_current_principal"]


@dataclass(frozen=True, slots=True)
class Principal:
    user_id: str


def get_current_principal(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
) -> Principal:
    """Return the principal named by the identity header or answer 401."""

    user_id = (request.headers.get(settings.principal_header) or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return Principal(user_id=user_id)


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
