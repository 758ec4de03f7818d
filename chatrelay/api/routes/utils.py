# chatrelay/api/routes/utils.py

from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Header, Request

from chatrelay.core.config import settings
from chatrelay.core.errors import Forbidden, NotAuthenticated

ADMIN_HEADER = "X-Admin-Token"


def is_admin_token(token: Optional[str]) -> bool:
    """True only when an admin token is configured and ``token`` matches it."""
    if not settings.ADMIN_TOKEN or not token:
        return False
    return secrets.compare_digest(token, settings.ADMIN_TOKEN)


async def require_admin(x_admin_token: Optional[str] = Header(default=None)) -> None:
    """
    Dependency guarding the administrative endpoints.

    With no ADMIN_TOKEN configured the relay trusts its LAN and lets every
    caller through (a warning is logged at startup). Otherwise the
    ``X-Admin-Token`` header must match.
    """
    if not settings.ADMIN_TOKEN:
        return
    if not x_admin_token:
        raise NotAuthenticated(f"{ADMIN_HEADER} header required")
    if not is_admin_token(x_admin_token):
        raise Forbidden("Invalid admin token")


def client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"
