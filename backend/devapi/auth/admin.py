"""
Dependencies for the two non-API-key surfaces.

  • require_cron_secret - the rollup trigger. Exact match of
    `Authorization: Bearer <CRON_SECRET>`; an unset secret rejects all.
  • get_current_owner  - the developer portal. The application's web tier
    owns cookie login and forwards the signed-in user's id in X-User-Id;
    this service trusts that header and must only be reachable through
    that tier.
"""

from __future__ import annotations

import secrets
import uuid

from fastapi import Depends, Header, HTTPException, status

from devapi.core.config import Settings
from devapi.core.resources import get_settings

_UNAUTHORIZED = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Unauthorized",
    headers={"WWW-Authenticate": "Bearer"},
)


async def require_cron_secret(
    authorization: str | None = Header(default=None, alias="Authorization"),
    settings: Settings = Depends(get_settings),
) -> None:
    if not settings.CRON_SECRET or not authorization:
        raise _UNAUTHORIZED

    expected = f"Bearer {settings.CRON_SECRET}"
    if not secrets.compare_digest(authorization.encode("utf-8"), expected.encode("utf-8")):
        raise _UNAUTHORIZED


async def get_current_owner(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> uuid.UUID:
    """Signed-in portal user, as forwarded by the web tier."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="You must be signed in to manage API keys.",
        )
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="You must be signed in to manage API keys.",
        ) from None
