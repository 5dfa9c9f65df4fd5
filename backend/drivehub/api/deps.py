"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import Header, HTTPException

from drivehub.services.token_guard import ClientFactory, Refresher


async def get_current_user_id(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
) -> str:
    """Identify the calling user.

    Session/JWT issuance lives in front of this service; it forwards the
    authenticated user id in ``X-User-Id``.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id.strip()


def get_client_factory() -> ClientFactory | None:
    """Drive client factory for outbound calls (None = real Google client)."""
    return None


def get_refresher() -> Refresher | None:
    """Refresh-token exchange for outbound calls (None = real Google endpoint)."""
    return None
