from typing import Any

import httpx
from fastapi import Depends, Header, HTTPException, status

from eventboard.core.auth import ActingUser, parse_role
from eventboard.core.config import Settings, get_settings


async def get_acting_user(
    settings: Settings = Depends(get_settings),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> ActingUser:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="authentication requires bearer token",
        )

    token = authorization.split(" ", maxsplit=1)[1].strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="empty bearer token")

    if not settings.supabase_url or not settings.supabase_anon_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth is not configured",
        )

    user = await _fetch_supabase_user(
        supabase_url=settings.supabase_url,
        supabase_anon_key=settings.supabase_anon_key,
        token=token,
        timeout_seconds=settings.auth_timeout_seconds,
    )
    user_id = user.get("id")
    if not isinstance(user_id, str) or not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")

    tenant_id = _resolve_tenant_id(user)
    if not tenant_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="user is not a member of any organization")

    return ActingUser(
        id=user_id,
        tenant_id=tenant_id,
        role=parse_role(_app_metadata(user).get("role")),
        name=_resolve_display_name(user),
    )


async def _fetch_supabase_user(
    *,
    supabase_url: str,
    supabase_anon_key: str,
    token: str,
    timeout_seconds: float,
) -> dict[str, Any]:
    headers = {
        "Authorization": f"Bearer {token}",
        "apikey": supabase_anon_key,
    }
    url = f"{supabase_url.rstrip('/')}/auth/v1/user"

    try:
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            response = await client.get(url, headers=headers)
    except httpx.HTTPError as exc:  # pragma: no cover - network dependent
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth verification unavailable",
        ) from exc

    if response.status_code in {401, 403}:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")
    if response.status_code != 200:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth verification failed",
        )

    return response.json()


def _app_metadata(user: dict[str, Any]) -> dict[str, Any]:
    # Only app_metadata is trusted for role and tenant; users can edit user_metadata.
    app_metadata = user.get("app_metadata")
    return app_metadata if isinstance(app_metadata, dict) else {}


def _resolve_tenant_id(user: dict[str, Any]) -> str | None:
    tenant_id = _app_metadata(user).get("tenant_id")
    if isinstance(tenant_id, str) and tenant_id.strip():
        return tenant_id.strip()
    return None


def _resolve_display_name(user: dict[str, Any]) -> str | None:
    user_metadata = user.get("user_metadata")
    if isinstance(user_metadata, dict):
        name = user_metadata.get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()

    email = user.get("email")
    if isinstance(email, str) and email:
        return email
    return None
