from __future__ import annotations

import httpx
from fastapi import Header, HTTPException

from ritual.libs.schemas.settings import get_settings


async def get_current_user_id(authorization: str | None = Header(default=None)) -> str:
    """Resolve the Supabase user behind a bearer token, falling back to the demo user when enabled."""

    settings = get_settings()
    if authorization and authorization.startswith("Bearer "):
        token = authorization.split(" ", 1)[1]
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(
                    f"{settings.supabase_url}/auth/v1/user",
                    headers={"Authorization": f"Bearer {token}", "apikey": settings.supabase_anon_key},
                    timeout=10,
                )
        except httpx.HTTPError as exc:
            raise HTTPException(status_code=503, detail="Authentication service unavailable") from exc
        if response.status_code == 200:
            payload = response.json()
            if isinstance(payload, dict) and "id" in payload:
                return str(payload["id"])

    if settings.demo_mode and settings.demo_user_id:
        return settings.demo_user_id

    raise HTTPException(status_code=401, detail="Unauthenticated")


async def require_internal_secret(x_internal_secret: str | None = Header(default=None)) -> None:
    """Guard for worker-to-API calls."""

    expected = get_settings().internal_function_secret
    if not expected:
        raise HTTPException(status_code=500, detail="Server configuration error")
    if x_internal_secret != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")
