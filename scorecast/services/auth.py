# scorecast/services/auth.py
from __future__ import annotations

import logging
from typing import Optional

import httpx

from scorecast.core.config import Settings, get_settings
from scorecast.core.errors import AuthError, ConfigurationError

logger = logging.getLogger("scorecast.auth")


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthError("Missing or invalid authorization header")
    token = authorization[len("Bearer "):].strip()
    if not token:
        raise AuthError("Missing or invalid authorization header")
    return token


class SupabaseIdentity:
    """Resolves a bearer token to a user id via the Supabase auth REST API."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self._transport = transport

    async def verify_identity(self, token: str) -> str:
        base, key = self.settings.auth_url, self.settings.auth_api_key
        if not base or not key:
            raise ConfigurationError("SUPABASE_URL and SUPABASE_ANON_KEY are required for auth")

        headers = {"Authorization": f"Bearer {token}", "apikey": key, "Accept": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=8.0, headers=headers, transport=self._transport) as client:
                r = await client.get(f"{base.rstrip('/')}/auth/v1/user")
        except httpx.HTTPError as e:
            logger.warning("auth lookup failed: %s", repr(e))
            raise AuthError("Could not verify token") from e

        if r.status_code != 200:
            raise AuthError("Invalid or expired token")
        user_id = (r.json() or {}).get("id")
        if not user_id:
            raise AuthError("Invalid or expired token")
        return str(user_id)
