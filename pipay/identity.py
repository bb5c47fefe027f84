"""Caller identity verification against the app's auth provider."""

from __future__ import annotations

from typing import Optional

import httpx
from loguru import logger

from pipay.errors import ConfigError, Unauthorized
from pipay.normalizer import parse_json
from pipay.schemas import CallerIdentity


def bearer_token(authorization: Optional[str]) -> str:
    """Token from an ``Authorization: Bearer ...`` header, or raise Unauthorized."""
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthorized("Missing auth token")
    token = authorization[len("Bearer ") :].strip()
    if not token:
        raise Unauthorized("Missing auth token")
    return token


class SupabaseIdentityVerifier:
    """Resolves a session bearer token to the signed-in application user."""

    def __init__(
        self,
        supabase_url: Optional[str],
        service_role_key: Optional[str],
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.supabase_url = (supabase_url or "").rstrip("/")
        self._service_role_key = service_role_key
        self.timeout = timeout
        self._transport = transport

    async def verify(self, token: str) -> CallerIdentity:
        if not self.supabase_url or not self._service_role_key:
            raise ConfigError("Identity provider is not configured")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get(
                    f"{self.supabase_url}/auth/v1/user",
                    headers={
                        "Authorization": f"Bearer {token}",
                        "apikey": self._service_role_key,
                    },
                )
        except httpx.RequestError as e:
            logger.error(f"Identity provider unreachable: {e}")
            raise Unauthorized("Unauthorized") from e

        data = parse_json(response.text)
        user_id = data.get("id")
        if not response.is_success or not isinstance(user_id, str) or not user_id:
            logger.warning(
                f"Session token rejected by identity provider (HTTP {response.status_code})"
            )
            raise Unauthorized("Unauthorized")

        email = data.get("email")
        return CallerIdentity(
            id=user_id, email=email if isinstance(email, str) else None
        )
