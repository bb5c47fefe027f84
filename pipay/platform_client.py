"""
Client for the Pi Network payment platform (REST API v2).

This module wraps every platform endpoint the gateway calls. Each method
performs exactly one HTTP request; nothing is retried here. Non-2xx answers
are turned into :class:`pipay.errors.UpstreamError` by the normalizer, and
transport failures into an ``UpstreamError`` with HTTP status 502.

**Authentication:**
    - Server endpoints use ``Authorization: Key <PI_API_KEY>``.
    - ``/me`` uses the user's own ``Authorization: Bearer <accessToken>``.

**Example Usage:**

    ```python
    client = PiPlatformClient(api_key="...", base_url="https://api.minepi.com/v2")
    payment = await client.get_payment("abc123")
    await client.complete_payment("abc123", txid="...")
    ```
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from pipay.config import PI_API_BASE_URL_DEFAULT, PI_API_TIMEOUT_DEFAULT
from pipay.errors import AuthFailed, ConfigError, UpstreamError
from pipay.normalizer import normalize_response


class PiPlatformClient:
    """
    Async client for the Pi platform payment API.

    **Attributes:**
        base_url (str): Base URL of the platform API (trailing slashes removed).
        timeout (float): Request timeout in seconds for all API calls.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = PI_API_BASE_URL_DEFAULT,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the platform client.

        Args:
            api_key: Server API key. Only server endpoints need it; calling one
                without a key raises ConfigError.
            base_url: Base URL of the platform API.
            timeout: Request timeout in seconds (default: PI_API_TIMEOUT_DEFAULT).
            transport: Optional httpx transport, used to swap the network out.
        """
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else PI_API_TIMEOUT_DEFAULT
        self._transport = transport

    def _server_headers(self) -> Dict[str, str]:
        if not self._api_key:
            raise ConfigError("PI_API_KEY is not configured")
        return {
            "Content-Type": "application/json",
            "Authorization": f"Key {self._api_key}",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        headers: Dict[str, str],
        fallback: str,
        json_body: Optional[Dict[str, Any]] = None,
        extract_message: bool = True,
        error_cls: type = UpstreamError,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        logger.debug(f"Pi platform request: {method} {url}")
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.request(
                    method, url, headers=headers, json=json_body
                )
        except httpx.RequestError as e:
            logger.error(f"Pi platform request {method} {url} failed: {e}")
            raise UpstreamError(
                f"Pi platform request failed: {type(e).__name__}", http_status=502
            ) from e

        return normalize_response(
            response,
            fallback,
            extract_message=extract_message,
            error_cls=error_cls,
        )

    async def verify_access_token(self, access_token: str) -> Dict[str, Any]:
        """Look up the Pi user behind a browser-SDK access token."""
        return await self._request(
            "GET",
            "/me",
            headers={"Authorization": f"Bearer {access_token}"},
            fallback="Pi auth verification failed",
            extract_message=False,
            error_cls=AuthFailed,
        )

    async def get_ad_status(self, ad_id: str) -> Dict[str, Any]:
        """Rewarded-ad status, including ``mediator_ack_status``."""
        return await self._request(
            "GET",
            f"/ads_network/status/{ad_id}",
            headers=self._server_headers(),
            fallback="Pi ad verification failed",
            extract_message=False,
        )

    async def list_incomplete_server_payments(self) -> Dict[str, Any]:
        """Raw body of the incomplete A2U payment listing."""
        return await self._request(
            "GET",
            "/payments/incomplete_server_payments",
            headers=self._server_headers(),
            fallback="Pi incomplete payments fetch failed",
            extract_message=False,
        )

    async def incomplete_server_payments(self) -> List[Dict[str, Any]]:
        data = await self.list_incomplete_server_payments()
        listed = data.get("incomplete_server_payments")
        if not isinstance(listed, list):
            return []
        return [p for p in listed if isinstance(p, dict)]

    async def create_payment(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Create an app-to-user payment."""
        return await self._request(
            "POST",
            "/payments",
            headers=self._server_headers(),
            json_body=body,
            fallback="Pi A2U create failed (status {status})",
        )

    async def get_payment(self, payment_id: str) -> Dict[str, Any]:
        return await self._payment_call("GET", payment_id, "")

    async def approve_payment(self, payment_id: str) -> Dict[str, Any]:
        return await self._payment_call("POST", payment_id, "/approve")

    async def complete_payment(
        self, payment_id: str, txid: Optional[str] = None
    ) -> Dict[str, Any]:
        """Mark a payment complete, reporting ``txid`` when one is known."""
        body = {"txid": txid} if txid else None
        return await self._payment_call("POST", payment_id, "/complete", body)

    async def cancel_payment(self, payment_id: str) -> Dict[str, Any]:
        return await self._payment_call("POST", payment_id, "/cancel")

    async def _payment_call(
        self,
        method: str,
        payment_id: str,
        suffix: str,
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        return await self._request(
            method,
            f"/payments/{payment_id}{suffix}",
            headers=self._server_headers(),
            json_body=body,
            fallback="Pi payment API call failed (status {status})",
        )
