"""
Pi gateway client — Python caller for the payment action endpoint.

This module provides :class:`PiGatewayClient`, the server-to-server
equivalent of what the web app does from the browser: post an action body
with the user's session bearer token and read back ``data``.

**Example Usage:**

    ```python
    client = PiGatewayClient("https://gateway.example.com", access_token=session_token)
    payout = await client.create_a2u(amount=5, uid="u1", memo="payout", metadata={"note": "x"})
    await client.complete(payout["identifier"], a2u=True)
    ```
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
from loguru import logger

from pipay.normalizer import extract_error_message, parse_json


class GatewayClientError(Exception):
    """Non-2xx answer from the gateway."""

    def __init__(
        self,
        message: str,
        status_code: int,
        response_body: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class PiGatewayClient:
    """
    Async client for the gateway's action endpoint.

    **Attributes:**
        base_url (str): Gateway base URL (trailing slashes removed).
        access_token (Optional[str]): Session bearer token of the calling user.
        timeout (float): Request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        access_token: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.timeout = timeout
        self._transport = transport

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def call(self, action: str, **fields: Any) -> Dict[str, Any]:
        """
        Post one action and return the full success body.

        Raises:
            GatewayClientError: The gateway answered with a non-2xx status.
        """
        body = {"action": action, **{k: v for k, v in fields.items() if v is not None}}
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            response = await client.post(
                f"{self.base_url}/", json=body, headers=self._get_headers()
            )

        data = parse_json(response.text)
        if not response.is_success:
            message = extract_error_message(
                data, f"Gateway action {action} failed (status {response.status_code})"
            )
            logger.warning(f"Gateway action {action} failed: {message}")
            raise GatewayClientError(message, response.status_code, data)
        return data

    async def verify_pi_auth(self, pi_access_token: str) -> Dict[str, Any]:
        result = await self.call("auth_verify", accessToken=pi_access_token)
        return result["data"]

    async def verify_ad(self, ad_id: str) -> bool:
        result = await self.call("ad_verify", adId=ad_id)
        return bool(result.get("rewarded"))

    async def config_status(self) -> Dict[str, bool]:
        result = await self.call("a2u_config_status")
        return result["data"]

    async def create_a2u(
        self,
        amount: Any,
        uid: str,
        memo: str,
        metadata: Dict[str, Any],
    ) -> Dict[str, Any]:
        """Create (or reuse) an A2U payout; returns the payment record."""
        payment = {"amount": amount, "uid": uid, "memo": memo, "metadata": metadata}
        result = await self.call("a2u_create", payment=payment)
        return result["data"]

    async def incomplete_a2u(self) -> Dict[str, Any]:
        result = await self.call("a2u_incomplete")
        return result["data"]

    async def approve(self, payment_id: str) -> Dict[str, Any]:
        result = await self.call("approve", paymentId=payment_id)
        return result["data"]

    async def complete(
        self, payment_id: str, txid: Optional[str] = None, a2u: bool = False
    ) -> Dict[str, Any]:
        action = "a2u_complete" if a2u else "complete"
        result = await self.call(action, paymentId=payment_id, txid=txid)
        return result["data"]

    async def cancel(self, payment_id: str) -> Dict[str, Any]:
        result = await self.call("cancel", paymentId=payment_id)
        return result["data"]

    async def get(self, payment_id: str) -> Dict[str, Any]:
        result = await self.call("get", paymentId=payment_id)
        return result["data"]
