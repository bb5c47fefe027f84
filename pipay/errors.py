"""
Error taxonomy for the Pi payment gateway.

Every failure a request can end in is one of these classes. Each carries the
HTTP status the gateway answers with and, for upstream failures, the status
and parsed body the Pi platform returned, so the boundary can render the
uniform ``{error, status?, data?}`` body without inspecting the cause.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """
    Base class for all gateway errors.

    **Attributes:**
        message (str): Human-readable error message returned to the caller.
        http_status (int): HTTP status code the gateway responds with.
        upstream_status (Optional[int]): Status code returned by the Pi platform, if any.
        response_body (Optional[Dict[str, Any]]): Parsed upstream body, for diagnostics.
    """

    http_status = 500

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        response_body: Optional[Dict[str, Any]] = None,
        http_status: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.upstream_status = upstream_status
        self.response_body = response_body
        if http_status is not None:
            self.http_status = http_status

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to the gateway's error response body.

        Returns:
            Dict with keys: "error" (message), "status" (upstream HTTP status,
                if available), "data" (parsed upstream body, if available).
        """
        result: Dict[str, Any] = {"error": self.message}
        if self.upstream_status is not None:
            result["status"] = self.upstream_status
        if self.response_body is not None:
            result["data"] = self.response_body
        return result


class InvalidArgument(GatewayError):
    """Malformed or missing request fields."""

    http_status = 400


class Unauthorized(GatewayError):
    """Missing or invalid caller identity."""

    http_status = 401


class ConfigError(GatewayError):
    """Missing or inconsistent server-side secrets."""

    http_status = 500


class UpstreamError(GatewayError):
    """Non-2xx answer (or transport failure) from the Pi platform."""

    http_status = 400


class AuthFailed(UpstreamError):
    """The Pi platform rejected an access token or returned no user id."""


class SettlementError(GatewayError):
    """The ledger rejected the transaction or returned no usable hash."""

    http_status = 500


class Conflict(GatewayError):
    """Another user's A2U payment is still in flight."""

    http_status = 409
