"""
Normalization of Pi platform response bodies.

The platform is not consistent about where it puts an error message: some
endpoints answer ``{"error": ...}``, others ``{"message": ...}``, and a few
wrap either one under ``data``. These helpers turn any body into a dict and
pull out the first usable message.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from pipay.errors import UpstreamError

_MESSAGE_KEYS = ("error", "message")


def parse_json(raw: Optional[str]) -> Dict[str, Any]:
    """
    Parse a response body into a dict.

    An empty body yields ``{}``. A body that is not JSON is wrapped as
    ``{"raw": <text>}``. A JSON value that is not an object (a list, a bare
    string) is wrapped as ``{"data": <value>}`` so callers always get a dict.
    """
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, ValueError):
        return {"raw": raw}
    if isinstance(parsed, dict):
        return parsed
    return {"data": parsed}


def _first_message(record: Dict[str, Any]) -> str:
    for key in _MESSAGE_KEYS:
        value = record.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def extract_error_message(payload: Dict[str, Any], fallback: str) -> str:
    """
    Extract a human-readable error message from a parsed body.

    Checks, in order: top-level ``error``, top-level ``message``, then the
    same two keys under a nested ``data`` object. Returns ``fallback`` when
    none of them holds a non-blank string.
    """
    message = _first_message(payload)
    if message:
        return message
    nested = payload.get("data")
    if isinstance(nested, dict):
        message = _first_message(nested)
        if message:
            return message
    return fallback


def normalize_response(
    response: httpx.Response,
    fallback: str,
    extract_message: bool = True,
    error_cls: type = UpstreamError,
) -> Dict[str, Any]:
    """
    Parse an upstream response, raising on a non-2xx status.

    Args:
        response: Response from the Pi platform.
        fallback: Message used when the body carries none (or when
            ``extract_message`` is False). A ``{status}`` placeholder is
            filled with the upstream status code.
        extract_message: Whether to look for an upstream message at all.
        error_cls: Error class raised on failure.

    Returns:
        The parsed body.

    Raises:
        UpstreamError (or ``error_cls``): carrying the message, the upstream
            status and the parsed body.
    """
    data = parse_json(response.text)
    if response.is_success:
        return data

    status_code = response.status_code
    fallback = fallback.format(status=status_code)
    message = extract_error_message(data, fallback) if extract_message else fallback
    if status_code >= 500:
        logger.error(f"Pi platform call failed (HTTP {status_code}): {message}")
    else:
        logger.warning(f"Pi platform call failed (HTTP {status_code}): {message}")
    raise error_cls(message, upstream_status=status_code, response_body=data)
