import httpx
import pytest

from pipay.errors import AuthFailed, UpstreamError
from pipay.normalizer import extract_error_message, normalize_response, parse_json


def test_parse_json_wraps_non_json_body():
    data = parse_json("not json")
    assert data == {"raw": "not json"}
    assert extract_error_message(data, "X failed") == "X failed"


def test_parse_json_empty_and_non_object_bodies():
    assert parse_json("") == {}
    assert parse_json(None) == {}
    assert parse_json("[1, 2]") == {"data": [1, 2]}


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"error": "top error", "message": "top message"}, "top error"),
        ({"error": "  ", "message": "top message"}, "top message"),
        ({"data": {"error": "nested error", "message": "nested message"}}, "nested error"),
        ({"data": {"message": "nested message"}}, "nested message"),
        ({"message": "top", "data": {"error": "nested"}}, "top"),
        ({"error": 42, "data": ["not", "a", "dict"]}, "fallback"),
        ({}, "fallback"),
    ],
)
def test_extract_error_message_order(payload, expected):
    assert extract_error_message(payload, "fallback") == expected


def test_normalize_response_success_returns_body():
    response = httpx.Response(200, json={"identifier": "P1"})
    assert normalize_response(response, "unused") == {"identifier": "P1"}


def test_normalize_response_raises_with_status_and_body():
    response = httpx.Response(400, json={"error": "payment_not_found"})
    with pytest.raises(UpstreamError) as excinfo:
        normalize_response(response, "Pi payment API call failed (status {status})")
    err = excinfo.value
    assert err.message == "payment_not_found"
    assert err.upstream_status == 400
    assert err.response_body == {"error": "payment_not_found"}
    assert err.http_status == 400
    assert err.to_dict() == {
        "error": "payment_not_found",
        "status": 400,
        "data": {"error": "payment_not_found"},
    }


def test_normalize_response_fallback_carries_status():
    response = httpx.Response(502, text="<html>bad gateway</html>")
    with pytest.raises(UpstreamError) as excinfo:
        normalize_response(response, "Pi A2U create failed (status {status})")
    assert str(excinfo.value) == "Pi A2U create failed (status 502)"
    assert excinfo.value.response_body == {"raw": "<html>bad gateway</html>"}


def test_normalize_response_fixed_message_and_error_class():
    response = httpx.Response(401, json={"error": "invalid token"})
    with pytest.raises(AuthFailed) as excinfo:
        normalize_response(
            response,
            "Pi auth verification failed",
            extract_message=False,
            error_cls=AuthFailed,
        )
    assert excinfo.value.message == "Pi auth verification failed"
    assert isinstance(excinfo.value, UpstreamError)
