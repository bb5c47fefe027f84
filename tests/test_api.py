import pytest
from fastapi.testclient import TestClient

from pipay.api import create_app
from pipay.config import GatewayConfig
from pipay.locks import NullLock
from pipay.platform_client import PiPlatformClient
from pipay.router import PaymentActionRouter
from tests.conftest import PI_BASE_URL, fake_submitter

AUTH = {"Authorization": "Bearer good-session"}
PAYOUT = {"amount": 5, "uid": "u1", "memo": "payout", "metadata": {"note": "x"}}


@pytest.fixture
def app(config, platform, identity):
    router = PaymentActionRouter(config, platform, submitter_factory=fake_submitter)
    return create_app(
        config, platform=platform, identity=identity, router=router, lock=NullLock()
    )


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"


def test_cors_preflight_allows_any_origin(client):
    r = client.options(
        "/",
        headers={
            "Origin": "https://app.example",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "authorization, content-type",
        },
    )
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "*"


def test_cors_header_on_regular_response(client):
    r = client.post("/", json={}, headers={"Origin": "https://app.example"})
    assert r.headers["access-control-allow-origin"] == "*"


def test_missing_action(client):
    r = client.post("/", json={"paymentId": "P1"}, headers=AUTH)
    assert r.status_code == 400
    assert r.json() == {"error": "Missing action"}


def test_non_json_body(client):
    r = client.post("/", content=b"action=approve", headers=AUTH)
    assert r.status_code == 400
    assert r.json() == {"error": "Request body must be JSON"}


def test_invalid_action(client):
    r = client.post("/", json={"action": "refund"}, headers=AUTH)
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid action"}


def test_missing_bearer_token(client, identity, pi):
    r = client.post("/", json={"action": "a2u_config_status"})
    assert r.status_code == 401
    assert r.json() == {"error": "Missing auth token"}
    assert identity.tokens == []
    assert pi.calls == []


def test_rejected_session_token(client, identity):
    r = client.post(
        "/", json={"action": "a2u_config_status"}, headers={"Authorization": "Bearer nope"}
    )
    assert r.status_code == 401
    assert r.json() == {"error": "Unauthorized"}
    assert identity.tokens == ["nope"]


def test_authentication_runs_before_payload_validation(client, pi):
    r = client.post("/", json={"action": "a2u_create", "payment": {}})
    assert r.status_code == 401
    assert pi.calls == []


def test_auth_verify_needs_no_session(client, pi, identity):
    pi.on("GET", "/me", body={"uid": "pi-uid", "username": "alice"})
    r = client.post("/", json={"action": "auth_verify", "accessToken": "pi-token"})
    assert r.status_code == 200
    assert r.json() == {"success": True, "data": {"uid": "pi-uid", "username": "alice"}}
    assert identity.tokens == []


def test_auth_verify_invalid_token(client, pi, identity):
    pi.on("GET", "/me", status=401, body={"error": "expired"})
    r = client.post("/", json={"action": "auth_verify", "accessToken": "old"})
    assert r.status_code == 400
    assert r.json() == {
        "error": "Pi auth verification failed",
        "status": 401,
        "data": {"error": "expired"},
    }
    assert identity.tokens == []


def test_a2u_create_scenario(client, pi):
    pi.on("GET", "/payments/incomplete_server_payments", body={"incomplete_server_payments": []})
    pi.on("POST", "/payments", body={"identifier": "NEW1", "amount": 5})
    r = client.post("/", json={"action": "a2u_create", "payment": PAYOUT}, headers=AUTH)
    assert r.status_code == 200
    assert r.json() == {"success": True, "data": {"identifier": "NEW1", "amount": 5}}


def test_a2u_create_conflict_is_409(client, pi):
    pi.on(
        "GET",
        "/payments/incomplete_server_payments",
        body={"incomplete_server_payments": [{"identifier": "OLD", "user_uid": "someone"}]},
    )
    r = client.post("/", json={"action": "a2u_create", "payment": PAYOUT}, headers=AUTH)
    assert r.status_code == 409
    assert "Another incomplete A2U payout exists" in r.json()["error"]


def test_invalid_a2u_payload(client, pi):
    r = client.post(
        "/", json={"action": "a2u_create", "payment": {**PAYOUT, "amount": "-1"}}, headers=AUTH
    )
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid payment.amount"}
    assert pi.calls == []


def test_complete_alias_route(client, pi):
    pi.on("POST", "/payments/P1/complete", body={"identifier": "P1"})
    r = client.post(
        "/pi-platform",
        json={"action": "complete", "paymentId": "P1", "txid": "H1"},
        headers=AUTH,
    )
    assert r.status_code == 200
    assert pi.body_of(0) == {"txid": "H1"}


def test_upstream_error_body(client, pi):
    pi.on("POST", "/payments/P1/approve", status=400, body={"message": "already_approved"})
    r = client.post("/", json={"action": "approve", "paymentId": "P1"}, headers=AUTH)
    assert r.status_code == 400
    assert r.json() == {
        "error": "already_approved",
        "status": 400,
        "data": {"message": "already_approved"},
    }


def test_missing_api_key_is_500(pi, identity):
    config = GatewayConfig(pi_api_base_url=PI_BASE_URL)
    platform = PiPlatformClient(base_url=PI_BASE_URL, transport=pi.transport())
    app = create_app(config, platform=platform, identity=identity, lock=NullLock())
    with TestClient(app) as c:
        r = c.post("/", json={"action": "ad_verify", "adId": "ad1"}, headers=AUTH)
    assert r.status_code == 500
    assert r.json() == {"error": "PI_API_KEY is not configured"}


class ExplodingRouter:
    async def dispatch(self, request, caller):
        raise RuntimeError("boom")


def test_unexpected_error_is_generic_500(config, platform, identity):
    app = create_app(
        config, platform=platform, identity=identity, router=ExplodingRouter(), lock=NullLock()
    )
    with TestClient(app, raise_server_exceptions=False) as c:
        r = c.post(
            "/",
            json={"action": "a2u_config_status"},
            headers={**AUTH, "Origin": "https://app.example"},
        )
    assert r.status_code == 500
    assert r.json() == {"error": "boom"}
    assert r.headers.get("access-control-allow-origin") == "*"
    assert "Traceback" not in r.text
