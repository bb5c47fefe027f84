"""
Shared pytest fixtures for the Pi payment gateway test suite.

The Pi platform is replaced by an ``httpx.MockTransport`` that records every
request; the ledger by a :class:`FakeLedger` that keeps submitted envelopes.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest
from stellar_sdk import Account, Keypair

from pipay.config import GatewayConfig
from pipay.errors import Unauthorized
from pipay.ledger import HorizonLedgerClient
from pipay.platform_client import PiPlatformClient
from pipay.router import PaymentActionRouter
from pipay.schemas import CallerIdentity
from pipay.settlement import A2USettlementSubmitter

PI_BASE_URL = "https://pi.test/v2"


class FakePiPlatform:
    """Scripted Pi platform: ``(method, path)`` -> ``(status, body)``."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Tuple[int, Any]] = {}
        self.calls: List[httpx.Request] = []

    def on(self, method: str, path: str, status: int = 200, body: Any = None) -> None:
        self.routes[(method, path)] = (status, body if body is not None else {})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path[len("/v2") :]
        status, body = self.routes.get((request.method, path), (404, {"error": "not_found"}))
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def paths(self) -> List[Tuple[str, str]]:
        return [(r.method, r.url.path[len("/v2") :]) for r in self.calls]

    def body_of(self, index: int) -> Optional[Dict[str, Any]]:
        content = self.calls[index].content
        return json.loads(content) if content else None


class FakeLedger(HorizonLedgerClient):
    """Ledger double: no network, records what would have been submitted."""

    instances: List["FakeLedger"] = []
    response: Dict[str, Any] = {"hash": "LEDGERHASH1", "successful": True}

    def __init__(self, horizon_url: str, network_passphrase: str):
        super().__init__(horizon_url, network_passphrase)
        self.submitted: List[Any] = []
        self.loaded: List[str] = []
        FakeLedger.instances.append(self)

    async def load_account(self, address: str) -> Account:
        self.loaded.append(address)
        return Account(address, 1000)

    async def fetch_base_fee(self) -> int:
        return 100000

    async def submit(self, envelope: Any) -> Dict[str, Any]:
        self.submitted.append(envelope)
        return dict(self.response)


class FakeIdentity:
    """Accepts the bearer token "good-session" only."""

    def __init__(self) -> None:
        self.tokens: List[str] = []

    async def verify(self, token: str) -> CallerIdentity:
        self.tokens.append(token)
        if token != "good-session":
            raise Unauthorized("Unauthorized")
        return CallerIdentity(id="app-user-1", email="user@example.com")


@pytest.fixture(autouse=True)
def reset_fake_ledger():
    FakeLedger.instances = []
    FakeLedger.response = {"hash": "LEDGERHASH1", "successful": True}
    yield
    FakeLedger.instances = []


@pytest.fixture
def wallet() -> Keypair:
    return Keypair.random()


@pytest.fixture
def recipient() -> str:
    return Keypair.random().public_key


@pytest.fixture
def config(wallet: Keypair) -> GatewayConfig:
    return GatewayConfig(
        pi_api_key="server-key",
        pi_validation_key="validation-key",
        wallet_private_seed=wallet.secret,
        wallet_public_address=wallet.public_key,
        pi_api_base_url=PI_BASE_URL,
        supabase_url="https://auth.test",
        supabase_service_role_key="service-role",
    )


@pytest.fixture
def pi() -> FakePiPlatform:
    return FakePiPlatform()


@pytest.fixture
def platform(pi: FakePiPlatform) -> PiPlatformClient:
    return PiPlatformClient(
        api_key="server-key", base_url=PI_BASE_URL, transport=pi.transport()
    )


def fake_submitter(seed: str, expected: Optional[str]) -> A2USettlementSubmitter:
    return A2USettlementSubmitter(seed, expected, ledger_factory=FakeLedger)


@pytest.fixture
def router(config: GatewayConfig, platform: PiPlatformClient) -> PaymentActionRouter:
    return PaymentActionRouter(config, platform, submitter_factory=fake_submitter)


@pytest.fixture
def caller() -> CallerIdentity:
    return CallerIdentity(id="app-user-1")


@pytest.fixture
def identity() -> FakeIdentity:
    return FakeIdentity()


def a2u_record(
    wallet: Keypair,
    recipient: str,
    identifier: str = "P1",
    uid: str = "u1",
    amount: Any = 5,
    network: str = "Pi Testnet",
    txid: Optional[str] = None,
    direction: str = "app_to_user",
) -> Dict[str, Any]:
    return {
        "identifier": identifier,
        "user_uid": uid,
        "amount": amount,
        "memo": "payout",
        "metadata": {"note": "x"},
        "from_address": wallet.public_key,
        "to_address": recipient,
        "direction": direction,
        "network": network,
        "status": {"developer_approved": True, "transaction_verified": False},
        "transaction": {"txid": txid, "_link": f"https://horizon/{txid}"} if txid else None,
    }
