"""
Horizon client for the Pi blockchain.

Pi runs a Stellar-compatible ledger, so this module talks to its Horizon
endpoints through ``stellar_sdk``'s async server. It loads the paying
account, fetches the current base fee, builds single-payment transactions
and submits signed envelopes. It never signs anything itself.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

from loguru import logger
from stellar_sdk import (
    Account,
    Asset,
    ServerAsync,
    TransactionBuilder,
    TransactionEnvelope,
)
from stellar_sdk.client.aiohttp_client import AiohttpClient
from stellar_sdk.exceptions import BaseHorizonError, SdkError

from pipay.config import LEDGER_AMOUNT_DECIMALS, LEDGER_TX_TIMEOUT_SECONDS
from pipay.errors import SettlementError

_AMOUNT_QUANTUM = Decimal(1).scaleb(-LEDGER_AMOUNT_DECIMALS)


def format_amount(amount: Decimal) -> str:
    """Render an amount with exactly seven fractional digits."""
    return f"{amount.quantize(_AMOUNT_QUANTUM, rounding=ROUND_HALF_UP):f}"


def build_payment_transaction(
    source_account: Account,
    destination: str,
    amount: Decimal,
    memo: str,
    base_fee: int,
    network_passphrase: str,
    timeout: int = LEDGER_TX_TIMEOUT_SECONDS,
) -> TransactionEnvelope:
    """Build an unsigned transaction holding one native-asset payment."""
    try:
        return (
            TransactionBuilder(
                source_account=source_account,
                network_passphrase=network_passphrase,
                base_fee=base_fee,
            )
            .add_text_memo(memo)
            .append_payment_op(
                destination=destination,
                asset=Asset.native(),
                amount=format_amount(amount),
            )
            .set_timeout(timeout)
            .build()
        )
    except SdkError as e:
        raise SettlementError(f"Could not build ledger transaction: {e}") from e


def _horizon_error_detail(error: BaseHorizonError) -> str:
    extras = getattr(error, "extras", None) or {}
    codes = extras.get("result_codes") if isinstance(extras, dict) else None
    if codes:
        return f"{error.title or 'Transaction failed'} {codes}"
    return str(error.title or error.detail or error)


class HorizonLedgerClient:
    """
    Async Horizon client bound to one network.

    Use as an async context manager so the underlying HTTP session is closed:

        ```python
        async with HorizonLedgerClient(url, "Pi Testnet") as ledger:
            account = await ledger.load_account(address)
        ```
    """

    def __init__(self, horizon_url: str, network_passphrase: str):
        self.horizon_url = horizon_url
        self.network_passphrase = network_passphrase
        self._server: Optional[ServerAsync] = None

    def _get_server(self) -> ServerAsync:
        if self._server is None:
            self._server = ServerAsync(self.horizon_url, client=AiohttpClient())
        return self._server

    async def close(self) -> None:
        if self._server is not None:
            await self._server.close()
            self._server = None

    async def __aenter__(self) -> "HorizonLedgerClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def load_account(self, address: str) -> Account:
        try:
            return await self._get_server().load_account(address)
        except SdkError as e:
            logger.error(f"Loading ledger account {address} failed: {e}")
            raise SettlementError(f"Could not load ledger account {address}") from e

    async def fetch_base_fee(self) -> int:
        try:
            return int(await self._get_server().fetch_base_fee())
        except SdkError as e:
            logger.error(f"Fetching base fee from {self.horizon_url} failed: {e}")
            raise SettlementError("Could not fetch ledger base fee") from e

    def build_payment(
        self,
        source_account: Account,
        destination: str,
        amount: Decimal,
        memo: str,
        base_fee: int,
    ) -> TransactionEnvelope:
        return build_payment_transaction(
            source_account,
            destination,
            amount,
            memo,
            base_fee,
            self.network_passphrase,
        )

    async def submit(self, envelope: TransactionEnvelope) -> Dict[str, Any]:
        """Submit a signed envelope and return Horizon's response body."""
        try:
            return await self._get_server().submit_transaction(envelope)
        except BaseHorizonError as e:
            detail = _horizon_error_detail(e)
            logger.error(f"Ledger rejected transaction: {detail}")
            raise SettlementError(f"Ledger rejected transaction: {detail}") from e
        except SdkError as e:
            logger.error(f"Ledger submission failed: {e}")
            raise SettlementError(f"Ledger submission failed: {e}") from e
