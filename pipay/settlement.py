"""
On-chain settlement of app-to-user (A2U) payouts.

:class:`A2USettlementSubmitter` takes a platform payment record, checks it
against the configured wallet, and pays it on the Pi ledger. The resulting
transaction hash is returned to the caller, which reports it to the
platform's ``complete`` endpoint. The submitter never calls the platform.

**Checks, in order (first failure wins):**
    1. payment identifier present
    2. destination address present
    3. source address present
    4. amount finite and > 0
    5. seed's derived address equals the configured expected address (if any)
    6. payment's source address equals the seed's derived address

Nothing is signed before all six pass.
"""

from __future__ import annotations

from typing import Callable, Optional

from loguru import logger

from pipay.config import PI_TESTNET_PASSPHRASE, horizon_url_for
from pipay.errors import ConfigError, SettlementError
from pipay.ledger import HorizonLedgerClient, format_amount
from pipay.schemas import PaymentRecord, parse_amount
from pipay.signing import WalletSigner

LedgerFactory = Callable[[str, str], HorizonLedgerClient]


class A2USettlementSubmitter:
    """
    Signs and submits the ledger payment for an A2U payout.

    **Attributes:**
        expected_public_address (Optional[str]): Address the seed must derive to.
    """

    def __init__(
        self,
        wallet_private_seed: str,
        expected_public_address: Optional[str] = None,
        ledger_factory: LedgerFactory = HorizonLedgerClient,
    ):
        """
        Args:
            wallet_private_seed: Secret seed of the app wallet.
            expected_public_address: Public address configured for the wallet.
                When set, the seed must derive to it.
            ledger_factory: Builds a ledger client from ``(horizon_url,
                network_passphrase)``.
        """
        self._seed = wallet_private_seed
        self.expected_public_address = (expected_public_address or "").strip() or None
        self._ledger_factory = ledger_factory

    async def submit(self, payment: PaymentRecord) -> str:
        """
        Pay ``payment`` on the ledger.

        Returns:
            The ledger transaction hash.

        Raises:
            SettlementError: the record is unusable, or the ledger rejected
                the transaction or answered without a hash.
            ConfigError: the seed does not match the configured address or
                the payment's source address.
        """
        payment_id = payment.identifier
        if not payment_id:
            raise SettlementError("Missing payment identifier for blockchain submission")
        if not payment.to_address:
            raise SettlementError("Missing payment recipient address")
        if not payment.from_address:
            raise SettlementError("Missing payment sender address")
        amount = parse_amount(payment.amount)
        if amount is None:
            raise SettlementError("Invalid payment amount")

        signer = WalletSigner(self._seed)
        signer_address = signer.public_key
        if (
            self.expected_public_address
            and signer_address != self.expected_public_address
        ):
            raise ConfigError(
                "PI_WALLET_PRIVATE_SEED does not match PI_WALLET_PUBLIC_ADDRESS"
            )
        if payment.from_address != signer_address:
            raise ConfigError(
                "Payment source address does not match the configured wallet seed"
            )

        network = payment.network or PI_TESTNET_PASSPHRASE
        horizon_url = horizon_url_for(network)
        logger.info(
            f"Settling A2U payment {payment_id}: {format_amount(amount)} Pi "
            f"to {payment.to_address} on {network!r}"
        )

        async with self._ledger_factory(horizon_url, network) as ledger:
            source_account = await ledger.load_account(signer_address)
            base_fee = await ledger.fetch_base_fee()
            envelope = ledger.build_payment(
                source_account,
                payment.to_address,
                amount,
                payment_id,
                base_fee,
            )
            signer.sign(envelope)
            submitted = await ledger.submit(envelope)

        txid = str(submitted.get("hash") or submitted.get("id") or "").strip()
        if not txid:
            raise SettlementError("Pi blockchain submission did not return txid")

        logger.info(f"A2U payment {payment_id} settled on ledger: {txid}")
        return txid
