from __future__ import annotations

from stellar_sdk import Keypair, TransactionEnvelope
from stellar_sdk.exceptions import SdkError

from pipay.errors import ConfigError


class WalletSigner:
    """Holds the A2U wallet secret and signs ledger transactions with it.

    The secret never leaves this object; ``repr`` shows the public address only.
    """

    def __init__(self, secret_seed: str):
        try:
            self._keypair = Keypair.from_secret(secret_seed.strip())
        except SdkError as e:
            # Do not echo the seed, not even partially.
            raise ConfigError(
                "PI_WALLET_PRIVATE_SEED is not a valid secret seed"
            ) from e

    @property
    def public_key(self) -> str:
        return self._keypair.public_key

    def sign(self, envelope: TransactionEnvelope) -> TransactionEnvelope:
        envelope.sign(self._keypair)
        return envelope

    def __repr__(self) -> str:
        return f"WalletSigner(public_key={self.public_key!r})"
