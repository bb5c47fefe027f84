"""
Process-wide configuration for the Pi payment gateway.

Constants that never change at runtime live at module level. Everything that
comes from the environment is read once by :meth:`GatewayConfig.from_env` and
the resulting object is handed to each component explicitly.
"""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

# --- Pi platform ---
PI_API_BASE_URL_DEFAULT = "https://api.minepi.com/v2"
PI_API_TIMEOUT_DEFAULT = 30.0

# --- Ledger (Horizon) ---
PI_MAINNET_PASSPHRASE = "Pi Network"
PI_TESTNET_PASSPHRASE = "Pi Testnet"
PI_MAINNET_HORIZON_URL = "https://api.mainnet.minepi.com"
PI_TESTNET_HORIZON_URL = "https://api.testnet.minepi.com"
LEDGER_TX_TIMEOUT_SECONDS = 180
LEDGER_AMOUNT_DECIMALS = 7

# --- Advisory lock ---
LOCK_BACKENDS = ("none", "memory", "redis")


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name, default)
    if v is None:
        return None
    v = v.strip()
    return v if v != "" else None


def _float_env(name: str, default: float) -> float:
    v = _env(name)
    if v is None:
        return default
    return float(v)


def _int_env(name: str, default: int) -> int:
    v = _env(name)
    if v is None:
        return default
    return int(v)


def horizon_url_for(network: str) -> str:
    """Return the Horizon endpoint for a declared Pi network name."""
    if network == PI_MAINNET_PASSPHRASE:
        return PI_MAINNET_HORIZON_URL
    return PI_TESTNET_HORIZON_URL


class GatewayConfig(BaseModel):
    """Immutable runtime configuration, built once at startup."""

    pi_api_key: Optional[str] = Field(
        default=None, description="Server API key for the Pi platform"
    )
    pi_validation_key: Optional[str] = Field(
        default=None, description="Secondary validation key (reported only)"
    )
    wallet_private_seed: Optional[str] = Field(
        default=None, description="A2U wallet secret seed (S...)"
    )
    wallet_public_address: Optional[str] = Field(
        default=None, description="Expected public address of the A2U wallet"
    )
    pi_api_base_url: str = Field(default=PI_API_BASE_URL_DEFAULT)
    pi_api_timeout: float = Field(default=PI_API_TIMEOUT_DEFAULT)
    supabase_url: Optional[str] = Field(
        default=None, description="Identity provider base URL"
    )
    supabase_service_role_key: Optional[str] = Field(default=None)
    a2u_lock_backend: str = Field(default="none")
    redis_url: str = Field(default="redis://localhost:6379/0")
    a2u_lock_ttl_seconds: int = Field(default=30)
    a2u_lock_wait_seconds: float = Field(
        default=5.0, description="How long a create waits for a held lock"
    )
    log_level: str = Field(default="INFO")

    model_config = {"frozen": True}

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        backend = (_env("A2U_LOCK_BACKEND", "none") or "none").lower()
        if backend not in LOCK_BACKENDS:
            raise ValueError(
                f"A2U_LOCK_BACKEND must be one of {LOCK_BACKENDS}, got {backend!r}"
            )
        return cls(
            pi_api_key=_env("PI_API_KEY"),
            pi_validation_key=_env("PI_VALIDATION_KEY"),
            wallet_private_seed=_env("PI_WALLET_PRIVATE_SEED"),
            wallet_public_address=_env("PI_WALLET_PUBLIC_ADDRESS"),
            pi_api_base_url=(
                _env("PI_API_BASE_URL", PI_API_BASE_URL_DEFAULT)
                or PI_API_BASE_URL_DEFAULT
            ).rstrip("/"),
            pi_api_timeout=_float_env("PI_API_TIMEOUT", PI_API_TIMEOUT_DEFAULT),
            supabase_url=_env("SUPABASE_URL"),
            supabase_service_role_key=_env("SUPABASE_SERVICE_ROLE_KEY"),
            a2u_lock_backend=backend,
            redis_url=_env("REDIS_URL", "redis://localhost:6379/0")
            or "redis://localhost:6379/0",
            a2u_lock_ttl_seconds=_int_env("A2U_LOCK_TTL_SECONDS", 30),
            a2u_lock_wait_seconds=_float_env("A2U_LOCK_WAIT_SECONDS", 5.0),
            log_level=(_env("LOG_LEVEL", "INFO") or "INFO").upper(),
        )

    def secrets_status(self) -> Dict[str, bool]:
        """Which operational secrets are present, without their values."""
        return {
            "hasApiKey": bool(self.pi_api_key),
            "hasValidationKey": bool(self.pi_validation_key),
            "hasWalletPrivateSeed": bool(self.wallet_private_seed),
            "hasWalletPublicAddress": bool(self.wallet_public_address),
        }

    def __repr_args__(self) -> Any:
        hidden = {
            "pi_api_key",
            "pi_validation_key",
            "wallet_private_seed",
            "supabase_service_role_key",
        }
        for name, value in super().__repr_args__():
            if name in hidden and value:
                yield name, "***"
            else:
                yield name, value
