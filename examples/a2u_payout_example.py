"""
Pi gateway - A2U payout example (create -> settle + complete)
=============================================================

1) a2u_create   -> creates the payout, or returns the caller's incomplete one
2) a2u_complete -> the gateway signs+submits the ledger payment and reports
                   the txid to the Pi platform

IMPORTANT
- Step 2 broadcasts a real Pi ledger transaction from the app wallet.
- Set PIPAY_ALLOW_SPEND=true to actually run it.

Env vars:
- PIPAY_BASE_URL       (default: http://localhost:8000)
- PIPAY_SESSION_TOKEN  (required) session bearer token of an app user
- PIPAY_PI_UID         (required) Pi uid of the payout recipient
- PIPAY_AMOUNT         (default: 0.1)
- PIPAY_ALLOW_SPEND    (default: false)
"""

from __future__ import annotations

import asyncio
import json
import os

from pipay.client import GatewayClientError, PiGatewayClient


def _bool_env(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


async def main() -> int:
    base_url = os.getenv("PIPAY_BASE_URL", "http://localhost:8000")
    token = os.getenv("PIPAY_SESSION_TOKEN", "").strip()
    uid = os.getenv("PIPAY_PI_UID", "").strip()
    if not token:
        raise RuntimeError("PIPAY_SESSION_TOKEN is required")
    if not uid:
        raise RuntimeError("PIPAY_PI_UID is required")

    client = PiGatewayClient(base_url, access_token=token)

    status = await client.config_status()
    print("config:", status)
    if not status.get("hasWalletPrivateSeed"):
        print("Gateway has no A2U wallet configured; stopping.")
        return 1

    try:
        payment = await client.create_a2u(
            amount=os.getenv("PIPAY_AMOUNT", "0.1"),
            uid=uid,
            memo="Example payout",
            metadata={"source": "a2u_payout_example"},
        )
    except GatewayClientError as e:
        print(f"create failed ({e.status_code}): {e}")
        return 1

    print("\n--- Payment ---")
    print(json.dumps(payment, indent=2)[:4000])

    if not _bool_env("PIPAY_ALLOW_SPEND"):
        print("\nSKIP settlement. Set PIPAY_ALLOW_SPEND=true to pay on the ledger.")
        return 0

    completed = await client.complete(payment["identifier"], a2u=True)
    print("\n--- Completed ---")
    print(json.dumps(completed, indent=2)[:4000])
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
