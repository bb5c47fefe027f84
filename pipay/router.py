"""
Payment action router.

Maps one validated action request to the sequence of Pi platform calls (and,
for A2U completions, the ledger settlement) that carries it out. The router
keeps no state between requests: the Pi platform and the ledger are the only
systems of record, and nothing is retried here.

**A2U create and the one-incomplete-payment rule:**

The platform allows a single incomplete A2U payment per app key. Before
creating a payout the router lists incomplete payments:

- any entry owned by another user (or by no identifiable user) -> ``Conflict``
- an entry owned by the requested uid -> returned as ``reusedIncomplete``
- nothing listed -> a new payment is created

Two concurrent creates can both see an empty list; the platform rejects the
loser. An optional advisory lock (see :mod:`pipay.locks`) narrows that window
inside one deployment.

**Completion txid resolution:**

1. an explicit ``txid`` from the caller
2. ``a2u_complete`` only: the txid already on the platform record
3. ``a2u_complete`` only, ``app_to_user`` direction: a fresh ledger settlement
4. otherwise no body (the platform is authoritative for user-to-app payments)
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, get_args

from loguru import logger

from pipay.config import GatewayConfig
from pipay.errors import (
    AuthFailed,
    ConfigError,
    Conflict,
    Unauthorized,
    UpstreamError,
)
from pipay.locks import NullLock
from pipay.platform_client import PiPlatformClient
from pipay.schemas import (
    A2UConfigStatus,
    A2UCreate,
    A2UIncomplete,
    ActionRequest,
    AdVerify,
    AuthVerify,
    CallerIdentity,
    PaymentApprove,
    PaymentCancel,
    PaymentComplete,
    PaymentGet,
    PaymentRecord,
    PiUser,
)
from pipay.settlement import A2USettlementSubmitter

SubmitterFactory = Callable[[str, Optional[str]], A2USettlementSubmitter]

AD_REWARD_GRANTED = "granted"
CONFLICT_MESSAGE = (
    "Another incomplete A2U payout exists. "
    "Complete/cancel it before creating a new payout."
)


def _ok(data: Any, **extra: Any) -> Dict[str, Any]:
    return {"success": True, "data": data, **extra}


class PaymentActionRouter:
    """Stateless dispatcher from action requests to platform calls."""

    def __init__(
        self,
        config: GatewayConfig,
        platform: PiPlatformClient,
        submitter_factory: SubmitterFactory = A2USettlementSubmitter,
        lock: Any = None,
    ):
        self.config = config
        self.platform = platform
        self._submitter_factory = submitter_factory
        self._lock = lock if lock is not None else NullLock()
        self._handlers = {
            AuthVerify: self._auth_verify,
            AdVerify: self._ad_verify,
            A2UConfigStatus: self._a2u_config_status,
            A2UCreate: self._a2u_create,
            A2UIncomplete: self._a2u_incomplete,
            PaymentApprove: self._approve,
            PaymentComplete: self._complete,
            PaymentCancel: self._cancel,
            PaymentGet: self._get,
        }
        missing = set(get_args(get_args(ActionRequest)[0])) - set(self._handlers)
        if missing:
            raise RuntimeError(
                f"No handler for actions: {sorted(m.__name__ for m in missing)}"
            )

    async def dispatch(
        self, request: Any, caller: Optional[CallerIdentity] = None
    ) -> Dict[str, Any]:
        """Run one action and return the success response body."""
        if request.requires_session and caller is None:
            raise Unauthorized("Unauthorized")
        logger.info(
            f"Dispatching action {request.action!r}"
            + (f" for user {caller.id}" if caller else "")
        )
        handler = self._handlers[type(request)]
        return await handler(request)

    # --- identity / ads / config ---

    async def _auth_verify(self, request: AuthVerify) -> Dict[str, Any]:
        data = await self.platform.verify_access_token(request.access_token or "")
        uid = data.get("uid")
        if not isinstance(uid, str) or not uid:
            raise AuthFailed("Pi auth response missing uid")
        username = data.get("username")
        user = PiUser(uid=uid, username=username if isinstance(username, str) else None)
        return _ok(user.model_dump())

    async def _ad_verify(self, request: AdVerify) -> Dict[str, Any]:
        data = await self.platform.get_ad_status(request.ad_id or "")
        rewarded = data.get("mediator_ack_status") == AD_REWARD_GRANTED
        return _ok(data, rewarded=rewarded)

    async def _a2u_config_status(self, request: A2UConfigStatus) -> Dict[str, Any]:
        return _ok(self.config.secrets_status())

    # --- A2U payouts ---

    def _lock_key(self) -> str:
        return f"a2u-create:{self.config.wallet_public_address or 'app'}"

    async def _incomplete_payments(self) -> List[Dict[str, Any]]:
        try:
            return await self.platform.incomplete_server_payments()
        except UpstreamError as e:
            if e.upstream_status is None:
                raise
            # The platform still refuses a second incomplete payout on create.
            logger.warning(
                f"Could not list incomplete A2U payments, creating anyway: {e.message}"
            )
            return []

    async def _a2u_create(self, request: A2UCreate) -> Dict[str, Any]:
        payout = request.payout

        async with self._lock.hold(self._lock_key()):
            pending = await self._incomplete_payments()
            owned: List[Dict[str, Any]] = []
            for raw in pending:
                owner = PaymentRecord.model_validate(raw).user_uid
                if owner != payout.uid:
                    logger.warning(
                        f"A2U create for {payout.uid} blocked by incomplete payment "
                        f"{raw.get('identifier')!r} of another user"
                    )
                    raise Conflict(CONFLICT_MESSAGE)
                owned.append(raw)

            if owned:
                logger.info(
                    f"Reusing incomplete A2U payment {owned[0].get('identifier')!r} "
                    f"for {payout.uid}"
                )
                return _ok(owned[0], reusedIncomplete=True)

            data = await self.platform.create_payment(payout.to_platform_body())
        logger.info(f"Created A2U payment {data.get('identifier')!r} for {payout.uid}")
        return _ok(data)

    async def _a2u_incomplete(self, request: A2UIncomplete) -> Dict[str, Any]:
        return _ok(await self.platform.list_incomplete_server_payments())

    # --- payment lifecycle ---

    async def _approve(self, request: PaymentApprove) -> Dict[str, Any]:
        return _ok(await self.platform.approve_payment(request.payment_id))

    async def _cancel(self, request: PaymentCancel) -> Dict[str, Any]:
        return _ok(await self.platform.cancel_payment(request.payment_id))

    async def _get(self, request: PaymentGet) -> Dict[str, Any]:
        return _ok(await self.platform.get_payment(request.payment_id))

    async def _complete(self, request: PaymentComplete) -> Dict[str, Any]:
        txid = await self._resolve_txid(request)
        return _ok(await self.platform.complete_payment(request.payment_id, txid))

    async def _resolve_txid(self, request: PaymentComplete) -> Optional[str]:
        if request.txid:
            return request.txid
        if not request.is_a2u:
            return None

        payment = PaymentRecord.model_validate(
            await self.platform.get_payment(request.payment_id)
        )
        if payment.settled_txid:
            logger.info(
                f"Payment {request.payment_id} already settled as "
                f"{payment.settled_txid}, reusing txid"
            )
            return payment.settled_txid
        if not payment.requires_settlement:
            return None

        if not self.config.wallet_private_seed:
            raise ConfigError("PI_WALLET_PRIVATE_SEED is not configured")
        submitter = self._submitter_factory(
            self.config.wallet_private_seed, self.config.wallet_public_address
        )
        return await submitter.submit(payment)
