from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from pipay.errors import InvalidArgument

A2U_DIRECTION = "app_to_user"
U2A_DIRECTION = "user_to_app"


def _text(value: Any) -> str:
    """Stripped string value, or "" for anything that is not a string."""
    return value.strip() if isinstance(value, str) else ""


def parse_amount(value: Any) -> Optional[Decimal]:
    """Parse a positive, finite amount; None when the value is not one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        raw = str(value)
    elif isinstance(value, str):
        raw = value.strip()
    else:
        return None
    try:
        amount = Decimal(raw)
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return amount


# --- Platform records ---


class PaymentTransaction(BaseModel):
    """On-ledger settlement reference embedded in a payment record."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    txid: Optional[str] = Field(None, description="Ledger transaction hash")
    link: Optional[str] = Field(
        None, alias="_link", description="Horizon link for the transaction"
    )
    verified: Optional[bool] = None

    @field_validator("txid", "link", mode="before")
    @classmethod
    def _coerce_reference(cls, v: Any) -> Optional[str]:
        if isinstance(v, (str, int)) and not isinstance(v, bool):
            return str(v).strip() or None
        return None

    @field_validator("verified", mode="before")
    @classmethod
    def _coerce_flag(cls, v: Any) -> Optional[bool]:
        return v if isinstance(v, bool) else None


class PaymentRecord(BaseModel):
    """The Pi platform's view of a payment."""

    model_config = ConfigDict(extra="allow")

    identifier: str = Field("", description="Payment id, primary key upstream")
    user_uid: str = Field("", description="Pi uid of the user")
    amount: Any = Field(None, description="Amount in Pi, as returned upstream")
    memo: str = Field("", description="Payment memo")
    metadata: Any = Field(None, description="App-defined payload")
    from_address: str = Field("", description="Ledger source account")
    to_address: str = Field("", description="Ledger destination account")
    direction: str = Field("", description="user_to_app or app_to_user")
    network: str = Field("", description="Declared network passphrase")
    transaction: Optional[PaymentTransaction] = None

    @field_validator(
        "identifier",
        "user_uid",
        "memo",
        "from_address",
        "to_address",
        "direction",
        "network",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("transaction", mode="before")
    @classmethod
    def _drop_non_mapping(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else None

    @property
    def settled_txid(self) -> str:
        if self.transaction is None:
            return ""
        return _text(self.transaction.txid)

    @property
    def requires_settlement(self) -> bool:
        return self.direction == A2U_DIRECTION


class A2UPaymentCreate(BaseModel):
    """Validated body of an app-to-user payout request."""

    amount: Decimal
    uid: str
    memo: str
    metadata: Dict[str, Any]
    extra: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> "A2UPaymentCreate":
        if not isinstance(payload, dict):
            raise InvalidArgument("Missing payment payload")
        amount = parse_amount(payload.get("amount"))
        if amount is None:
            raise InvalidArgument("Invalid payment.amount")
        uid = _text(payload.get("uid"))
        if not uid:
            raise InvalidArgument("Missing payment.uid")
        memo = _text(payload.get("memo"))
        if not memo:
            raise InvalidArgument("Missing payment.memo")
        metadata = payload.get("metadata")
        if not isinstance(metadata, dict):
            raise InvalidArgument("Missing payment.metadata object")
        extra = {
            k: v
            for k, v in payload.items()
            if k not in ("amount", "uid", "memo", "metadata")
        }
        return cls(
            amount=amount, uid=uid, memo=memo, metadata=metadata, extra=extra
        )

    def to_platform_body(self) -> Dict[str, Any]:
        # The platform expects a JSON number.
        return {
            **self.extra,
            "amount": float(self.amount),
            "memo": self.memo,
            "metadata": self.metadata,
            "uid": self.uid,
        }


class CallerIdentity(BaseModel):
    """An application user already authenticated by the identity provider."""

    id: str
    email: Optional[str] = None


class PiUser(BaseModel):
    uid: str
    username: Optional[str] = None


# --- Action requests ---

_STRING_FIELDS = ("accessToken", "adId", "paymentId", "txid")


class _ActionBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _strings_only(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {
            k: (v.strip() if isinstance(v, str) else None)
            if k in _STRING_FIELDS
            else v
            for k, v in data.items()
        }

    @property
    def requires_session(self) -> bool:
        return True


class AuthVerify(_ActionBase):
    action: Literal["auth_verify"]
    access_token: Optional[str] = Field(None, alias="accessToken")

    @property
    def requires_session(self) -> bool:
        return False

    @model_validator(mode="after")
    def _check(self) -> "AuthVerify":
        if not _text(self.access_token):
            raise ValueError("Missing accessToken")
        return self


class AdVerify(_ActionBase):
    action: Literal["ad_verify"]
    ad_id: Optional[str] = Field(None, alias="adId")

    @model_validator(mode="after")
    def _check(self) -> "AdVerify":
        if not _text(self.ad_id):
            raise ValueError("Missing adId")
        return self


class A2UConfigStatus(_ActionBase):
    action: Literal["a2u_config_status"]


class A2UCreate(_ActionBase):
    action: Literal["a2u_create"]
    payment: Any = None

    @property
    def payout(self) -> A2UPaymentCreate:
        return A2UPaymentCreate.from_payload(self.payment)


class A2UIncomplete(_ActionBase):
    action: Literal["a2u_incomplete"]


class _PaymentAction(_ActionBase):
    payment_id: Optional[str] = Field(None, alias="paymentId")

    @model_validator(mode="after")
    def _check(self) -> "_PaymentAction":
        if not _text(self.payment_id):
            raise ValueError("Missing paymentId")
        return self


class PaymentApprove(_PaymentAction):
    action: Literal["approve", "payment_approve", "a2u_approve"]


class PaymentComplete(_PaymentAction):
    action: Literal["complete", "payment_complete", "a2u_complete"]
    txid: Optional[str] = None

    @property
    def is_a2u(self) -> bool:
        return self.action == "a2u_complete"


class PaymentCancel(_PaymentAction):
    action: Literal["cancel", "payment_cancel", "a2u_cancel"]


class PaymentGet(_PaymentAction):
    action: Literal["get", "payment_get", "a2u_get"]


ActionRequest = Annotated[
    Union[
        AuthVerify,
        AdVerify,
        A2UConfigStatus,
        A2UCreate,
        A2UIncomplete,
        PaymentApprove,
        PaymentComplete,
        PaymentCancel,
        PaymentGet,
    ],
    Field(discriminator="action"),
]

_action_adapter: TypeAdapter = TypeAdapter(ActionRequest)


def action_name(body: Any) -> str:
    """Extract the action name from a raw request body."""
    if not isinstance(body, dict):
        raise InvalidArgument("Invalid request body")
    action = body.get("action")
    if not isinstance(action, str) or not action.strip():
        raise InvalidArgument("Missing action")
    return action.strip()


def parse_action_request(body: Any) -> Any:
    """Validate a raw request body into one of the action request models."""
    action = action_name(body)
    try:
        return _action_adapter.validate_python({**body, "action": action})
    except ValidationError as e:
        first = e.errors()[0]
        if first["type"] in ("union_tag_invalid", "union_tag_not_found"):
            raise InvalidArgument("Invalid action") from None
        cause = (first.get("ctx") or {}).get("error")
        message = str(cause) if cause is not None else first["msg"]
        raise InvalidArgument(message) from None
