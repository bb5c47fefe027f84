from pipay.api import create_app
from pipay.client import GatewayClientError, PiGatewayClient
from pipay.config import GatewayConfig
from pipay.errors import (
    AuthFailed,
    ConfigError,
    Conflict,
    GatewayError,
    InvalidArgument,
    SettlementError,
    Unauthorized,
    UpstreamError,
)
from pipay.platform_client import PiPlatformClient
from pipay.router import PaymentActionRouter
from pipay.settlement import A2USettlementSubmitter

__all__ = [
    "create_app",
    "GatewayClientError",
    "PiGatewayClient",
    "GatewayConfig",
    "AuthFailed",
    "ConfigError",
    "Conflict",
    "GatewayError",
    "InvalidArgument",
    "SettlementError",
    "Unauthorized",
    "UpstreamError",
    "PiPlatformClient",
    "PaymentActionRouter",
    "A2USettlementSubmitter",
]
