"""
Pi payment gateway FastAPI app.

Core flow:
- POST /  (or /pi-platform) with ``{"action": ..., ...}``
  -> authenticate the caller (every action except ``auth_verify``)
  -> validate the action-specific fields
  -> :class:`pipay.router.PaymentActionRouter` runs the platform / ledger calls
  -> ``{"success": true, "data": ...}`` or ``{"error": ..., "status"?, "data"?}``

Important environment variables (server-side):
- PI_API_KEY: server key for the Pi platform
- PI_WALLET_PRIVATE_SEED / PI_WALLET_PUBLIC_ADDRESS: A2U wallet
- SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY: verifies caller session tokens
- A2U_LOCK_BACKEND / REDIS_URL: optional advisory lock for A2U creates
"""

from __future__ import annotations

import json
import sys
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from pipay.config import GatewayConfig
from pipay.errors import GatewayError, InvalidArgument
from pipay.identity import SupabaseIdentityVerifier, bearer_token
from pipay.locks import build_lock
from pipay.platform_client import PiPlatformClient
from pipay.router import PaymentActionRouter
from pipay.schemas import action_name, parse_action_request

CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


def configure_logging(level: str = "INFO") -> None:
    """Replace loguru's default sink with one at ``level``."""
    logger.remove()
    logger.add(sys.stderr, level=level)


def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500, content={"error": str(exc) or "Unexpected error"}
    )


def create_app(
    config: Optional[GatewayConfig] = None,
    platform: Optional[PiPlatformClient] = None,
    identity: Any = None,
    router: Optional[PaymentActionRouter] = None,
    lock: Any = None,
) -> FastAPI:
    """
    Build the gateway app.

    Every collaborator can be passed in; anything left out is built from
    ``config`` (itself read from the environment when omitted).
    """
    config = config or GatewayConfig.from_env()
    lock = (
        lock
        if lock is not None
        else build_lock(
            config.a2u_lock_backend,
            config.redis_url,
            config.a2u_lock_ttl_seconds,
            config.a2u_lock_wait_seconds,
        )
    )
    platform = platform or PiPlatformClient(
        api_key=config.pi_api_key,
        base_url=config.pi_api_base_url,
        timeout=config.pi_api_timeout,
    )
    identity = identity or SupabaseIdentityVerifier(
        config.supabase_url, config.supabase_service_role_key
    )
    router = router or PaymentActionRouter(config, platform, lock=lock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Pi payment gateway")
        await lock.connect()
        yield
        logger.info("Shutting down Pi payment gateway")
        await lock.disconnect()

    app = FastAPI(
        title="Pi Payment Gateway",
        description="Pi Network payment actions with A2U settlement on the Pi ledger",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=CORS_ALLOW_HEADERS,
    )

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        return _unexpected_error(request, exc)

    @app.get("/health")
    async def health_check():
        """Health check endpoint for load balancers and deployments."""
        return {"status": "healthy", "service": "Pi Payment Gateway"}

    async def handle_action(request: Request):
        """Authenticate the caller and run one payment action."""
        # Answered here so the response still passes back through CORSMiddleware.
        try:
            return await _run_action(request)
        except GatewayError:
            raise
        except Exception as e:
            return _unexpected_error(request, e)

    async def _run_action(request: Request):
        raw = await request.body()
        try:
            body = json.loads(raw) if raw else None
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise InvalidArgument("Request body must be JSON") from None

        action = action_name(body)
        caller = None
        if action != "auth_verify":
            token = bearer_token(request.headers.get("Authorization"))
            caller = await identity.verify(token)

        action_request = parse_action_request(body)
        result = await router.dispatch(action_request, caller)
        return JSONResponse(content=result)

    app.add_api_route("/", handle_action, methods=["POST"])
    app.add_api_route("/pi-platform", handle_action, methods=["POST"])

    app.state.config = config
    app.state.router = router
    return app
