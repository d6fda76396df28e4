"""HTTP API: cron-triggered liquidation and user sync endpoints (aiohttp.web)."""
from __future__ import annotations

import asyncio
import hmac
import logging
import time
from typing import Awaitable, TypeVar

from aiohttp import web

from ..chains.evm.client import to_checksum
from ..config import AppConfig
from ..errors import (
    LiquidatorError,
    NoLiquidatableUser,
    NoLiquidatorAvailable,
    ValidationError,
)
from ..models import LiquidationPlan
from ..services import LiquidationService, UserSync

logger = logging.getLogger(__name__)

UINT256_MAX = 2**256 - 1

T = TypeVar("T")

CONFIG_KEY = web.AppKey("config", AppConfig)
SERVICE_KEY = web.AppKey("service", LiquidationService)
USER_SYNC_KEY = web.AppKey("user_sync", UserSync)


def _authorized(request: web.Request) -> bool:
    secret = request.app[CONFIG_KEY].server.cron_secret
    if not secret:
        return False
    header = request.headers.get("Authorization", "")
    return hmac.compare_digest(header.encode(), f"Bearer {secret}".encode())


def _unauthorized() -> web.Response:
    return web.json_response({"error": "Unauthorized"}, status=401)


def _error_response(error: str, e: Exception) -> web.Response:
    if isinstance(e, (NoLiquidatorAvailable, NoLiquidatableUser)):
        return web.json_response(
            {"success": False, "error": e.error, "message": str(e)}, status=404
        )
    status = e.status if isinstance(e, LiquidatorError) else 500
    return web.json_response(
        {"success": False, "error": error, "details": str(e)}, status=status
    )


async def _bounded(request: web.Request, coro: Awaitable[T]) -> T:
    timeout = request.app[CONFIG_KEY].server.request_timeout
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise TimeoutError(f"Request timed out after {timeout}s") from e


async def health(request: web.Request) -> web.Response:
    return web.json_response({"status": "healthy", "timestamp": time.time()})


async def select_and_liquidate(request: web.Request) -> web.Response:
    if not _authorized(request):
        return _unauthorized()

    service = request.app[SERVICE_KEY]
    try:
        outcome = await _bounded(request, service.select_and_liquidate())
    except (LiquidatorError, TimeoutError) as e:
        logger.error("Error in select-and-liquidate: %s", e)
        return _error_response("Failed to select liquidator", e)
    except Exception as e:
        logger.exception("Unexpected error in select-and-liquidate: %s", e)
        return _error_response("Failed to select liquidator", e)

    liquidator = outcome.liquidator
    body = {
        "success": True,
        "selectedLiquidator": {
            "address": liquidator.address,
            "pkpPublicKey": liquidator.pkp_public_key,
            "vasBalance": str(liquidator.vas_balance),
        },
        "message": (
            f"Successfully selected liquidator {liquidator.address} with VAS balance "
            f"{liquidator.vas_balance} and liquidated {outcome.plan.user} "
            f"(txHash: {outcome.liquidation_tx_hash})"
        ),
    }
    logger.info("Liquidator selection complete: %s", body["message"])
    return web.json_response(body)


async def update_user_list(request: web.Request) -> web.Response:
    if not _authorized(request):
        return _unauthorized()

    user_sync = request.app[USER_SYNC_KEY]
    try:
        result = await _bounded(request, user_sync.update_user_list())
    except (LiquidatorError, TimeoutError) as e:
        logger.error("Error updating user list: %s", e)
        return _error_response("Failed to update user list", e)
    except Exception as e:
        logger.exception("Unexpected error updating user list: %s", e)
        return _error_response("Failed to update user list", e)

    return web.json_response(
        {
            "success": True,
            "fromBlock": result.from_block,
            "toBlock": "latest",
            "mintEventsFound": result.mint_events_found,
            "uniqueAddressesProcessed": result.unique_addresses_processed,
            "newUsersAdded": result.new_users_added,
            "message": result.message,
        }
    )


def _parse_amount(raw: str | None) -> int:
    if raw is None:
        return UINT256_MAX
    try:
        amount = int(raw)
    except ValueError:
        raise ValidationError(f"Invalid amount: '{raw}'") from None
    if amount < 0:
        raise ValidationError(f"Amount must be non-negative: '{raw}'")
    return amount


async def position(request: web.Request) -> web.Response:
    """Evaluate one user's position without liquidating it."""
    service = request.app[SERVICE_KEY]
    try:
        user = to_checksum(request.match_info["address"])
        balance = _parse_amount(request.query.get("liquidatorBalance"))
        result = await _bounded(request, service.evaluate_user(user, balance))
    except (LiquidatorError, TimeoutError) as e:
        return _error_response("Failed to evaluate position", e)
    except Exception as e:
        logger.exception("Unexpected error evaluating position: %s", e)
        return _error_response("Failed to evaluate position", e)

    hf = result.health_factor
    body = {
        "success": True,
        "user": user,
        "healthFactor": None if hf is None else f"{float(hf):.6f}",
        "liquidatable": isinstance(result, LiquidationPlan),
    }
    if isinstance(result, LiquidationPlan):
        body.update(
            {
                "collateralAddress": result.collateral_token,
                "debtToLiquidate": str(result.debt_to_cover),
                "unpricedTokens": list(result.unpriced_tokens),
            }
        )
    else:
        body.update({"reason": result.reason.value, "message": result.message})
    return web.json_response(body)


def create_app(
    config: AppConfig,
    service: LiquidationService | None = None,
    user_sync: UserSync | None = None,
) -> web.Application:
    service = service or LiquidationService(config)
    user_sync = user_sync or UserSync(service.chain, service.registry, config.liquidation)

    app = web.Application()
    app[CONFIG_KEY] = config
    app[SERVICE_KEY] = service
    app[USER_SYNC_KEY] = user_sync

    app.router.add_get("/health", health)
    app.router.add_get("/api/select-and-liquidate", select_and_liquidate)
    app.router.add_get("/api/update-user-list", update_user_list)
    app.router.add_get("/api/positions/{address}", position)
    return app


def run_server(config: AppConfig) -> None:
    app = create_app(config)
    logger.info("Serving on %s:%d", config.server.host, config.server.port)
    web.run_app(app, host=config.server.host, port=config.server.port, print=None)
