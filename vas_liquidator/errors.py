"""Error categories surfaced by the services and mapped to HTTP statuses."""
from __future__ import annotations


class LiquidatorError(Exception):
    """Base class for all liquidator errors."""

    status = 500
    error = "Liquidator error"


class ValidationError(LiquidatorError, ValueError):
    """Malformed input (address, amount, plan)."""

    status = 400
    error = "Invalid input"


class UpstreamError(LiquidatorError):
    """Oracle, chain or database unavailable or misbehaving."""

    status = 500
    error = "Upstream failure"


class SignerUnavailable(LiquidatorError):
    """No signing key is configured for the selected liquidator."""

    status = 500
    error = "Signer unavailable"


class NoLiquidatorAvailable(LiquidatorError):
    status = 404
    error = "No liquidators found with VAS balance > 0"


class NoLiquidatableUser(LiquidatorError):
    status = 404
    error = "No undercollateralized users found"
