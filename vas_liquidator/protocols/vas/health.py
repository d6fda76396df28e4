"""Pure health-factor and liquidation-sizing functions, no I/O.

All intermediate arithmetic uses :class:`fractions.Fraction`; only values that
go back on-chain are rounded to integers (raw token units).
"""
from __future__ import annotations

import logging
import math
from fractions import Fraction

from ...models import (
    CollateralValue,
    LiquidationPlan,
    NotLiquidatable,
    NotLiquidatableReason,
    Position,
    PriceQuote,
    PriceUpdate,
    TokenBalance,
)

logger = logging.getLogger(__name__)

# 50 / 100: debt may not exceed half the collateral value (200% collateralized).
LIQUIDATION_THRESHOLD = 50
LIQUIDATION_PRECISION = 100
COMMON_DECIMALS = 18


def collateral_value_usd(
    balance: TokenBalance,
    quote: PriceQuote | None,
    common_decimals: int = COMMON_DECIMALS,
) -> int:
    """USD value of one balance, expressed with ``common_decimals`` decimals.

    value = amount * price * 10^(common_decimals - token_decimals + expo)

    Returns 0 for an empty balance, a missing quote or a non-positive price.
    """
    if balance.amount <= 0 or quote is None or quote.price <= 0:
        return 0
    scale = common_decimals - balance.decimals + quote.expo
    value = Fraction(balance.amount * quote.price) * Fraction(10) ** scale
    return math.floor(value)


def value_balances(
    position: Position,
    prices: PriceUpdate,
    common_decimals: int = COMMON_DECIMALS,
) -> tuple[tuple[CollateralValue, ...], tuple[str, ...]]:
    """Value every balance of a position.

    Returns the per-token values (in on-chain order) and the tokens that
    could not be priced. Unpriced balances count as zero collateral.
    """
    values: list[CollateralValue] = []
    unpriced: list[str] = []

    for balance in position.balances:
        quote = prices.quote_for(balance.price_feed_id)
        priced = quote is not None and quote.price > 0
        if balance.amount > 0 and not priced:
            logger.warning(
                "No usable price for %s (feed %s) on %s, counted as zero collateral",
                balance.token,
                balance.price_feed_id,
                position.user,
            )
            unpriced.append(balance.token)
        values.append(
            CollateralValue(
                token=balance.token,
                usd_value=collateral_value_usd(balance, quote, common_decimals),
                priced=priced,
            )
        )

    return tuple(values), tuple(unpriced)


def safe_debt_ceiling(
    total_collateral_usd: int,
    threshold: int = LIQUIDATION_THRESHOLD,
    precision: int = LIQUIDATION_PRECISION,
) -> Fraction:
    """Maximum debt the collateral can back before liquidation."""
    return Fraction(total_collateral_usd * threshold, precision)


def health_factor(ceiling: Fraction, total_debt: int) -> Fraction | None:
    """Return ceiling / debt, or None when there is no debt."""
    if total_debt <= 0:
        return None
    return ceiling / total_debt


def select_collateral(
    values: tuple[CollateralValue, ...] | list[CollateralValue],
) -> CollateralValue | None:
    """Pick the balance with the highest USD value (first one wins ties)."""
    selected: CollateralValue | None = None
    for value in values:
        if value.usd_value <= 0:
            continue
        if selected is None or value.usd_value > selected.usd_value:
            selected = value
    return selected


def compute_liquidation(
    position: Position,
    prices: PriceUpdate,
    liquidator_balance: int,
    threshold: int = LIQUIDATION_THRESHOLD,
    precision: int = LIQUIDATION_PRECISION,
    common_decimals: int = COMMON_DECIMALS,
) -> LiquidationPlan | NotLiquidatable:
    """Decide whether ``position`` can be liquidated and size the liquidation.

    Only one collateral token can be seized per liquidation, so the debt to
    cover is bounded by the shortfall, the value of the selected collateral
    and the liquidator's stablecoin balance.
    """
    if position.total_debt < 0 or liquidator_balance < 0:
        raise ValueError("Debt and balances must be non-negative")

    if position.total_debt == 0:
        return NotLiquidatable(
            user=position.user,
            reason=NotLiquidatableReason.NO_DEBT,
            message=f"User ({position.user}) has no VAS minted, cannot be liquidated.",
        )

    values, unpriced = value_balances(position, prices, common_decimals)
    total_collateral = sum(v.usd_value for v in values)
    ceiling = safe_debt_ceiling(total_collateral, threshold, precision)
    hf = health_factor(ceiling, position.total_debt)

    if hf >= 1:
        return NotLiquidatable(
            user=position.user,
            reason=NotLiquidatableReason.USER_IS_OVERCOLLATERALIZED,
            message=(
                f"User ({position.user}) is overcollateralized "
                f"with health factor {float(hf):.4f}."
            ),
            health_factor=hf,
        )

    selected = select_collateral(values)
    if selected is None:
        return NotLiquidatable(
            user=position.user,
            reason=NotLiquidatableReason.NO_SEIZABLE_COLLATERAL,
            message=f"User ({position.user}) has no priced collateral to seize.",
            health_factor=hf,
        )

    shortfall = math.ceil(position.total_debt - ceiling)
    debt_to_cover = min(shortfall, selected.usd_value, liquidator_balance)

    if debt_to_cover <= 0:
        return NotLiquidatable(
            user=position.user,
            reason=NotLiquidatableReason.INSUFFICIENT_BALANCE,
            message=f"Liquidator balance is too low to cover debt of {position.user}.",
            health_factor=hf,
        )

    return LiquidationPlan(
        user=position.user,
        collateral_token=selected.token,
        debt_to_cover=debt_to_cover,
        health_factor=hf,
        total_debt=position.total_debt,
        collateral_value_usd=total_collateral,
        safe_debt_ceiling=ceiling,
        update_data=prices.update_data,
        publish_times=prices.publish_times,
        unpriced_tokens=unpriced,
    )
