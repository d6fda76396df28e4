"""Data models, all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from fractions import Fraction


def normalize_feed_id(feed_id: str | bytes) -> str:
    """Return a Pyth feed id as lowercase hex without the ``0x`` prefix."""
    if isinstance(feed_id, (bytes, bytearray)):
        return bytes(feed_id).hex()
    feed_id = feed_id.lower()
    if feed_id.startswith("0x"):
        return feed_id[2:]
    return feed_id


@dataclass(frozen=True)
class TokenBalance:
    """Single collateral balance held by the engine for a user."""

    token: str
    amount: int
    decimals: int
    price_feed_id: str


@dataclass(frozen=True)
class Position:
    """Account information read from the stablecoin engine."""

    user: str
    total_debt: int
    balances: tuple[TokenBalance, ...] = ()


@dataclass(frozen=True)
class PriceQuote:
    """Pyth price: ``price * 10^expo`` USD."""

    feed_id: str
    price: int
    expo: int
    publish_time: int = 0


@dataclass(frozen=True)
class PriceUpdate:
    """Parsed quotes plus the signed update payload for on-chain use."""

    quotes: dict[str, PriceQuote] = field(default_factory=dict)
    update_data: tuple[str, ...] = ()
    publish_times: tuple[int, ...] = ()

    def quote_for(self, feed_id: str) -> PriceQuote | None:
        return self.quotes.get(normalize_feed_id(feed_id))


@dataclass(frozen=True)
class CollateralValue:
    token: str
    usd_value: int
    priced: bool = True


class NotLiquidatableReason(str, Enum):
    NO_DEBT = "NO_DEBT"
    USER_IS_OVERCOLLATERALIZED = "USER_IS_OVERCOLLATERALIZED"
    NO_SEIZABLE_COLLATERAL = "NO_SEIZABLE_COLLATERAL"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"


@dataclass(frozen=True)
class NotLiquidatable:
    user: str
    reason: NotLiquidatableReason
    message: str
    health_factor: Fraction | None = None


@dataclass(frozen=True)
class LiquidationPlan:
    """Everything needed to submit ``liquidate`` for one user."""

    user: str
    collateral_token: str
    debt_to_cover: int
    health_factor: Fraction
    total_debt: int
    collateral_value_usd: int
    safe_debt_ceiling: Fraction
    update_data: tuple[str, ...] = ()
    publish_times: tuple[int, ...] = ()
    unpriced_tokens: tuple[str, ...] = ()


@dataclass(frozen=True)
class Liquidator:
    address: str
    pkp_public_key: str = ""
    vas_balance: int = 0


@dataclass(frozen=True)
class RegisteredUser:
    address: str
    block_number: int = 0


@dataclass(frozen=True)
class LiquidationOutcome:
    liquidator: Liquidator
    plan: LiquidationPlan
    approval_tx_hash: str | None
    liquidation_tx_hash: str


@dataclass(frozen=True)
class UserSyncResult:
    from_block: int
    mint_events_found: int
    unique_addresses_processed: int
    new_users_added: int

    @property
    def message(self) -> str:
        return (
            f"Successfully processed {self.mint_events_found} mint events, "
            f"found {self.unique_addresses_processed} unique addresses, "
            f"and added {self.new_users_added} new users"
        )
