"""Chain client protocol: stablecoin engine and token reads/writes."""
from typing import Protocol

from ..models import LiquidationPlan, Position


class ChainClient(Protocol):
    """Abstract interface for the engine and VAS token contracts."""

    async def get_account_information(self, user: str) -> Position: ...

    async def get_price_feed_ids(self) -> list[str]: ...

    async def get_accepted_collateral_tokens(self) -> list[str]: ...

    async def balance_of(self, address: str) -> int: ...

    async def allowance(self, owner: str) -> int: ...

    async def get_block_number(self) -> int: ...

    async def get_mint_events(self, from_block: int) -> list[tuple[str, int]]: ...

    def can_sign(self, liquidator: str) -> bool: ...

    async def approve(self, liquidator: str, amount: int) -> str: ...

    async def liquidate(self, liquidator: str, plan: LiquidationPlan) -> str: ...
