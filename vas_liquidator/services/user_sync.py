"""Registry sync: record every address that ever minted VAS."""
from __future__ import annotations

import asyncio
import logging

from ..config import LiquidationConfig
from ..interfaces.chain import ChainClient
from ..interfaces.registry import Registry
from ..models import UserSyncResult

logger = logging.getLogger(__name__)


class UserSync:
    def __init__(
        self, chain: ChainClient, registry: Registry, config: LiquidationConfig
    ) -> None:
        self._chain = chain
        self._registry = registry
        self._scan_blocks = config.user_scan_blocks

    async def _from_block(self) -> int:
        last_block = await asyncio.to_thread(self._registry.last_user_block)
        if last_block is not None:
            return int(last_block)
        current = await self._chain.get_block_number()
        return max(0, current - self._scan_blocks)

    async def update_user_list(self) -> UserSyncResult:
        """Store recipients of VAS mints seen since the last stored user."""
        from_block = await self._from_block()
        logger.info("Fetching mint events from block %d to latest...", from_block)

        events = await self._chain.get_mint_events(from_block)
        logger.info(
            "Found %d mint events from blocks %d to latest", len(events), from_block
        )

        unique: dict[str, int] = {}
        for address, block_number in events:
            if not address:
                continue
            unique.setdefault(address.lower(), block_number)

        added = 0
        if unique:
            added = await asyncio.to_thread(self._registry.add_users, list(unique.items()))

        result = UserSyncResult(
            from_block=from_block,
            mint_events_found=len(events),
            unique_addresses_processed=len(unique),
            new_users_added=added,
        )
        logger.info("Update complete: %s", result.message)
        return result
