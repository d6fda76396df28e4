"""Integration tests for UserSync with a mocked chain and a real registry."""
from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from tests.conftest import LIQUIDATOR, USER
from vas_liquidator.config import LiquidationConfig, RegistryConfig
from vas_liquidator.errors import UpstreamError
from vas_liquidator.registry import SqlRegistry
from vas_liquidator.services import UserSync


@pytest.fixture()
def registry(tmp_path: Path) -> SqlRegistry:
    return SqlRegistry(RegistryConfig(database_url=f"sqlite:///{tmp_path / 'reg.db'}"))


@pytest.fixture()
def chain() -> AsyncMock:
    chain = AsyncMock()
    chain.get_block_number.return_value = 5000
    chain.get_mint_events.return_value = []
    return chain


def _sync(chain: AsyncMock, registry: SqlRegistry) -> UserSync:
    return UserSync(chain, registry, LiquidationConfig(user_scan_blocks=1000))


class TestUpdateUserList:
    @pytest.mark.asyncio
    async def test_empty_registry_scans_recent_window(
        self, chain: AsyncMock, registry: SqlRegistry
    ) -> None:
        result = await _sync(chain, registry).update_user_list()

        chain.get_mint_events.assert_awaited_once_with(4000)
        assert result.from_block == 4000
        assert result.mint_events_found == 0
        assert result.new_users_added == 0

    @pytest.mark.asyncio
    async def test_window_clamped_at_genesis(
        self, chain: AsyncMock, registry: SqlRegistry
    ) -> None:
        chain.get_block_number.return_value = 200
        result = await _sync(chain, registry).update_user_list()
        assert result.from_block == 0

    @pytest.mark.asyncio
    async def test_resumes_from_last_stored_block(
        self, chain: AsyncMock, registry: SqlRegistry
    ) -> None:
        registry.add_users([(USER, 4321)])

        result = await _sync(chain, registry).update_user_list()

        chain.get_block_number.assert_not_awaited()
        chain.get_mint_events.assert_awaited_once_with(4321)
        assert result.from_block == 4321

    @pytest.mark.asyncio
    async def test_adds_unique_minters(self, chain: AsyncMock, registry: SqlRegistry) -> None:
        chain.get_mint_events.return_value = [
            (USER, 4100),
            (USER.lower(), 4200),
            (LIQUIDATOR, 4300),
        ]

        result = await _sync(chain, registry).update_user_list()

        assert result.mint_events_found == 3
        assert result.unique_addresses_processed == 2
        assert result.new_users_added == 2
        stored = {u.address: u.block_number for u in registry.list_users_random()}
        assert stored == {USER.lower(): 4100, LIQUIDATOR.lower(): 4300}

    @pytest.mark.asyncio
    async def test_rerun_adds_nothing_new(
        self, chain: AsyncMock, registry: SqlRegistry
    ) -> None:
        chain.get_mint_events.return_value = [(USER, 4100)]
        sync = _sync(chain, registry)
        await sync.update_user_list()

        result = await sync.update_user_list()

        assert result.from_block == 4100
        assert result.unique_addresses_processed == 1
        assert result.new_users_added == 0
        assert "added 0 new users" in result.message

    @pytest.mark.asyncio
    async def test_chain_error_propagates(
        self, chain: AsyncMock, registry: SqlRegistry
    ) -> None:
        chain.get_mint_events.side_effect = UpstreamError("rpc down")
        with pytest.raises(UpstreamError):
            await _sync(chain, registry).update_user_list()
        assert registry.list_users_random() == []
