"""EVM client for the stablecoin engine and VAS token (AsyncWeb3)."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, TypeVar

import aiohttp
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3
from web3.exceptions import Web3Exception

from ...config import ChainConfig, SignerConfig
from ...errors import SignerUnavailable, UpstreamError, ValidationError
from ...models import LiquidationPlan, Position, TokenBalance, normalize_feed_id
from .abi import ENGINE_ABI, VAS_ABI

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

T = TypeVar("T")


def to_checksum(address: str) -> str:
    """Checksum an address, raising ValidationError when it is malformed."""
    if not AsyncWeb3.is_address(address):
        raise ValidationError(f"Invalid Ethereum address: '{address}'")
    return AsyncWeb3.to_checksum_address(address)


class EvmClient:
    """Reads positions and submits approve/liquidate transactions."""

    def __init__(self, config: ChainConfig, signer: SignerConfig | None = None) -> None:
        self.chain_id = config.chain_id
        self.receipt_timeout = config.tx_receipt_timeout
        self._w3 = AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(
                config.rpc_url,
                request_kwargs={"timeout": aiohttp.ClientTimeout(total=config.rpc_timeout)},
            )
        )
        self.engine_address = to_checksum(config.engine_address)
        self.vas_address = to_checksum(config.vas_address)
        self._engine = self._w3.eth.contract(address=self.engine_address, abi=ENGINE_ABI)
        self._vas = self._w3.eth.contract(address=self.vas_address, abi=VAS_ABI)

        self._accounts: dict[str, LocalAccount] = {}
        if signer is not None:
            for address, key in signer.private_keys.items():
                account = Account.from_key(key)
                if account.address.lower() != address.lower():
                    logger.warning(
                        "Signer key for %s derives %s, ignoring", address, account.address
                    )
                    continue
                self._accounts[address.lower()] = account

    async def _call(self, what: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except (Web3Exception, aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamError(f"Chain call failed ({what}): {e}") from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_account_information(self, user: str) -> Position:
        """Debt and collateral balances of ``user`` as stored by the engine."""
        total_minted, balances = await self._call(
            "getAccountInformationBalances",
            self._engine.functions.getAccountInformationBalances(to_checksum(user)).call(),
        )
        return Position(
            user=user,
            total_debt=int(total_minted),
            balances=tuple(
                TokenBalance(
                    token=token,
                    amount=int(amount),
                    decimals=int(decimals),
                    price_feed_id=normalize_feed_id(feed_id),
                )
                for token, amount, decimals, feed_id in balances
            ),
        )

    async def get_price_feed_ids(self) -> list[str]:
        feed_ids = await self._call(
            "getPriceFeedIds", self._engine.functions.getPriceFeedIds().call()
        )
        return [normalize_feed_id(fid) for fid in feed_ids]

    async def get_accepted_collateral_tokens(self) -> list[str]:
        return list(
            await self._call(
                "getAcceptedCollateralTokens",
                self._engine.functions.getAcceptedCollateralTokens().call(),
            )
        )

    async def balance_of(self, address: str) -> int:
        return int(
            await self._call(
                "balanceOf", self._vas.functions.balanceOf(to_checksum(address)).call()
            )
        )

    async def allowance(self, owner: str) -> int:
        """VAS allowance granted by ``owner`` to the engine."""
        return int(
            await self._call(
                "allowance",
                self._vas.functions.allowance(
                    to_checksum(owner), self.engine_address
                ).call(),
            )
        )

    async def get_block_number(self) -> int:
        return int(await self._call("blockNumber", self._w3.eth.block_number))

    async def get_mint_events(self, from_block: int) -> list[tuple[str, int]]:
        """VAS mints (Transfer from the zero address) as (recipient, block)."""
        logs = await self._call(
            "Transfer logs",
            self._vas.events.Transfer.get_logs(
                argument_filters={"from": ZERO_ADDRESS},
                from_block=from_block,
                to_block="latest",
            ),
        )
        return [(log["args"]["to"], int(log["blockNumber"])) for log in logs]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def can_sign(self, liquidator: str) -> bool:
        """True when a signing key is configured for ``liquidator``."""
        return liquidator.lower() in self._accounts

    def _account_for(self, liquidator: str) -> LocalAccount:
        account = self._accounts.get(liquidator.lower())
        if account is None:
            raise SignerUnavailable(f"No signing key configured for liquidator {liquidator}")
        return account

    async def _send(self, what: str, account: LocalAccount, function: Any) -> str:
        """Build, sign and send a contract call; wait for a successful receipt."""
        nonce = await self._call("nonce", self._w3.eth.get_transaction_count(account.address))
        tx = await self._call(
            f"build {what}",
            function.build_transaction(
                {"from": account.address, "nonce": nonce, "chainId": self.chain_id}
            ),
        )
        signed = account.sign_transaction(tx)
        tx_hash = await self._call(
            f"send {what}", self._w3.eth.send_raw_transaction(signed.raw_transaction)
        )
        tx_hex = AsyncWeb3.to_hex(tx_hash)
        logger.info("Sent %s transaction %s from %s", what, tx_hex, account.address)

        receipt = await self._call(
            f"receipt {what}",
            self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout),
        )
        if receipt.get("status") != 1:
            raise UpstreamError(f"{what} transaction {tx_hex} reverted")
        return tx_hex

    async def approve(self, liquidator: str, amount: int) -> str:
        """Approve the engine to pull ``amount`` VAS from ``liquidator``."""
        account = self._account_for(liquidator)
        return await self._send(
            "approve", account, self._vas.functions.approve(self.engine_address, amount)
        )

    async def liquidate(self, liquidator: str, plan: LiquidationPlan) -> str:
        account = self._account_for(liquidator)
        function = self._engine.functions.liquidate(
            to_checksum(plan.collateral_token),
            to_checksum(plan.user),
            plan.debt_to_cover,
            [bytes.fromhex(blob.removeprefix("0x")) for blob in plan.update_data],
            list(plan.publish_times),
        )
        return await self._send("liquidate", account, function)
