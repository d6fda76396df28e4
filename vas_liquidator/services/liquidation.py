"""Liquidation orchestration: pick a liquidator, find a position, liquidate it."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from ..chains.evm import EvmClient
from ..config import AppConfig
from ..errors import (
    NoLiquidatableUser,
    NoLiquidatorAvailable,
    UpstreamError,
    ValidationError,
)
from ..interfaces.chain import ChainClient
from ..interfaces.notifier import Notifier
from ..interfaces.price_oracle import PriceOracle
from ..interfaces.registry import Registry
from ..models import (
    LiquidationOutcome,
    LiquidationPlan,
    Liquidator,
    NotLiquidatable,
    Position,
    PriceUpdate,
)
from ..notifications import TelegramNotifier
from ..oracles import PythOracle
from ..protocols.vas import health
from ..registry import SqlRegistry

logger = logging.getLogger(__name__)

VAS_DECIMALS = 18


def format_vas(amount: int) -> str:
    return f"{amount / 10**VAS_DECIMALS:,.4f} VAS"


class LiquidationService:
    """Runs the select-and-liquidate workflow against one engine."""

    def __init__(
        self,
        config: AppConfig,
        chain: ChainClient | None = None,
        oracle: PriceOracle | None = None,
        registry: Registry | None = None,
        notifiers: list[Notifier] | None = None,
    ) -> None:
        self._config = config
        self._liq = config.liquidation
        self._chain: ChainClient = chain or EvmClient(config.chain, config.signer)
        self._oracle: PriceOracle = oracle or PythOracle(config.price_oracle.pyth)
        self._registry: Registry = registry or SqlRegistry(config.registry)

        if notifiers is None:
            notifiers = []
            if config.notifications.telegram.enabled:
                notifiers.append(TelegramNotifier(config.notifications.telegram))
        self._notifiers: list[Notifier] = notifiers

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def chain(self) -> ChainClient:
        return self._chain

    @property
    def registry(self) -> Registry:
        return self._registry

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def select_liquidator(self) -> Liquidator:
        """Return a random registered liquidator holding a positive VAS balance."""
        candidates = await asyncio.to_thread(self._registry.list_liquidators_random)
        if not candidates:
            raise NoLiquidatorAvailable("No liquidators found in registry")

        logger.info("Found %d liquidators in registry", len(candidates))

        for candidate in candidates:
            if not self._chain.can_sign(candidate.address):
                logger.warning(
                    "No signing key configured for liquidator %s, skipping", candidate.address
                )
                continue

            try:
                balance = await self._chain.balance_of(candidate.address)
            except UpstreamError as e:
                logger.error(
                    "Error checking balance for liquidator %s: %s", candidate.address, e
                )
                continue

            logger.info("Liquidator %s has VAS balance: %d", candidate.address, balance)
            if balance > 0:
                return Liquidator(
                    address=candidate.address,
                    pkp_public_key=candidate.pkp_public_key,
                    vas_balance=balance,
                )

        raise NoLiquidatorAvailable(
            "All available liquidators have zero VAS balance or no signing key"
        )

    async def fetch_prices(self) -> PriceUpdate:
        """Latest prices for every feed the engine accepts."""
        feed_ids = await self._chain.get_price_feed_ids()
        return await self._oracle.fetch_prices(feed_ids)

    def _compute(
        self, position: Position, prices: PriceUpdate, liquidator_balance: int
    ) -> LiquidationPlan | NotLiquidatable:
        return health.compute_liquidation(
            position,
            prices,
            liquidator_balance,
            threshold=self._liq.threshold,
            precision=self._liq.precision,
            common_decimals=self._liq.common_decimals,
        )

    async def evaluate_user(
        self,
        user: str,
        liquidator_balance: int,
        prices: PriceUpdate | None = None,
    ) -> LiquidationPlan | NotLiquidatable:
        """Read ``user``'s position and size a liquidation for it."""
        position = await self._chain.get_account_information(user)
        if prices is None and position.total_debt > 0:
            prices = await self.fetch_prices()
        return self._compute(position, prices or PriceUpdate(), liquidator_balance)

    async def find_liquidatable_user(self, liquidator: Liquidator) -> LiquidationPlan:
        """Scan registered users in random order for the first liquidatable one."""
        users = await asyncio.to_thread(self._registry.list_users_random)
        if not users:
            raise NoLiquidatableUser("No users found in registry")

        logger.info("Found %d users in registry", len(users))

        prices: PriceUpdate | None = None
        for user in users:
            position = await self._chain.get_account_information(user.address)
            if position.total_debt > 0 and prices is None:
                prices = await self.fetch_prices()

            result = self._compute(
                position, prices or PriceUpdate(), liquidator.vas_balance
            )
            if isinstance(result, NotLiquidatable):
                logger.debug("Skipping %s: %s", user.address, result.message)
                continue

            logger.info(
                "Found undercollateralized user %s (HF %.4f, debt to cover %s)",
                user.address,
                float(result.health_factor),
                format_vas(result.debt_to_cover),
            )
            return result

        raise NoLiquidatableUser("All users are currently overcollateralized")

    async def ensure_allowance(self, liquidator: Liquidator, amount: int) -> str | None:
        """Approve the engine when needed; returns the approve tx hash or None."""
        current = await self._chain.allowance(liquidator.address)
        if current >= amount:
            logger.info(
                "No approval needed for liquidator %s, already approved", liquidator.address
            )
            return None

        tx_hash = await self._chain.approve(liquidator.address, amount)
        logger.info(
            "Approved VAS spending for liquidator %s, txHash: %s", liquidator.address, tx_hash
        )
        return tx_hash

    async def validate_plan(self, plan: LiquidationPlan) -> None:
        """Raise ValidationError unless ``plan`` can be submitted as is."""
        if plan.debt_to_cover <= 0:
            raise ValidationError("Debt to liquidate must be greater than zero.")
        if not plan.collateral_token:
            raise ValidationError("Collateral address is required for liquidation.")
        if not plan.update_data:
            raise ValidationError("Price feed update data is required for liquidation.")
        if not plan.publish_times:
            raise ValidationError("Pyth publish times are required for liquidation.")

        accepted = {
            token.lower() for token in await self._chain.get_accepted_collateral_tokens()
        }
        if plan.collateral_token.lower() not in accepted:
            raise ValidationError(
                f"Collateral {plan.collateral_token} is not accepted by the engine."
            )

    async def execute(self, liquidator: Liquidator, plan: LiquidationPlan) -> str:
        """Submit the liquidation transaction for ``plan``."""
        await self.validate_plan(plan)
        return await self._chain.liquidate(liquidator.address, plan)

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    async def select_and_liquidate(self) -> LiquidationOutcome:
        """Select a funded liquidator and liquidate one undercollateralized user."""
        logger.info("Starting liquidator selection and liquidation process...")

        liquidator = await self.select_liquidator()
        logger.info(
            "Selected liquidator: %s with balance: %d",
            liquidator.address,
            liquidator.vas_balance,
        )

        plan = await self.find_liquidatable_user(liquidator)
        await self.validate_plan(plan)
        approval_tx = await self.ensure_allowance(liquidator, plan.debt_to_cover)
        liquidation_tx = await self._chain.liquidate(liquidator.address, plan)

        logger.info(
            "Successfully liquidated user %s by liquidator %s, liquidation txHash: %s",
            plan.user,
            liquidator.address,
            liquidation_tx,
        )

        outcome = LiquidationOutcome(
            liquidator=liquidator,
            plan=plan,
            approval_tx_hash=approval_tx,
            liquidation_tx_hash=liquidation_tx,
        )
        await self._send_alert(self._build_report(outcome), subject="Liquidation executed")
        return outcome

    async def run_continuous(self, check_interval_minutes: int | None = None) -> None:
        """Run select-and-liquidate on a fixed interval until cancelled."""
        interval = check_interval_minutes or self._liq.check_interval_minutes
        logger.info("Starting liquidation loop (every %d minutes)", interval)

        while True:
            try:
                await self.select_and_liquidate()
            except (NoLiquidatorAvailable, NoLiquidatableUser) as e:
                logger.info("Nothing to liquidate: %s", e)
            except Exception as e:
                logger.exception("Error in liquidation loop: %s", e)
                await self._send_alert(f"Liquidation loop error: {e}", subject="Liquidator error")
            await asyncio.sleep(interval * 60)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    @staticmethod
    def _build_report(outcome: LiquidationOutcome) -> str:
        plan = outcome.plan
        lines = [
            f"User: {plan.user}",
            f"Liquidator: {outcome.liquidator.address}",
            f"Collateral seized: {plan.collateral_token}",
            f"Debt covered: {format_vas(plan.debt_to_cover)}",
            f"Health factor: {float(plan.health_factor):.4f}",
            f"Tx: {outcome.liquidation_tx_hash}",
        ]
        if plan.unpriced_tokens:
            lines.append(f"Unpriced collateral: {', '.join(plan.unpriced_tokens)}")
        lines.append(datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"))
        return "\n".join(lines)

    async def _send_alert(self, message: str, subject: str = "") -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_alert(message, subject=subject)
            except Exception as e:
                logger.error("Notifier send_alert failed: %s", e)
