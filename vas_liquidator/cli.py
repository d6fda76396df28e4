"""Command-line interface for the VAS liquidator."""
from __future__ import annotations

import argparse
import asyncio
import sys

from .api import run_server
from .chains.evm.client import to_checksum
from .config import load_config
from .errors import LiquidatorError
from .logging_setup import configure_logging
from .models import LiquidationPlan
from .services import LiquidationService, UserSync


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="vas-liquidator",
        description="Liquidation bot for the VAS stablecoin engine",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Run the HTTP API")
    sub.add_parser("liquidate", help="Select a liquidator and liquidate one position")
    sub.add_parser("sync-users", help="Record new VAS minters in the registry")

    check_parser = sub.add_parser("check", help="Evaluate a single user's position")
    check_parser.add_argument("address", help="User address")

    run_parser = sub.add_parser("run", help="Continuous liquidation loop")
    run_parser.add_argument(
        "interval",
        nargs="?",
        type=int,
        default=None,
        help="Interval in minutes (overrides config)",
    )

    add_parser = sub.add_parser("add-liquidator", help="Register a liquidator")
    add_parser.add_argument("address", help="Liquidator address")
    add_parser.add_argument(
        "pkp_public_key", nargs="?", default="", help="Delegation public key"
    )

    return parser


async def _run(args: argparse.Namespace, service: LiquidationService) -> None:
    """Execute the selected async command."""
    if args.command == "liquidate":
        outcome = await service.select_and_liquidate()
        print(f"Liquidated {outcome.plan.user}: {outcome.liquidation_tx_hash}")
    elif args.command == "sync-users":
        result = await UserSync(
            service.chain, service.registry, service.config.liquidation
        ).update_user_list()
        print(result.message)
    elif args.command == "check":
        result = await service.evaluate_user(args.address, 2**256 - 1)
        if isinstance(result, LiquidationPlan):
            print(
                f"Liquidatable: HF {float(result.health_factor):.4f}, "
                f"seize {result.collateral_token}, cover {result.debt_to_cover}"
            )
        else:
            print(f"Not liquidatable ({result.reason.value}): {result.message}")
    elif args.command == "run":
        await service.run_continuous(args.interval)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    configure_logging(args.log_level)
    config = load_config(args.config)

    if args.command == "serve":
        run_server(config)
        return

    service = LiquidationService(config)
    try:
        if args.command == "add-liquidator":
            to_checksum(args.address)
            added = service.registry.add_liquidator(args.address, args.pkp_public_key)
            print("Liquidator added" if added else "Liquidator already registered")
            return
        asyncio.run(_run(args, service))
    except LiquidatorError as e:
        print(f"{e.error}: {e}", file=sys.stderr)
        sys.exit(1)
