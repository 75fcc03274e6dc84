#!/usr/bin/env python3
"""
Bundler CLI - operator interface for wallet generation, buying and selling
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from bundler.core.bundler import Bundler
from bundler.core.config import BundlerConfig, ConfigurationManager
from bundler.core.errors import BundlerError
from bundler.core.logger import get_logger, setup_logging
from bundler.core.models import RunState


logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = "config/config.yml"

MENU_CHOICES = [
    ("1", "generate", "Generate wallets"),
    ("2", "buy", "Begin buying tokens"),
    ("3", "sell", "Begin selling tokens"),
    ("4", "resume", "Resume paused buy"),
    ("5", "status", "Show status"),
    ("6", "exit", "Exit"),
]


class BundlerCLI:
    """Runs one bundler operation per call and prints the outcome"""

    def __init__(self, config: BundlerConfig):
        self.config = config

    async def run_command(self, command: str, count: Optional[str] = None) -> bool:
        """Dispatch a command; returns False when it failed"""
        try:
            async with Bundler(self.config) as bundler:
                if command == "generate":
                    return await self.generate(bundler, count)
                if command == "buy":
                    return await self.buy(bundler)
                if command == "resume":
                    return await self.resume(bundler)
                if command == "sell":
                    return await self.sell(bundler)
                if command == "status":
                    return await self.status(bundler)
                raise ValueError(f"Unknown command: {command}")

        except BundlerError as e:
            print(f"❌ {e}")
            return False
        except Exception as e:
            logger.error("command_failed", command=command, error=str(e), exc_info=True)
            print(f"❌ Error: {e}")
            return False

    async def generate(self, bundler: Bundler, count: Optional[str]) -> bool:
        wallets = await bundler.generate(count)
        print(f"✅ Generated {len(wallets)} wallets")
        print(f"   Saved to {bundler.ledger.wallets_file}")
        return True

    async def buy(self, bundler: Bundler) -> bool:
        result = await bundler.buy()
        return self._report_buy(result)

    async def resume(self, bundler: Bundler) -> bool:
        result = await bundler.resume()
        if result is None:
            print("Nothing to resume")
            return True
        return self._report_buy(result)

    async def sell(self, bundler: Bundler) -> bool:
        result = await bundler.sell()

        print(f"\n{'='*50}")
        print("SELL RUN")
        print(f"{'='*50}")
        print(f"  Wallets consolidated: {result.consolidated}")
        print(f"  Token transfers: {result.token_transfers}")
        print(f"  SOL transfers: {result.sol_transfers}")
        print(f"  Sell signature: {result.sell_signature or '-'}")
        print(f"  Swept to main wallet: {result.swept_sol} SOL")
        for wallet, error in result.errors:
            print(f"  ❌ {wallet[:8]}...: {error}")
        print(f"{'='*50}\n")

        return result.succeeded

    async def status(self, bundler: Bundler) -> bool:
        status = await bundler.status()

        print(f"\n{'='*50}")
        print("BUNDLER STATUS")
        print(f"{'='*50}")
        print(f"  Main wallet: {status['main_wallet']}")
        print(f"  Balance: {status['main_balance_sol']} SOL")
        print(f"  Token mint: {status['token_mint']}")
        print(f"  Pool wallets: {status['wallets']}")
        print(f"  Paused wallets: {status['paused_wallets']}")
        print(f"{'='*50}\n")
        return True

    @staticmethod
    def _report_buy(result) -> bool:
        if result.state == RunState.COMPLETED:
            print(f"✅ Buy run completed: {result.processed} buys, {result.skipped} skipped")
            return True

        if result.state == RunState.PAUSED:
            reason = result.error or "someone else traded the token"
            print(f"⚠️  Buy run paused ({reason})")
            print(f"   {len(result.checkpoint)} wallets left, run 'resume' to continue")
            return result.error is None

        print(f"❌ Buy run aborted: {result.error}")
        return False

    def menu(self) -> int:
        """Interactive loop; failures are reported and the loop continues"""
        while True:
            print("\nWhat would you like to do?")
            for key, _, title in MENU_CHOICES:
                print(f"  {key}) {title}")

            try:
                choice = input("> ").strip().lower()
            except (EOFError, KeyboardInterrupt):
                print()
                return 0

            command = next(
                (name for key, name, _ in MENU_CHOICES if choice in (key, name)),
                None
            )
            if command is None:
                print(f"⚠️  Unknown choice: {choice}")
                continue
            if command == "exit":
                return 0

            count = None
            if command == "generate":
                try:
                    count = input("Enter a number of wallets to generate: ")
                except (EOFError, KeyboardInterrupt):
                    print()
                    return 0

            asyncio.run(self.run_command(command, count))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Multi-wallet pump token bundler')
    parser.add_argument(
        '--config',
        default=DEFAULT_CONFIG_PATH,
        help=f'Path to YAML configuration (default: {DEFAULT_CONFIG_PATH})'
    )
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    generate = subparsers.add_parser('generate', help='Generate a new wallet pool (replaces the current one)')
    generate.add_argument('count', help='Number of wallets to generate')

    subparsers.add_parser('buy', help='Fund the pool and buy the token from every wallet')
    subparsers.add_parser('resume', help='Resume a paused buy run')
    subparsers.add_parser('sell', help='Consolidate, sell and sweep back to the main wallet')
    subparsers.add_parser('status', help='Show pool and main wallet status')
    subparsers.add_parser('menu', help='Interactive menu')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = ConfigurationManager(args.config).load_config()
    except (FileNotFoundError, ValueError) as e:
        print(f"❌ Configuration error: {e}")
        return 1

    log_config = config.log_config
    setup_logging(
        level=log_config.level,
        format=log_config.format,
        output_file=log_config.output_file
    )

    cli = BundlerCLI(config)
    if args.command == 'menu':
        return cli.menu()

    try:
        ok = asyncio.run(cli.run_command(args.command, getattr(args, 'count', None)))
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 1

    return 0 if ok else 1


if __name__ == '__main__':
    sys.exit(main())
