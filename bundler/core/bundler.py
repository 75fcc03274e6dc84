"""
Bundler service
The operations offered to the operator: generate, buy, resume, sell, status
"""

import random
from decimal import Decimal
from typing import Any, Dict, List, Optional

from bundler.clients.chain_gateway import ChainGateway
from bundler.clients.trade_gateway import TradeGateway
from bundler.core.amounts import generate_amounts
from bundler.core.buy_orchestrator import BuyOrchestrator
from bundler.core.config import BundlerConfig
from bundler.core.errors import InsufficientBalanceError, InvalidInputError, NoWalletsError
from bundler.core.ledger import LedgerStore
from bundler.core.logger import get_logger
from bundler.core.metrics import get_metrics
from bundler.core.models import BuyRunResult, SellRunResult, WalletRecord
from bundler.core.rpc_manager import RPCManager
from bundler.core.sell_orchestrator import SellOrchestrator
from bundler.core.wallet_pool import WalletPoolManager, keypair_from_secret


logger = get_logger(__name__)
metrics = get_metrics()


def parse_wallet_count(value: Any) -> int:
    """
    Validate an operator supplied wallet count

    Accepts ints and numeric strings ("5", " 5 ", "5.0").

    Raises:
        InvalidInputError: If the value is not a positive whole number
    """
    if isinstance(value, bool):
        raise InvalidInputError(f"Invalid wallet count: {value!r}")

    try:
        number = Decimal(str(value).strip())
    except ArithmeticError:
        raise InvalidInputError(f"Invalid wallet count: {value!r}. Please enter a positive number.")

    if not number.is_finite() or number <= 0 or number != number.to_integral_value():
        raise InvalidInputError(f"Invalid wallet count: {value!r}. Please enter a positive number.")

    return int(number)


class Bundler:
    """
    Wires the gateways, ledger and orchestrators from one configuration

    Usage:
        async with Bundler(config) as bundler:
            await bundler.generate(5)
            result = await bundler.buy()
    """

    def __init__(
        self,
        config: BundlerConfig,
        rpc_manager: Optional[RPCManager] = None,
        chain: Optional[ChainGateway] = None,
        trader: Optional[TradeGateway] = None,
        ledger: Optional[LedgerStore] = None,
        rng: Optional[random.Random] = None
    ):
        self.config = config
        trading = config.trading_config

        self.rpc_manager = rpc_manager or RPCManager(config.rpc_config)
        self.chain = chain or ChainGateway(self.rpc_manager, config.transaction_config)
        self.trader = trader or TradeGateway(
            trading.api_url,
            self.chain,
            priority_fee=trading.priority_fee,
            timeout=trading.api_timeout_s
        )
        self.ledger = ledger or LedgerStore(
            config.wallet_config.wallets_file,
            config.wallet_config.checkpoint_file
        )
        self.pool_manager = WalletPoolManager(self.ledger)
        self.rng = rng

        self.main_secret = config.wallet_config.main_private_key
        self.main_public_key = str(keypair_from_secret(self.main_secret).pubkey())

    async def start(self) -> None:
        await self.rpc_manager.start()

    async def stop(self) -> None:
        await self.trader.close()
        await self.rpc_manager.stop()

    async def __aenter__(self) -> "Bundler":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def _buy_orchestrator(self) -> BuyOrchestrator:
        return BuyOrchestrator(
            self.chain,
            self.trader,
            self.ledger,
            self.main_secret,
            self.config.trading_config
        )

    def _load_pool(self) -> List[WalletRecord]:
        wallets = self.ledger.load_wallets()
        if not wallets:
            raise NoWalletsError("No wallet exist. Generate a wallet pool first.")
        return wallets

    async def generate(self, count: Any) -> List[WalletRecord]:
        """Replace the wallet pool with `count` fresh wallets"""
        n = parse_wallet_count(count)
        return self.pool_manager.create_pool(n)

    async def buy(self) -> BuyRunResult:
        """
        Start a fresh buy run over the whole pool

        Raises:
            NoWalletsError: If no pool has been generated
            InsufficientBalanceError: If the main wallet cannot cover the
                planned amounts plus the rent reserve
        """
        wallets = self._load_pool()
        trading = self.config.trading_config
        amounts = generate_amounts(len(wallets), trading.sol_buy_min, trading.sol_buy_max, self.rng)

        required = sum(amounts, Decimal("0")) + trading.sol_rent_reserve
        available = await self.chain.get_balance(self.main_public_key)
        if required > available:
            logger.error(
                "insufficient_main_balance",
                required_sol=str(required),
                available_sol=str(available)
            )
            raise InsufficientBalanceError(required, available)

        # A fresh run supersedes any paused tail, even if funding later aborts
        if self.ledger.load_checkpoint():
            logger.warning("stale_checkpoint_discarded")
        self.ledger.clear_checkpoint()

        return await self._buy_orchestrator().run(wallets, amounts)

    async def resume(self) -> Optional[BuyRunResult]:
        """Continue a paused buy run; None when there is nothing to resume"""
        checkpoint = self.ledger.load_checkpoint()
        if not checkpoint:
            logger.info("nothing_to_resume")
            return None

        wallets = [record.to_wallet() for record in checkpoint]
        amounts = [record.amount for record in checkpoint]
        logger.info("resuming_buy_run", wallets=len(wallets))
        return await self._buy_orchestrator().run(wallets, amounts, resuming=True)

    async def sell(self) -> SellRunResult:
        """Consolidate, sell and sweep the whole pool back to the main wallet"""
        wallets = self._load_pool()
        orchestrator = SellOrchestrator(
            self.chain,
            self.trader,
            self.config.trading_config,
            self.main_public_key
        )
        return await orchestrator.run(wallets)

    async def status(self) -> Dict[str, Any]:
        wallets = self.ledger.load_wallets()
        checkpoint = self.ledger.load_checkpoint()
        balance = await self.chain.get_balance(self.main_public_key)
        metrics.set_gauge("main_wallet_balance_sol", float(balance))

        return {
            "main_wallet": self.main_public_key,
            "main_balance_sol": str(balance),
            "token_mint": self.config.trading_config.token_mint,
            "wallets": len(wallets),
            "paused_wallets": len(checkpoint)
        }
