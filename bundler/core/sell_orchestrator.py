"""
Sell Orchestrator
Consolidates tokens and SOL into the first pool wallet, sells, and sweeps
the proceeds back to the main wallet
"""

import asyncio
from decimal import Decimal
from typing import List

from bundler.clients.chain_gateway import ChainGateway
from bundler.clients.trade_gateway import TradeGateway
from bundler.core.config import TradingConfig
from bundler.core.logger import get_logger
from bundler.core.metrics import get_metrics
from bundler.core.models import SellRunResult, WalletRecord


logger = get_logger(__name__)
metrics = get_metrics()


class SellOrchestrator:
    """
    One linear sell pass over the wallet pool

    Every transfer is awaited to confirmation before the next step, so
    wallet 0 holds all consolidated funds by the time it sells.
    """

    def __init__(
        self,
        chain: ChainGateway,
        trader: TradeGateway,
        config: TradingConfig,
        main_public_key: str
    ):
        self.chain = chain
        self.trader = trader
        self.config = config
        self.main_public_key = main_public_key

    async def run(self, wallets: List[WalletRecord]) -> SellRunResult:
        result = SellRunResult()
        if not wallets:
            return result

        collector = wallets[0]
        logger.info("sell_run_started", wallets=len(wallets), collector=collector.public_key)

        for index, wallet in enumerate(wallets[1:], start=1):
            try:
                await self._consolidate_wallet(index, wallet, collector, result)
                result.consolidated += 1
            except Exception as e:
                logger.error(
                    "wallet_consolidation_failed",
                    wallet=wallet.public_key,
                    index=index,
                    error=str(e)
                )
                result.errors.append((wallet.public_key, str(e)))

        if not await self._sell_collected(collector, result):
            metrics.increment_counter("sell_runs", labels={"outcome": "sell_failed"})
            return result

        logger.info("waiting_for_sell_settlement", seconds=self.config.settle_delay_s)
        await asyncio.sleep(self.config.settle_delay_s)

        try:
            result.swept_sol = await self._sweep_surplus(collector, self.main_public_key)
            if result.swept_sol > 0:
                result.sol_transfers += 1
        except Exception as e:
            logger.error("final_sweep_failed", wallet=collector.public_key, error=str(e))
            result.errors.append((collector.public_key, str(e)))

        metrics.increment_counter(
            "sell_runs",
            labels={"outcome": "success" if result.succeeded else "partial"}
        )
        logger.info("sell_run_finished", **result.to_dict())
        return result

    async def _consolidate_wallet(
        self,
        index: int,
        wallet: WalletRecord,
        collector: WalletRecord,
        result: SellRunResult
    ) -> None:
        """Move one wallet's tokens and SOL surplus to the collector"""
        token_balance = await self.chain.get_token_balance(wallet.public_key, self.config.token_mint)
        if token_balance > 0:
            signature = await self.chain.transfer_token(
                wallet.private_key,
                collector.public_key,
                self.config.token_mint,
                token_balance
            )
            result.token_transfers += 1
            logger.info(
                "tokens_consolidated",
                wallet=wallet.public_key,
                index=index,
                amount=str(token_balance),
                signature=signature
            )
            await asyncio.sleep(self.config.tx_delay_s)

        surplus = await self._sweep_surplus(wallet, collector.public_key)
        if surplus > 0:
            result.sol_transfers += 1
            await asyncio.sleep(self.config.tx_delay_s)

    async def _sweep_surplus(self, wallet: WalletRecord, destination: str) -> Decimal:
        """Send balance minus reserve to destination; returns the SOL sent"""
        balance = await self.chain.get_balance(wallet.public_key)
        surplus = balance - self.config.sol_rent_reserve
        if surplus <= 0:
            logger.debug("no_sol_surplus", wallet=wallet.public_key, balance_sol=str(balance))
            return Decimal("0")

        signature = await self.chain.transfer_native(wallet.private_key, destination, surplus)
        logger.info(
            "sol_swept",
            wallet=wallet.public_key,
            destination=destination,
            amount_sol=str(surplus),
            signature=signature
        )
        return surplus

    async def _sell_collected(self, collector: WalletRecord, result: SellRunResult) -> bool:
        """
        Sell the collector's whole token balance

        Returns:
            False if the sell failed hard and the sweep must not run
        """
        token_balance = await self.chain.get_token_balance(
            collector.public_key, self.config.token_mint
        )
        if token_balance <= 0:
            logger.info("nothing_to_sell", wallet=collector.public_key)
            return True

        try:
            signature = await self.trader.submit_sell(
                self.config.token_mint,
                collector.private_key,
                token_balance,
                self.config.slippage_percent
            )
        except Exception as e:
            logger.error(
                "sell_failed",
                wallet=collector.public_key,
                amount=str(token_balance),
                error=str(e)
            )
            result.errors.append((collector.public_key, str(e)))
            return False

        if signature is None:
            logger.warning("sell_skipped_no_transaction", wallet=collector.public_key)
        else:
            result.sell_signature = signature
        return True
