"""
Buy Orchestrator
Funds the wallet pool from the main wallet, then buys the token from each
wallet in order, pausing with a checkpoint when someone else trades the mint
"""

import asyncio
from decimal import Decimal
from typing import List, Optional, Tuple

from bundler.clients.chain_gateway import ChainGateway
from bundler.clients.trade_gateway import TradeGateway
from bundler.core.config import TradingConfig
from bundler.core.errors import FundingError
from bundler.core.ledger import LedgerStore
from bundler.core.logger import get_logger
from bundler.core.metrics import get_metrics
from bundler.core.models import (
    AmountPlan,
    BuyRunResult,
    RunState,
    WalletRecord,
    build_checkpoint,
    lamports_to_sol,
    sol_to_lamports,
)


logger = get_logger(__name__)
metrics = get_metrics()


class BuyOrchestrator:
    """
    Drives one buy run: FUNDING -> TRADING -> COMPLETED | PAUSED (or ABORTED)

    Usage:
        orchestrator = BuyOrchestrator(chain, trader, ledger, main_secret, trading_config)
        result = await orchestrator.run(wallets, amounts)
    """

    def __init__(
        self,
        chain: ChainGateway,
        trader: TradeGateway,
        ledger: LedgerStore,
        main_secret: str,
        config: TradingConfig
    ):
        self.chain = chain
        self.trader = trader
        self.ledger = ledger
        self.main_secret = main_secret
        self.config = config

    def buy_size(self, spendable: Decimal) -> Decimal:
        """SOL committed to a buy: the configured share of spendable, net of platform fee"""
        gross = Decimal(spendable) * self.config.buy_fraction * (1 - self.config.platform_fee)
        return lamports_to_sol(sol_to_lamports(gross))

    async def run(
        self,
        wallets: List[WalletRecord],
        amounts: AmountPlan,
        resuming: bool = False
    ) -> BuyRunResult:
        """
        Execute a buy run

        Args:
            wallets: Wallets to process, in order
            amounts: Planned SOL per wallet (same length as wallets)
            resuming: Skip funding; wallets are the tail of a paused run

        Returns:
            BuyRunResult describing how the run ended
        """
        if len(wallets) != len(amounts):
            raise ValueError(
                f"amount plan has {len(amounts)} entries for {len(wallets)} wallets"
            )

        logger.info(
            "buy_run_started",
            wallets=len(wallets),
            resuming=resuming,
            total_sol=str(sum(amounts, Decimal("0")))
        )

        if not resuming:
            try:
                await self._fund_wallets(wallets, amounts)
            except FundingError as e:
                metrics.increment_counter("buy_runs", labels={"state": RunState.ABORTED.value})
                logger.error("buy_run_aborted", state=RunState.FUNDING.value, error=str(e))
                return BuyRunResult(state=RunState.ABORTED, error=str(e))

        return await self._trade(wallets, amounts)

    async def _fund_wallets(self, wallets: List[WalletRecord], amounts: AmountPlan) -> None:
        """Send every wallet its planned amount; no rollback on failure"""
        for index, (wallet, amount) in enumerate(zip(wallets, amounts)):
            try:
                signature = await self.chain.transfer_native(
                    self.main_secret, wallet.public_key, amount
                )
            except Exception as e:
                logger.error(
                    "wallet_funding_failed",
                    wallet=wallet.public_key,
                    index=index,
                    amount_sol=str(amount),
                    error=str(e)
                )
                raise FundingError(
                    f"Funding wallet {index} ({wallet.public_key}) failed: {e}"
                ) from e

            logger.info(
                "wallet_funded",
                wallet=wallet.public_key,
                index=index,
                amount_sol=str(amount),
                signature=signature
            )
            await asyncio.sleep(self.config.tx_delay_s)

    async def _trade(self, wallets: List[WalletRecord], amounts: AmountPlan) -> BuyRunResult:
        last_signature = ""
        processed = 0
        skipped = 0

        for index, wallet in enumerate(wallets):
            try:
                if index > 0 and self.config.pause_on_interruption:
                    latest = await self.chain.get_latest_mint_signature(self.config.token_mint)
                    if (latest or "") != last_signature:
                        logger.warning(
                            "buy_run_interrupted",
                            index=index,
                            latest_signature=latest,
                            own_signature=last_signature
                        )
                        return self._pause(wallets, amounts, index, processed, skipped, last_signature)

                last_signature, traded = await self._trade_wallet(index, wallet, last_signature)

            except Exception as e:
                logger.error(
                    "buy_trade_failed",
                    wallet=wallet.public_key,
                    index=index,
                    error=str(e),
                    exc_info=True
                )
                return self._pause(
                    wallets, amounts, index, processed, skipped, last_signature, error=str(e)
                )

            if traded:
                processed += 1
            else:
                skipped += 1

            # Paces skipped wallets too, ahead of the next interruption lookup
            if index < len(wallets) - 1:
                await asyncio.sleep(self.config.tx_delay_s)

        self.ledger.clear_checkpoint()
        metrics.increment_counter("buy_runs", labels={"state": RunState.COMPLETED.value})
        logger.info(
            "buy_run_completed",
            processed=processed,
            skipped=skipped,
            last_signature=last_signature
        )
        return BuyRunResult(
            state=RunState.COMPLETED,
            processed=processed,
            skipped=skipped,
            last_signature=last_signature
        )

    async def _trade_wallet(
        self,
        index: int,
        wallet: WalletRecord,
        last_signature: str
    ) -> Tuple[str, bool]:
        """
        Buy with one wallet's spendable balance

        Returns:
            (own last trade signature, whether a buy was submitted)
        """
        balance = await self.chain.get_balance(wallet.public_key)
        spendable = balance - self.config.sol_rent_reserve
        if spendable <= 0:
            logger.info(
                "wallet_skipped_no_spendable_balance",
                wallet=wallet.public_key,
                index=index,
                balance_sol=str(balance)
            )
            return last_signature, False

        amount = self.buy_size(spendable)
        signature = await self.trader.submit_buy(
            self.config.token_mint,
            wallet.private_key,
            amount,
            self.config.slippage_percent
        )

        if signature:
            last_signature = signature
        else:
            logger.warning("buy_returned_no_signature", wallet=wallet.public_key, index=index)

        return last_signature, True

    def _pause(
        self,
        wallets: List[WalletRecord],
        amounts: AmountPlan,
        index: int,
        processed: int,
        skipped: int,
        last_signature: str,
        error: Optional[str] = None
    ) -> BuyRunResult:
        checkpoint = build_checkpoint(wallets, amounts, index)
        try:
            self.ledger.save_checkpoint(checkpoint)
        except OSError as e:
            logger.error(
                "checkpoint_write_failed",
                wallets=[w.public_key for w in checkpoint],
                error=str(e)
            )

        metrics.increment_counter("buy_runs", labels={"state": RunState.PAUSED.value})
        logger.info(
            "buy_run_paused",
            index=index,
            remaining=len(checkpoint),
            processed=processed,
            error=error
        )
        return BuyRunResult(
            state=RunState.PAUSED,
            processed=processed,
            skipped=skipped,
            last_signature=last_signature,
            checkpoint=checkpoint,
            error=error
        )
