"""
Chain Gateway
Balance lookups and SOL/SPL transfers against a Solana RPC node

Lookups fail soft (zero/None, logged). Transfers fail hard with TransferError
and only return once the transaction is confirmed.
"""

import asyncio
import base64
from decimal import ROUND_DOWN, Decimal
from typing import Any, Dict, List, Optional

from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    create_associated_token_account,
    get_associated_token_address,
    transfer_checked,
)
from spl.token.models import TransferCheckedParams

from bundler.core.config import TransactionConfig
from bundler.core.errors import TransferError
from bundler.core.logger import get_logger
from bundler.core.metrics import LatencyTimer, get_metrics
from bundler.core.models import lamports_to_sol, sol_to_lamports
from bundler.core.rpc_manager import RPCManager
from bundler.core.wallet_pool import keypair_from_secret


logger = get_logger(__name__)
metrics = get_metrics()


# Pump.fun mints use 6 decimals
DEFAULT_TOKEN_DECIMALS = 6

CONFIRMED_STATUSES = ("confirmed", "finalized")


class ChainGateway:
    """
    Solana chain access used by the orchestrators

    Usage:
        chain = ChainGateway(rpc_manager, config.transaction_config)
        balance = await chain.get_balance(address)
        signature = await chain.transfer_native(secret, address, Decimal("0.01"))
    """

    def __init__(
        self,
        rpc_manager: RPCManager,
        config: Optional[TransactionConfig] = None
    ):
        self.rpc_manager = rpc_manager
        self.config = config or TransactionConfig()

    # ------------------------------------------------------------------
    # Lookups (soft)
    # ------------------------------------------------------------------

    async def get_balance(self, address: str) -> Decimal:
        """SOL balance of an address, 0 on error"""
        try:
            response = await self.rpc_manager.call_http_rpc(
                "getBalance",
                [address, {"commitment": "confirmed"}]
            )
            lamports = response.get("result", {}).get("value", 0)
            return lamports_to_sol(int(lamports))

        except Exception as e:
            logger.error("wallet_balance_fetch_failed", wallet=address, error=str(e))
            return Decimal("0")

    async def get_token_balance(self, owner: str, mint: str) -> Decimal:
        """UI token balance of owner's first token account for mint, 0 on error"""
        try:
            response = await self.rpc_manager.call_http_rpc(
                "getTokenAccountsByOwner",
                [
                    owner,
                    {"mint": mint},
                    {"encoding": "jsonParsed", "commitment": "confirmed"}
                ]
            )

            accounts = response.get("result", {}).get("value", [])
            if not accounts:
                logger.debug("no_token_account_found", wallet=owner, mint=mint)
                return Decimal("0")

            token_amount = (
                accounts[0].get("account", {}).get("data", {})
                .get("parsed", {}).get("info", {}).get("tokenAmount", {})
            )
            ui_amount = token_amount.get("uiAmountString")
            if ui_amount is None:
                ui_amount = token_amount.get("uiAmount") or 0
            return Decimal(str(ui_amount))

        except Exception as e:
            logger.error("token_balance_fetch_failed", wallet=owner, mint=mint, error=str(e))
            return Decimal("0")

    async def get_latest_mint_signature(self, mint: str) -> Optional[str]:
        """Signature of the most recent transaction touching mint, None on error"""
        try:
            response = await self.rpc_manager.call_http_rpc(
                "getSignaturesForAddress",
                [mint, {"limit": 1, "commitment": "confirmed"}]
            )
            entries = response.get("result") or []
            if not entries:
                logger.info("no_mint_transactions_found", mint=mint)
                return None
            return entries[0].get("signature")

        except Exception as e:
            logger.error("latest_mint_signature_failed", mint=mint, error=str(e))
            return None

    async def get_token_decimals(self, mint: str) -> int:
        try:
            response = await self.rpc_manager.call_http_rpc(
                "getAccountInfo",
                [mint, {"encoding": "jsonParsed"}]
            )
            value = response.get("result", {}).get("value") or {}
            return int(value["data"]["parsed"]["info"]["decimals"])

        except Exception as e:
            logger.warning(
                "token_decimals_fetch_failed",
                mint=mint,
                error=str(e),
                fallback=DEFAULT_TOKEN_DECIMALS
            )
            return DEFAULT_TOKEN_DECIMALS

    async def _account_exists(self, address: Pubkey) -> bool:
        response = await self.rpc_manager.call_http_rpc(
            "getAccountInfo",
            [str(address), {"encoding": "base64", "commitment": "confirmed"}]
        )
        return response.get("result", {}).get("value") is not None

    # ------------------------------------------------------------------
    # Transfers (hard)
    # ------------------------------------------------------------------

    async def transfer_native(self, from_secret: str, to_address: str, amount: Decimal) -> str:
        """
        Send SOL and wait for confirmation

        Args:
            from_secret: Sender's base58 secret key
            to_address: Recipient address
            amount: SOL to send

        Returns:
            Transaction signature

        Raises:
            ValueError: If amount rounds to zero lamports
            TransferError: If the transfer is not confirmed
        """
        lamports = sol_to_lamports(amount)
        if lamports <= 0:
            raise ValueError(f"transfer amount must be positive, got {amount} SOL")

        sender = keypair_from_secret(from_secret)
        logger.info(
            "sending_sol",
            sender=str(sender.pubkey()),
            recipient=to_address,
            amount_sol=str(amount)
        )

        try:
            instruction = transfer(
                TransferParams(
                    from_pubkey=sender.pubkey(),
                    to_pubkey=Pubkey.from_string(to_address),
                    lamports=lamports
                )
            )
            signed_tx = await self._build_signed_transaction(sender, [instruction])
            signature = await self.send_transaction(signed_tx)

        except TransferError:
            metrics.increment_counter("sol_transfers_failed")
            raise
        except Exception as e:
            metrics.increment_counter("sol_transfers_failed")
            raise TransferError(f"SOL transfer to {to_address} failed: {e}") from e

        metrics.increment_counter("sol_transfers")
        return signature

    async def transfer_token(
        self,
        from_secret: str,
        to_address: str,
        mint: str,
        amount: Decimal
    ) -> str:
        """
        Send SPL tokens, creating the recipient's token account if needed

        Args:
            from_secret: Sender's base58 secret key
            to_address: Recipient wallet address (owner, not token account)
            mint: Token mint
            amount: UI token amount

        Returns:
            Transaction signature

        Raises:
            ValueError: If amount rounds to zero base units
            TransferError: If the transfer is not confirmed
        """
        sender = keypair_from_secret(from_secret)
        decimals = await self.get_token_decimals(mint)
        raw_amount = int(
            (Decimal(amount) * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN)
        )
        if raw_amount <= 0:
            raise ValueError(f"token transfer amount must be positive, got {amount}")

        logger.info(
            "sending_tokens",
            sender=str(sender.pubkey()),
            recipient=to_address,
            mint=mint,
            amount=str(amount),
            decimals=decimals
        )

        try:
            mint_pubkey = Pubkey.from_string(mint)
            recipient = Pubkey.from_string(to_address)
            source_account = get_associated_token_address(sender.pubkey(), mint_pubkey)
            destination_account = get_associated_token_address(recipient, mint_pubkey)

            instructions: List[Instruction] = []
            if not await self._account_exists(destination_account):
                logger.info(
                    "creating_token_account",
                    owner=to_address,
                    token_account=str(destination_account)
                )
                instructions.append(
                    create_associated_token_account(sender.pubkey(), recipient, mint_pubkey)
                )

            instructions.append(
                transfer_checked(
                    TransferCheckedParams(
                        program_id=TOKEN_PROGRAM_ID,
                        source=source_account,
                        mint=mint_pubkey,
                        dest=destination_account,
                        owner=sender.pubkey(),
                        amount=raw_amount,
                        decimals=decimals
                    )
                )
            )

            signed_tx = await self._build_signed_transaction(sender, instructions)
            signature = await self.send_transaction(signed_tx)

        except TransferError:
            metrics.increment_counter("token_transfers_failed")
            raise
        except Exception as e:
            metrics.increment_counter("token_transfers_failed")
            raise TransferError(f"Token transfer to {to_address} failed: {e}") from e

        metrics.increment_counter("token_transfers")
        return signature

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def _build_signed_transaction(
        self,
        payer: Keypair,
        instructions: List[Instruction]
    ) -> VersionedTransaction:
        response = await self.rpc_manager.call_http_rpc(
            "getLatestBlockhash",
            [{"commitment": "confirmed"}]
        )
        blockhash = response.get("result", {}).get("value", {}).get("blockhash")
        if not blockhash:
            raise TransferError("Failed to get a recent blockhash")

        message = MessageV0.try_compile(
            payer.pubkey(),
            instructions,
            [],  # No lookup tables
            Hash.from_string(blockhash)
        )
        return VersionedTransaction(message, [payer])

    async def send_transaction(self, signed_tx: VersionedTransaction) -> str:
        """
        Submit a signed transaction and wait until it is confirmed

        Returns:
            Transaction signature

        Raises:
            TransferError: If submission fails after all retries, the
                transaction fails on chain, or confirmation times out
        """
        signature = str(signed_tx.signatures[0])
        tx_base64 = base64.b64encode(bytes(signed_tx)).decode("utf-8")
        max_retries = self.config.max_retries

        with LatencyTimer(metrics, "tx_send_and_confirm"):
            for attempt in range(max_retries):
                try:
                    await self.rpc_manager.call_http_rpc(
                        "sendTransaction",
                        [
                            tx_base64,
                            {
                                "encoding": "base64",
                                "skipPreflight": self.config.skip_preflight,
                                "preflightCommitment": "confirmed",
                                "maxRetries": 0  # We handle retries ourselves
                            }
                        ]
                    )
                    break

                except Exception as e:
                    logger.warning(
                        "transaction_submission_failed",
                        signature=signature,
                        error=str(e),
                        attempt=attempt + 1,
                        max_retries=max_retries
                    )
                    if attempt == max_retries - 1:
                        raise TransferError(
                            f"Transaction submission failed after {max_retries} attempts: {e}"
                        ) from e

                    delay = self.config.retry_delay_ms * (2 ** attempt) / 1000
                    await asyncio.sleep(delay)

            logger.info("transaction_submitted", signature=signature)
            await self._wait_for_confirmation(signature)

        logger.info("transaction_confirmed", signature=signature, solscan=f"https://solscan.io/tx/{signature}")
        return signature

    async def _wait_for_confirmation(self, signature: str) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.confirmation_timeout_s

        while True:
            status = await self._get_signature_status(signature)

            if status is not None:
                if status.get("err"):
                    raise TransferError(f"Transaction {signature} failed: {status['err']}")
                if status.get("confirmationStatus") in CONFIRMED_STATUSES:
                    return

            if loop.time() >= deadline:
                raise TransferError(
                    f"Transaction {signature} not confirmed after {self.config.confirmation_timeout_s}s"
                )

            await asyncio.sleep(self.config.confirmation_poll_interval_s)

    async def _get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        try:
            response = await self.rpc_manager.call_http_rpc(
                "getSignatureStatuses",
                [[signature], {"searchTransactionHistory": True}]
            )
        except Exception as e:
            logger.warning("signature_status_failed", signature=signature, error=str(e))
            return None

        value = response.get("result", {}).get("value") or [None]
        return value[0]
