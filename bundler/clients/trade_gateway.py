"""
Trade Gateway
Buy and sell order submission through the hosted pump trade API
"""

import asyncio
from decimal import Decimal
from typing import Any, Dict, Optional

import aiohttp
import base58
from solders.transaction import VersionedTransaction

from bundler.clients.chain_gateway import ChainGateway
from bundler.core.errors import TradeGatewayError
from bundler.core.logger import get_logger
from bundler.core.metrics import LatencyTimer, get_metrics
from bundler.core.wallet_pool import keypair_from_secret


logger = get_logger(__name__)
metrics = get_metrics()


class TradeGateway:
    """
    Client for the pump trade API (POST {api_url}/trade)

    Buys are executed server side and return a transaction hash. Sells may
    instead return an encoded transaction that we sign and send ourselves.
    """

    def __init__(
        self,
        api_url: str,
        chain_gateway: ChainGateway,
        priority_fee: Decimal = Decimal("0"),
        timeout: float = 30.0
    ):
        self.api_url = api_url.rstrip('/')
        self.chain_gateway = chain_gateway
        self.priority_fee = priority_fee
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session"""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self.session

    async def close(self) -> None:
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None

    def _build_payload(
        self,
        trade_type: str,
        mint: str,
        wallet_secret: str,
        amount: Decimal,
        slippage: int
    ) -> Dict[str, Any]:
        return {
            "trade_type": trade_type,
            "mint": mint,
            "amount": float(amount),
            "slippage": slippage,
            "priorityFee": float(self.priority_fee),
            "userPrivateKey": wallet_secret
        }

    async def _post_trade(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST a trade order

        Raises:
            TradeGatewayError: On network errors, non-200 responses or a
                non-JSON body
        """
        session = await self._get_session()
        url = f"{self.api_url}/trade"

        try:
            with LatencyTimer(metrics, f"trade_api_{payload['trade_type']}"):
                async with session.post(url, json=payload) as response:
                    if response.status != 200:
                        text = await response.text()
                        raise TradeGatewayError(
                            f"Trade API returned HTTP {response.status}: {text[:200]}"
                        )
                    data = await response.json(content_type=None)

        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise TradeGatewayError(f"Trade API request failed: {e}") from e

        if not isinstance(data, dict):
            raise TradeGatewayError(f"Unexpected trade API response: {data!r}")
        return data

    async def submit_buy(
        self,
        mint: str,
        wallet_secret: str,
        sol_amount: Decimal,
        slippage: int
    ) -> str:
        """
        Place a buy order of sol_amount SOL

        Returns:
            Transaction hash, or "" when the order could not be placed
        """
        wallet = str(keypair_from_secret(wallet_secret).pubkey())
        logger.info("placing_buy_order", wallet=wallet, mint=mint, sol_amount=str(sol_amount))

        try:
            data = await self._post_trade(
                self._build_payload("buy", mint, wallet_secret, sol_amount, slippage)
            )
        except TradeGatewayError as e:
            metrics.increment_counter("buys_failed")
            logger.error("buy_order_failed", wallet=wallet, mint=mint, error=str(e))
            return ""

        tx_hash = data.get("tx_hash") or ""
        if tx_hash:
            metrics.increment_counter("buys_submitted")
            logger.info("buy_order_placed", wallet=wallet, signature=tx_hash)
        else:
            metrics.increment_counter("buys_failed")
            logger.warning("buy_order_without_signature", wallet=wallet, response=data)

        return tx_hash

    async def submit_sell(
        self,
        mint: str,
        wallet_secret: str,
        token_amount: Decimal,
        slippage: int
    ) -> Optional[str]:
        """
        Place a sell order of token_amount tokens

        Returns:
            Transaction signature, or None when the API returned no transaction

        Raises:
            TradeGatewayError: If the API call fails
            TransferError: If a returned transaction fails to confirm
        """
        keypair = keypair_from_secret(wallet_secret)
        wallet = str(keypair.pubkey())
        logger.info("placing_sell_order", wallet=wallet, mint=mint, token_amount=str(token_amount))

        data = await self._post_trade(
            self._build_payload("sell", mint, wallet_secret, token_amount, slippage)
        )

        tx_hash = data.get("tx_hash")
        if tx_hash:
            metrics.increment_counter("sells_submitted")
            logger.info("sell_order_placed", wallet=wallet, signature=tx_hash)
            return tx_hash

        encoded_tx = data.get("transaction")
        if not encoded_tx:
            logger.warning("sell_no_transaction_returned", wallet=wallet, mint=mint)
            return None

        try:
            unsigned = VersionedTransaction.from_bytes(base58.b58decode(encoded_tx))
            signed_tx = VersionedTransaction(unsigned.message, [keypair])
        except Exception as e:
            raise TradeGatewayError(f"Could not sign returned sell transaction: {e}") from e

        signature = await self.chain_gateway.send_transaction(signed_tx)
        metrics.increment_counter("sells_submitted")
        logger.info("sell_order_placed", wallet=wallet, signature=signature)
        return signature
