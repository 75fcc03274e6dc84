"""
Pytest configuration and shared fixtures
These fixtures are available to all test files
"""

import random
from decimal import Decimal
from typing import Any, Dict, List
from unittest.mock import AsyncMock

import pytest
import yaml

from bundler.clients.chain_gateway import ChainGateway
from bundler.clients.trade_gateway import TradeGateway
from bundler.core.config import ConfigurationManager, BundlerConfig, TradingConfig
from bundler.core.ledger import LedgerStore
from bundler.core.metrics import get_metrics
from bundler.core.models import WalletRecord
from bundler.core.wallet_pool import generate_keypair, generate_pool


# Wrapped SOL mint, any valid address works as a test mint
TEST_MINT = "So11111111111111111111111111111111111111112"


@pytest.fixture(autouse=True)
def reset_metrics():
    """Global metrics start empty for every test"""
    get_metrics().reset()
    yield
    get_metrics().reset()


@pytest.fixture
def main_wallet() -> WalletRecord:
    return generate_keypair()


@pytest.fixture
def test_config_dict(main_wallet, tmp_path) -> Dict[str, Any]:
    """
    Sample configuration dictionary for testing

    Returns valid config that can be modified per test
    """
    return {
        "rpc": {
            "endpoints": [
                {
                    "url": "https://api.testnet.solana.com",
                    "label": "solana_labs_testnet",
                    "priority": 1,
                    "timeout_ms": 5000
                },
                {
                    "url": "https://api.devnet.solana.com",
                    "label": "solana_labs_devnet",
                    "priority": 0,
                    "timeout_ms": 5000
                }
            ],
            "failover_threshold_errors": 3
        },
        "wallet": {
            "main_private_key": main_wallet.private_key,
            "wallets_file": str(tmp_path / "data" / "wallets.json"),
            "checkpoint_file": str(tmp_path / "data" / "paused.json")
        },
        "trading": {
            "token_mint": TEST_MINT,
            "slippage_percent": 5,
            "sol_buy_min": 0.002,
            "sol_buy_max": 0.005,
            "platform_fee": 0.02,
            "sol_rent_reserve": 0.0015,
            "pause_on_interruption": False,
            "tx_delay_s": 0,
            "settle_delay_s": 0
        },
        "transactions": {
            "max_retries": 2,
            "retry_delay_ms": 0,
            "confirmation_timeout_s": 1,
            "confirmation_poll_interval_s": 0
        },
        "logging": {
            "level": "DEBUG",
            "format": "json",
            "output_file": None
        }
    }


@pytest.fixture
def test_config_file(test_config_dict, tmp_path) -> str:
    """
    Create a temporary config file for testing

    Returns path to temporary YAML config file
    """
    config_file = tmp_path / "test_config.yml"
    with open(config_file, 'w') as f:
        yaml.dump(test_config_dict, f)

    return str(config_file)


@pytest.fixture
def bundler_config(test_config_dict) -> BundlerConfig:
    return ConfigurationManager.parse_config(test_config_dict)


@pytest.fixture
def trading_config(bundler_config) -> TradingConfig:
    return bundler_config.trading_config


@pytest.fixture
def ledger(bundler_config) -> LedgerStore:
    wallet_config = bundler_config.wallet_config
    return LedgerStore(wallet_config.wallets_file, wallet_config.checkpoint_file)


@pytest.fixture
def pool_wallets() -> List[WalletRecord]:
    """Five fresh wallets"""
    return generate_pool(5)


@pytest.fixture
def seeded_rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def fake_chain():
    """
    Chain gateway double

    Every wallet holds 0.01 SOL and no tokens unless a test says otherwise.
    """
    chain = AsyncMock(spec=ChainGateway)
    chain.get_balance.return_value = Decimal("0.01")
    chain.get_token_balance.return_value = Decimal("0")
    chain.get_latest_mint_signature.return_value = None
    chain.transfer_native.return_value = "transfer_sig"
    chain.transfer_token.return_value = "token_transfer_sig"
    return chain


@pytest.fixture
def fake_trader():
    """Trade gateway double returning buy_sig_0, buy_sig_1, ..."""
    trader = AsyncMock(spec=TradeGateway)
    counter = iter(range(1000))

    async def submit_buy(mint, wallet_secret, sol_amount, slippage):
        return f"buy_sig_{next(counter)}"

    trader.submit_buy.side_effect = submit_buy
    trader.submit_sell.return_value = "sell_sig"
    return trader


def pytest_configure(config):
    """Register custom pytest markers"""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires network)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running (>5 seconds)"
    )
