"""
Configuration Manager for the bundler
Loads configuration from YAML files with environment variable support
"""

import os
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


DEFAULT_API_URL = "https://pumpapi.fun/api"
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


@dataclass
class RPCEndpoint:
    """RPC endpoint configuration"""
    url: str
    label: str
    priority: int = 0
    timeout_ms: int = 10000


@dataclass
class RPCConfig:
    """RPC manager configuration"""
    endpoints: List[RPCEndpoint]
    failover_threshold_errors: int = 3


@dataclass
class WalletConfig:
    """Main wallet and ledger file locations"""
    main_private_key: str
    wallets_file: str = "data/wallets.json"
    checkpoint_file: str = "data/paused.json"


@dataclass
class TradingConfig:
    """Trade sizing, pacing and interruption policy"""
    token_mint: str
    api_url: str = DEFAULT_API_URL
    slippage_percent: int = 5
    priority_fee: Decimal = Decimal("0")
    sol_buy_min: Decimal = Decimal("0.002")
    sol_buy_max: Decimal = Decimal("0.005")
    # Platform cut taken from every buy (pump.fun + creator)
    platform_fee: Decimal = Decimal("0.02")
    # Share of the spendable balance committed to the buy
    buy_fraction: Decimal = Decimal("1")
    # Minimum balance a wallet keeps for rent
    sol_rent_reserve: Decimal = Decimal("0.0015")
    pause_on_interruption: bool = False
    tx_delay_s: float = 1.0
    settle_delay_s: float = 30.0
    api_timeout_s: float = 30.0


@dataclass
class TransactionConfig:
    """Transaction submission and confirmation"""
    skip_preflight: bool = False
    max_retries: int = 5
    retry_delay_ms: int = 500
    confirmation_timeout_s: float = 60.0
    confirmation_poll_interval_s: float = 1.0


@dataclass
class LogConfig:
    """Logging configuration"""
    level: str = "INFO"
    format: str = "console"
    output_file: Optional[str] = None


@dataclass
class BundlerConfig:
    """Complete bundler configuration"""
    rpc_config: RPCConfig
    wallet_config: WalletConfig
    trading_config: TradingConfig
    transaction_config: TransactionConfig = field(default_factory=TransactionConfig)
    log_config: LogConfig = field(default_factory=LogConfig)


def _decimal(value: Any, key: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"Configuration value {key} is not a number: {value!r}")


TRUE_STRINGS = {"true", "1", "yes", "on"}
FALSE_STRINGS = {"false", "0", "no", "off"}


def _flag(value: Any, key: str) -> bool:
    """Booleans arrive as strings when filled from ${VAR}"""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
    raise ValueError(f"Configuration value {key} is not a boolean: {value!r}")


class ConfigurationManager:
    """Manages bundler configuration from YAML files and environment variables"""

    def __init__(self, config_path: str):
        """
        Initialize configuration manager

        Args:
            config_path: Path to YAML configuration file
        """
        self.config_path = Path(config_path)
        self._config_data: Optional[Dict[str, Any]] = None
        self._bundler_config: Optional[BundlerConfig] = None

    def load_config(self) -> BundlerConfig:
        """
        Load and validate configuration from file

        Returns:
            BundlerConfig: Validated configuration object

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not self.config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {self.config_path}"
            )

        with open(self.config_path, 'r', encoding='utf-8') as f:
            raw_config = yaml.safe_load(f) or {}

        if not isinstance(raw_config, dict):
            raise ValueError(f"Configuration root must be a mapping: {self.config_path}")

        self._config_data = self._substitute_env_vars(raw_config)
        self._bundler_config = self.parse_config(self._config_data)

        return self._bundler_config

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key

        Args:
            key: Dot-notation key (e.g., "trading.slippage_percent")
            default: Default value if key not found
        """
        if self._config_data is None:
            raise RuntimeError("Configuration not loaded. Call load_config() first.")

        value = self._config_data
        for k in key.split('.'):
            if not isinstance(value, dict):
                return default
            value = value.get(k)
            if value is None:
                return default

        return value

    def _substitute_env_vars(self, config: Any) -> Any:
        """
        Recursively substitute ${VAR_NAME} with environment variables

        Supports full-value and embedded substitution, e.g.
        "https://rpc.example.com/?key=${RPC_KEY}".
        """
        if isinstance(config, dict):
            return {k: self._substitute_env_vars(v) for k, v in config.items()}
        if isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        if isinstance(config, str):
            def replace_var(match):
                var_name = match.group(1)
                value = os.getenv(var_name)
                if value is None:
                    raise ValueError(
                        f"Environment variable {var_name} not found"
                    )
                return value

            return ENV_VAR_PATTERN.sub(replace_var, config)
        return config

    @staticmethod
    def parse_config(config: Dict[str, Any]) -> BundlerConfig:
        """
        Parse raw configuration into typed objects

        Raises:
            ValueError: If configuration is invalid
        """
        rpc_data = config.get('rpc') or {}
        endpoints_data = rpc_data.get('endpoints') or []

        if not endpoints_data:
            raise ValueError("No RPC endpoints configured")

        endpoints = []
        for index, ep in enumerate(endpoints_data):
            if not ep.get('url'):
                raise ValueError(f"RPC endpoint #{index} has no url")
            endpoints.append(RPCEndpoint(
                url=ep['url'],
                label=ep.get('label', f"endpoint_{index}"),
                priority=ep.get('priority', index),
                timeout_ms=ep.get('timeout_ms', 10000)
            ))

        # 0 = highest priority
        endpoints.sort(key=lambda x: x.priority)

        rpc_config = RPCConfig(
            endpoints=endpoints,
            failover_threshold_errors=rpc_data.get('failover_threshold_errors', 3)
        )

        wallet_data = config.get('wallet') or {}
        wallet_config = WalletConfig(
            main_private_key=wallet_data.get('main_private_key') or '',
            wallets_file=wallet_data.get('wallets_file', 'data/wallets.json'),
            checkpoint_file=wallet_data.get('checkpoint_file', 'data/paused.json')
        )

        trading_data = config.get('trading') or {}
        trading_config = TradingConfig(
            token_mint=trading_data.get('token_mint') or '',
            api_url=str(trading_data.get('api_url', DEFAULT_API_URL)).rstrip('/'),
            slippage_percent=int(trading_data.get('slippage_percent', 5)),
            priority_fee=_decimal(trading_data.get('priority_fee', 0), 'trading.priority_fee'),
            sol_buy_min=_decimal(trading_data.get('sol_buy_min', '0.002'), 'trading.sol_buy_min'),
            sol_buy_max=_decimal(trading_data.get('sol_buy_max', '0.005'), 'trading.sol_buy_max'),
            platform_fee=_decimal(trading_data.get('platform_fee', '0.02'), 'trading.platform_fee'),
            buy_fraction=_decimal(trading_data.get('buy_fraction', 1), 'trading.buy_fraction'),
            sol_rent_reserve=_decimal(trading_data.get('sol_rent_reserve', '0.0015'), 'trading.sol_rent_reserve'),
            pause_on_interruption=_flag(trading_data.get('pause_on_interruption', False), 'trading.pause_on_interruption'),
            tx_delay_s=float(trading_data.get('tx_delay_s', 1.0)),
            settle_delay_s=float(trading_data.get('settle_delay_s', 30.0)),
            api_timeout_s=float(trading_data.get('api_timeout_s', 30.0))
        )

        tx_data = config.get('transactions') or {}
        transaction_config = TransactionConfig(
            skip_preflight=_flag(tx_data.get('skip_preflight', False), 'transactions.skip_preflight'),
            max_retries=int(tx_data.get('max_retries', 5)),
            retry_delay_ms=int(tx_data.get('retry_delay_ms', 500)),
            confirmation_timeout_s=float(tx_data.get('confirmation_timeout_s', 60.0)),
            confirmation_poll_interval_s=float(tx_data.get('confirmation_poll_interval_s', 1.0))
        )

        log_data = config.get('logging') or {}
        log_config = LogConfig(
            level=log_data.get('level', 'INFO'),
            format=log_data.get('format', 'console'),
            output_file=log_data.get('output_file')
        )

        bundler_config = BundlerConfig(
            rpc_config=rpc_config,
            wallet_config=wallet_config,
            trading_config=trading_config,
            transaction_config=transaction_config,
            log_config=log_config
        )
        validate_config(bundler_config)
        return bundler_config


def validate_config(config: BundlerConfig) -> None:
    """
    Check cross-field constraints

    Raises:
        ValueError: With every violated constraint listed
    """
    trading = config.trading_config
    problems = []

    if not config.wallet_config.main_private_key:
        problems.append("wallet.main_private_key is required")
    if not trading.token_mint:
        problems.append("trading.token_mint is required")
    if trading.sol_buy_min <= 0 or trading.sol_buy_max <= 0:
        problems.append("trading.sol_buy_min and trading.sol_buy_max must be positive")
    if trading.sol_buy_min > trading.sol_buy_max:
        problems.append("trading.sol_buy_min must not exceed trading.sol_buy_max")
    if not Decimal("0") <= trading.platform_fee < Decimal("1"):
        problems.append("trading.platform_fee must be in [0, 1)")
    if not Decimal("0") < trading.buy_fraction <= Decimal("1"):
        problems.append("trading.buy_fraction must be in (0, 1]")
    if trading.sol_rent_reserve < 0:
        problems.append("trading.sol_rent_reserve must not be negative")
    if trading.slippage_percent < 0:
        problems.append("trading.slippage_percent must not be negative")
    if trading.tx_delay_s < 0 or trading.settle_delay_s < 0:
        problems.append("trading delays must not be negative")
    if config.transaction_config.max_retries < 1:
        problems.append("transactions.max_retries must be at least 1")

    if problems:
        raise ValueError("Invalid configuration: " + "; ".join(problems))
