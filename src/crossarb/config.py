"""Configuration management for crossarb."""
import os
from typing import List
from pydantic import BaseModel, Field
from dotenv import load_dotenv

from crossarb.infrastructure.error_handling import ConfigurationError

SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class SolanaConfig(BaseModel):
    """Solana side: Jupiter aggregator and fee model."""
    rpc_url: str = Field(
        default_factory=lambda: os.getenv("SOLANA_RPC_URL", "https://api.mainnet-beta.solana.com")
    )
    wallet_address: str = Field(default_factory=lambda: os.getenv("SOLANA_WALLET_ADDRESS", ""))
    private_key: str = Field(default_factory=lambda: os.getenv("SOLANA_PRIVATE_KEY", ""))
    token_mint: str = Field(default_factory=lambda: os.getenv("SOLANA_TOKEN_MINT", SOL_MINT))
    quote_mint: str = Field(default_factory=lambda: os.getenv("SOLANA_QUOTE_MINT", USDC_MINT))
    token_decimals: int = Field(default_factory=lambda: int(os.getenv("SOLANA_TOKEN_DECIMALS", "9")))
    quote_decimals: int = Field(default_factory=lambda: int(os.getenv("SOLANA_QUOTE_DECIMALS", "6")))
    jupiter_api_url: str = Field(
        default_factory=lambda: os.getenv("JUPITER_API_URL", "https://quote-api.jup.ag/v6")
    )
    base_fee_lamports: int = Field(default=5000)
    priority_fee_lamports: int = Field(
        default_factory=lambda: int(os.getenv("SOLANA_PRIORITY_FEE_LAMPORTS", "5000"))
    )
    # CoinGecko ids: the traded asset and the native fee token
    coingecko_asset_id: str = Field(default_factory=lambda: os.getenv("COINGECKO_ASSET_ID", "solana"))
    coingecko_native_id: str = Field(default="solana")
    native_price_fallback_usd: float = Field(default=150.0)
    paper_balance: float = Field(default=10.0)


class ExchangeConfig(BaseModel):
    """Custodial exchange (Ethereum side) configuration."""
    name: str = Field(default_factory=lambda: os.getenv("EXCHANGE_NAME", "binance"))
    api_key: str = Field(default_factory=lambda: os.getenv("API_KEY", ""))
    api_secret: str = Field(default_factory=lambda: os.getenv("API_SECRET", ""))
    testnet: bool = Field(default=False)
    pair: str = Field(default_factory=lambda: os.getenv("EXCHANGE_PAIR", "SOL/USDT"))
    quote_asset: str = Field(default_factory=lambda: os.getenv("EXCHANGE_QUOTE_ASSET", "USDT"))
    # correlated pair, only used when proxy fallbacks are allowed
    fallback_pair: str = Field(default_factory=lambda: os.getenv("EXCHANGE_FALLBACK_PAIR", "SOL/USDC"))


class TradingConfig(BaseModel):
    """Trading parameters configuration."""
    min_profit_percentage: float = Field(
        default_factory=lambda: float(os.getenv("MIN_PROFIT_PERCENTAGE", "1.5"))
    )
    max_trade_size_usd: float = Field(
        default_factory=lambda: float(os.getenv("MAX_TRADE_SIZE_USD", "1000"))
    )
    trade_size_usd: float = Field(
        default_factory=lambda: float(os.getenv("TRADE_SIZE_USD", os.getenv("MAX_TRADE_SIZE_USD", "1000")))
    )
    max_slippage_percentage: float = Field(
        default_factory=lambda: float(os.getenv("MAX_SLIPPAGE_PERCENTAGE", "0.5"))
    )
    min_net_profit_ratio: float = Field(default=0.20)
    min_buy_balance: float = Field(default=0.01)


class MonitoringConfig(BaseModel):
    """Price polling and freshness configuration."""
    interval_seconds: float = Field(
        default_factory=lambda: float(os.getenv("MONITORING_INTERVAL_MS", "5000")) / 1000
    )
    price_history_size: int = Field(default=100)
    stale_after_seconds: float = Field(default=30.0)
    min_price: float = Field(default=0.000001)
    max_price: float = Field(default=1_000_000.0)
    allow_proxy_fallback: bool = Field(
        default_factory=lambda: _env_bool("ALLOW_PROXY_FALLBACK", "false")
    )


class AgentConfig(BaseModel):
    """Agent retry and supervision configuration."""
    retry_attempts: int = Field(default=3)
    retry_delay_seconds: float = Field(default=1.0)
    health_check_interval_seconds: float = Field(default=30.0)
    balance_refresh_seconds: float = Field(default=60.0)


class Config(BaseModel):
    """Main application configuration."""
    dry_run: bool = Field(default_factory=lambda: _env_bool("DRY_RUN", "true"))
    solana: SolanaConfig = Field(default_factory=SolanaConfig)
    exchange: ExchangeConfig = Field(default_factory=ExchangeConfig)
    trading: TradingConfig = Field(default_factory=TradingConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    agents: AgentConfig = Field(default_factory=AgentConfig)
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_dir: str = Field(default_factory=lambda: os.getenv("LOG_DIR", "logs"))

    def validate_settings(self) -> List[str]:
        """Return a list of configuration problems (empty when usable)."""
        errors = []

        if self.trading.trade_size_usd > self.trading.max_trade_size_usd:
            errors.append("TRADE_SIZE_USD must not exceed MAX_TRADE_SIZE_USD")

        if not self.dry_run:
            # credentials only matter when real orders can be placed
            if not self.solana.private_key:
                errors.append("SOLANA_PRIVATE_KEY is required")
            if not self.exchange.api_key or not self.exchange.api_secret:
                errors.append("API_KEY and API_SECRET are required")

        return errors

    def ensure_valid(self) -> "Config":
        """Raise ConfigurationError if the settings cannot run."""
        errors = self.validate_settings()
        if errors:
            raise ConfigurationError("Invalid configuration: " + "; ".join(errors))
        return self


def load_config(env_file: str = None) -> Config:
    """Load .env and build the configuration value for this process."""
    load_dotenv(env_file)
    return Config().ensure_valid()
