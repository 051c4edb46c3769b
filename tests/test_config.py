"""Tests for configuration loading and validation."""
import pytest

from crossarb.config import Config, ExchangeConfig, MonitoringConfig, SolanaConfig, TradingConfig, load_config
from crossarb.infrastructure.error_handling import ConfigurationError


class TestConfig:

    def test_defaults(self, monkeypatch):
        for name in ("DRY_RUN", "MIN_PROFIT_PERCENTAGE", "MAX_TRADE_SIZE_USD", "TRADE_SIZE_USD",
                     "MONITORING_INTERVAL_MS", "ALLOW_PROXY_FALLBACK"):
            monkeypatch.delenv(name, raising=False)

        config = Config()

        assert config.dry_run is True
        assert config.trading.min_profit_percentage == 1.5
        assert config.trading.max_trade_size_usd == 1000.0
        assert config.trading.min_net_profit_ratio == 0.20
        assert config.monitoring.interval_seconds == 5.0
        assert config.monitoring.stale_after_seconds == 30.0
        assert config.monitoring.price_history_size == 100
        assert config.monitoring.allow_proxy_fallback is False
        assert config.agents.retry_attempts == 3

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("DRY_RUN", "false")
        monkeypatch.setenv("MIN_PROFIT_PERCENTAGE", "2.5")
        monkeypatch.setenv("MONITORING_INTERVAL_MS", "2000")
        monkeypatch.setenv("ALLOW_PROXY_FALLBACK", "true")

        config = Config()

        assert config.dry_run is False
        assert config.trading.min_profit_percentage == 2.5
        assert config.monitoring.interval_seconds == 2.0
        assert config.monitoring.allow_proxy_fallback is True

    def test_dry_run_needs_no_credentials(self):
        config = Config(
            dry_run=True,
            solana=SolanaConfig(private_key=""),
            exchange=ExchangeConfig(api_key="", api_secret=""),
        )
        assert config.validate_settings() == []

    def test_live_mode_requires_credentials(self):
        config = Config(
            dry_run=False,
            solana=SolanaConfig(private_key=""),
            exchange=ExchangeConfig(api_key="", api_secret=""),
        )

        errors = config.validate_settings()
        assert len(errors) == 2

        with pytest.raises(ConfigurationError):
            config.ensure_valid()

    def test_trade_size_above_maximum(self):
        config = Config(dry_run=True, trading=TradingConfig(trade_size_usd=2000.0, max_trade_size_usd=1000.0))

        with pytest.raises(ConfigurationError, match="TRADE_SIZE_USD"):
            config.ensure_valid()

    def test_load_config_reads_env_file(self, tmp_path, monkeypatch):
        # registers the variable for cleanup, then leaves it unset for load_dotenv
        monkeypatch.setenv("MAX_SLIPPAGE_PERCENTAGE", "0")
        monkeypatch.delenv("MAX_SLIPPAGE_PERCENTAGE")
        monkeypatch.delenv("DRY_RUN", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("MAX_SLIPPAGE_PERCENTAGE=0.8\n")

        config = load_config(str(env_file))

        assert config.trading.max_slippage_percentage == 0.8

    def test_monitoring_values_are_explicit(self):
        monitoring = MonitoringConfig(stale_after_seconds=10.0)
        assert monitoring.stale_after_seconds == 10.0
