"""Tests for price, trade and profitability validators."""
import pytest

from crossarb.config import MonitoringConfig, TradingConfig
from crossarb.core.validation import (
    validate_balance,
    validate_gas_costs,
    validate_opportunity,
    validate_price,
    validate_profit_percentage,
    validate_slippage,
    validate_trade_size,
)
from crossarb.infrastructure.error_handling import PriceValidationError
from helpers import make_opportunity


class TestValidatePrice:

    def test_valid_price(self):
        assert validate_price(150, "jupiter") == 150.0

    @pytest.mark.parametrize("price", [0, -1, float("nan"), float("inf"), "150", None, True])
    def test_rejects_bad_values(self, price):
        with pytest.raises(PriceValidationError):
            validate_price(price, "jupiter")

    def test_out_of_range(self):
        with pytest.raises(PriceValidationError, match="range"):
            validate_price(2_000_000, "jupiter")
        with pytest.raises(PriceValidationError, match="range"):
            validate_price(0.0000001, "jupiter")


class TestTradeChecks:

    def test_trade_size(self):
        assert validate_trade_size(500, 1000).valid
        assert validate_trade_size(1000, 1000).valid
        assert not validate_trade_size(1001, 1000).valid
        assert not validate_trade_size(0, 1000).valid

    def test_profit_percentage_threshold(self):
        assert validate_profit_percentage(1.5, 1.5).valid
        assert not validate_profit_percentage(1.49, 1.5).valid

    def test_slippage(self):
        assert validate_slippage(100.0, 100.4, 0.5).valid
        result = validate_slippage(100.0, 101.0, 0.5)
        assert not result.valid
        assert "Slippage" in result.reason

    def test_balance(self):
        assert not validate_balance(1.0, 0.5, "SOL").valid

        low = validate_balance(1.0, 1.05, "SOL")
        assert low.valid
        assert "buffer" in low.warning

        assert validate_balance(1.0, 2.0, "SOL").warning == ""


class TestGasCosts:
    """Fees must leave at least 20% of gross profit."""

    def test_gas_above_eighty_percent_rejected(self):
        result = validate_gas_costs(10.0, 9.0)
        assert not result.valid
        assert result.net_profit == pytest.approx(1.0)

    def test_gas_exceeding_profit_rejected(self):
        result = validate_gas_costs(10.0, 12.0)
        assert not result.valid
        assert result.net_profit == pytest.approx(-2.0)

    def test_gas_equal_to_profit_rejected(self):
        assert not validate_gas_costs(10.0, 10.0).valid

    def test_exactly_twenty_percent_passes(self):
        result = validate_gas_costs(10.0, 8.0)
        assert result.valid
        assert result.net_profit == pytest.approx(2.0)

    def test_cheap_gas_passes(self):
        result = validate_gas_costs(30.0, 0.5)
        assert result.valid
        assert result.net_profit == pytest.approx(29.5)


class TestValidateOpportunity:

    @pytest.fixture
    def trading(self):
        return TradingConfig(min_profit_percentage=1.5, max_trade_size_usd=1000.0, trade_size_usd=1000.0)

    @pytest.fixture
    def monitoring(self):
        return MonitoringConfig()

    def test_profitable_opportunity(self, trading, monitoring):
        opportunity = make_opportunity(100.0, 103.0, 1000.0)

        assert opportunity.profit_usd == pytest.approx(30.0)
        assert opportunity.profit_percentage == pytest.approx(3.0)
        assert validate_opportunity(opportunity, trading, monitoring).valid

    def test_collects_every_failure(self, trading, monitoring):
        opportunity = make_opportunity(100.0, 101.0, 5000.0)

        result = validate_opportunity(opportunity, trading, monitoring)

        assert not result.valid
        assert len(result.errors) == 2
        assert any("below minimum" in e for e in result.errors)
        assert any("exceeds maximum" in e for e in result.errors)
