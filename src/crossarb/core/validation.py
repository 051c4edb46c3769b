"""Sanity and profitability checks for prices, opportunities and trades."""
import math
from dataclasses import dataclass, field
from typing import List, Optional

from crossarb.config import MonitoringConfig, TradingConfig
from crossarb.infrastructure.error_handling import PriceValidationError
from crossarb.models import Opportunity


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)
    net_profit: Optional[float] = None
    warning: str = ""

    @property
    def reason(self) -> str:
        return "; ".join(self.errors)


def validate_price(
    price, source: str, min_price: float = 0.000001, max_price: float = 1_000_000.0
) -> float:
    """Return price as float, or raise PriceValidationError."""
    if isinstance(price, bool) or not isinstance(price, (int, float)):
        raise PriceValidationError(f"Invalid price from {source}: {price!r}")

    price = float(price)
    if not math.isfinite(price):
        raise PriceValidationError(f"Invalid price from {source}: {price}")

    if price <= 0:
        raise PriceValidationError(f"Price must be positive from {source}: {price}")

    if price < min_price or price > max_price:
        raise PriceValidationError(f"Price outside reasonable range from {source}: {price}")

    return price


def validate_trade_size(size_usd: float, max_trade_size_usd: float) -> ValidationResult:
    if not isinstance(size_usd, (int, float)) or not math.isfinite(size_usd):
        return ValidationResult(False, [f"Invalid trade size: {size_usd}"])
    if size_usd <= 0:
        return ValidationResult(False, [f"Trade size must be positive: {size_usd}"])
    if size_usd > max_trade_size_usd:
        return ValidationResult(
            False, [f"Trade size {size_usd} exceeds maximum {max_trade_size_usd}"]
        )
    return ValidationResult(True)


def validate_profit_percentage(profit_pct: float, min_profit_percentage: float) -> ValidationResult:
    if not isinstance(profit_pct, (int, float)) or math.isnan(profit_pct):
        return ValidationResult(False, [f"Invalid profit percentage: {profit_pct}"])

    if profit_pct < min_profit_percentage:
        return ValidationResult(
            False, [f"Profit {profit_pct:.2f}% below minimum {min_profit_percentage}%"]
        )
    return ValidationResult(True)


def validate_gas_costs(
    profit_usd: float, gas_cost_usd: float, min_net_profit_ratio: float = 0.20
) -> ValidationResult:
    """Fees must leave at least min_net_profit_ratio of the gross profit."""
    net_profit = profit_usd - gas_cost_usd

    if gas_cost_usd >= profit_usd:
        return ValidationResult(
            False,
            [f"Gas cost {gas_cost_usd:.2f} exceeds profit {profit_usd:.2f}"],
            net_profit=net_profit,
        )

    net_ratio = net_profit / profit_usd
    if net_ratio < min_net_profit_ratio:
        return ValidationResult(
            False,
            [f"Net profit after gas only {net_ratio * 100:.2f}% of gross profit"],
            net_profit=net_profit,
        )

    return ValidationResult(True, net_profit=net_profit)


def validate_slippage(expected_price: float, actual_price: float, max_slippage_percentage: float) -> ValidationResult:
    slippage_pct = abs((actual_price - expected_price) / expected_price * 100)

    if slippage_pct > max_slippage_percentage:
        return ValidationResult(
            False,
            [f"Slippage {slippage_pct:.2f}% exceeds maximum {max_slippage_percentage}%"],
        )
    return ValidationResult(True)


def validate_balance(required: float, available: float, asset: str) -> ValidationResult:
    """Hard failure below required; warning when under a 10% buffer."""
    if available < required:
        return ValidationResult(
            False,
            [f"Insufficient {asset} balance. Required: {required}, Available: {available}"],
        )

    if available < required * 1.1:
        return ValidationResult(
            True, warning=f"Low balance warning. Recommended buffer not met for {asset}"
        )
    return ValidationResult(True)


def validate_opportunity(
    opportunity: Opportunity, trading: TradingConfig, monitoring: MonitoringConfig
) -> ValidationResult:
    """Run every pre-trade check and collect all failure reasons."""
    errors = []

    for price, venue in (
        (opportunity.buy_price, opportunity.buy_venue),
        (opportunity.sell_price, opportunity.sell_venue),
    ):
        try:
            validate_price(price, venue.value, monitoring.min_price, monitoring.max_price)
        except PriceValidationError as e:
            errors.append(str(e))

    errors.extend(
        validate_profit_percentage(
            opportunity.profit_percentage, trading.min_profit_percentage
        ).errors
    )
    errors.extend(
        validate_trade_size(opportunity.trade_size_usd, trading.max_trade_size_usd).errors
    )

    return ValidationResult(valid=not errors, errors=errors)
