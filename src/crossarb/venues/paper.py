"""Dry-run on-chain trading venue for the Solana leg."""
from typing import Optional
from loguru import logger

from crossarb.config import SolanaConfig
from crossarb.venues.base import ChainPriceSource, ChainTradeSource, FeeQuote, SwapResult

LAMPORTS_PER_SOL = 1_000_000_000


class PaperChainTrader(ChainTradeSource):
    """Simulates Jupiter swaps; fees follow the Solana base + priority fee model."""

    name = "solana-paper"

    def __init__(
        self,
        config: SolanaConfig,
        native_price_source: Optional[ChainPriceSource] = None,
        price_lookup: Optional[ChainPriceSource] = None,
    ):
        self.config = config
        self.native_price_source = native_price_source
        # used to fill simulated swaps at the current market price
        self.price_lookup = price_lookup
        self.paper_balance = config.paper_balance
        self.swaps = 0

    async def initialize(self):
        for source in (self.native_price_source, self.price_lookup):
            if source is not None:
                await source.initialize()

    async def close(self):
        for source in (self.native_price_source, self.price_lookup):
            if source is not None:
                await source.close()

    async def balance(self, account: Optional[str] = None) -> float:
        return self.paper_balance

    async def native_price_usd(self) -> float:
        """SOL/USD used to value fees; configured fallback if the lookup fails."""
        if self.native_price_source is None:
            return self.config.native_price_fallback_usd
        try:
            result = await self.native_price_source.quote(self.config.coingecko_native_id)
            return result.price
        except Exception as e:
            logger.warning(f"SOL price lookup failed, using fallback: {e}")
            return self.config.native_price_fallback_usd

    async def estimate_fee(self) -> FeeQuote:
        lamports = self.config.base_fee_lamports + self.config.priority_fee_lamports
        fee_sol = lamports / LAMPORTS_PER_SOL
        return FeeQuote(native_fee=fee_sol, usd_fee=fee_sol * await self.native_price_usd())

    async def execute_swap(
        self, from_asset: str, to_asset: str, amount: float, max_slippage_bps: int
    ) -> SwapResult:
        self.swaps += 1
        amount_out = None

        if self.price_lookup is not None:
            try:
                price = (await self.price_lookup.quote(self.config.token_mint)).price
                if from_asset == self.config.token_mint:
                    amount_out = amount * price
                else:
                    amount_out = amount / price
            except Exception as e:
                logger.debug(f"Paper fill price unavailable: {e}")

        logger.info(
            f"[DRY RUN] Would swap {amount:.6f} {from_asset[:8]}... -> {to_asset[:8]}... "
            f"(max slippage {max_slippage_bps} bps)"
        )
        return SwapResult(
            success=True,
            tx_id=f"dry-run-{self.swaps}",
            amount_out=amount_out,
            dry_run=True,
        )
