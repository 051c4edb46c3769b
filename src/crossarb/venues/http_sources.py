"""HTTP price sources: Jupiter aggregator quotes and CoinGecko spot prices."""
from typing import Any, Dict, Optional
from loguru import logger
import aiohttp

from crossarb.config import SolanaConfig
from crossarb.venues.base import ChainPriceSource, SourceQuote

REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=10)


class HttpPriceSource(ChainPriceSource):
    """Shared aiohttp session handling."""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self.session = session
        self._owns_session = session is None

    async def initialize(self):
        """Open the HTTP session."""
        if self.session is None:
            self.session = aiohttp.ClientSession(timeout=REQUEST_TIMEOUT)
            self._owns_session = True

    async def close(self):
        """Close the HTTP session if we opened it."""
        if self.session and self._owns_session:
            await self.session.close()
        self.session = None

    async def _get_json(self, url: str, params: Dict[str, Any]) -> Any:
        if self.session is None:
            await self.initialize()

        async with self.session.get(url, params=params) as response:
            # raises ClientResponseError, 429 included, for the caller to classify
            response.raise_for_status()
            return await response.json(content_type=None)


class JupiterPriceSource(HttpPriceSource):
    """Prices a token by quoting one whole unit against the quote mint on Jupiter."""

    name = "jupiter"

    def __init__(self, config: SolanaConfig, session: Optional[aiohttp.ClientSession] = None):
        super().__init__(session)
        self.config = config

    async def quote(self, asset: str) -> SourceQuote:
        """asset is the input mint; price is in quote-mint units."""
        amount = 10 ** self._decimals_for(asset)
        data = await self._get_json(
            f"{self.config.jupiter_api_url}/quote",
            {
                'inputMint': asset,
                'outputMint': self.config.quote_mint,
                'amount': amount,
                'slippageBps': 50,
            },
        )

        # the edge sometimes answers with an HTML error page
        if not isinstance(data, dict) or not data.get('outAmount'):
            raise ValueError("Invalid response from Jupiter")

        price = int(data['outAmount']) / 10 ** self.config.quote_decimals
        logger.debug(f"Jupiter quote {asset[:8]}...: {price}")

        return SourceQuote(
            price=price,
            metadata={
                'route': [step.get('swapInfo', {}).get('label') for step in data.get('routePlan', [])],
                'impact': data.get('priceImpactPct'),
            },
        )

    def _decimals_for(self, mint: str) -> int:
        if mint == self.config.token_mint:
            return self.config.token_decimals
        if mint == self.config.quote_mint:
            return self.config.quote_decimals
        return 9


class CoinGeckoPriceSource(HttpPriceSource):
    """USD spot price from the CoinGecko simple price API."""

    name = "coingecko"
    API_URL = "https://api.coingecko.com/api/v3/simple/price"

    async def quote(self, asset: str) -> SourceQuote:
        """asset is a CoinGecko coin id, e.g. 'solana'."""
        data = await self._get_json(self.API_URL, {'ids': asset, 'vs_currencies': 'usd'})

        try:
            price = float(data[asset]['usd'])
        except (KeyError, TypeError, ValueError):
            raise ValueError(f"CoinGecko returned no USD price for {asset}")

        return SourceQuote(price=price, metadata={'coin_id': asset})
