"""
Token price quotes
CoinGecko by symbol first, Alchemy prices by contract address second,
stablecoin peg last. Unknown prices resolve to 0.
"""
import logging
from typing import Optional

from wallet_portfolio.config import COINGECKO_IDS, STABLECOINS, Settings, settings as default_settings
from wallet_portfolio.errors import ProviderError
from wallet_portfolio.provider_chain import ProviderChain
from wallet_portfolio.services.blockchain_service import HttpClient, normalize_address

logger = logging.getLogger(__name__)

_STABLE_ADDRESSES = set(STABLECOINS.values())


def _positive(price) -> bool:
    return price is not None and price > 0


class PriceService:
    def __init__(self, http: HttpClient, settings: Settings = default_settings):
        self.http = http
        self.settings = settings
        self.chain = ProviderChain(
            [self._coingecko_price, self._alchemy_price, self._stablecoin_peg],
            default=0.0,
            name="price",
            is_valid=_positive,
        )

    async def get_usd_price(self, symbol: str, contract_address: Optional[str] = None) -> float:
        return float(await self.chain.run(symbol or "", contract_address))

    async def _coingecko_price(self, symbol: str, contract_address: Optional[str]) -> float:
        coin_id = COINGECKO_IDS.get(symbol.upper())
        if not coin_id:
            raise ProviderError(f"no CoinGecko id for {symbol!r}")

        data = await self.http.get_json(
            self.settings.COINGECKO_URL,
            params={"ids": coin_id, "vs_currencies": "usd"},
        )
        return float((data or {}).get(coin_id, {}).get("usd", 0) or 0)

    async def _alchemy_price(self, symbol: str, contract_address: Optional[str]) -> float:
        if not contract_address or not self.settings.ALCHEMY_API_KEY:
            raise ProviderError("Alchemy price lookup needs a contract address and API key")

        data = await self.http.get_json(
            self.settings.ALCHEMY_PRICE_URL,
            params={"network": self.settings.ALCHEMY_NETWORK, "addresses": contract_address},
        )
        tokens = (data or {}).get("data") or []
        if not tokens:
            return 0.0
        prices = tokens[0].get("prices") or []
        if not prices:
            return 0.0
        return float(prices[0].get("value", 0) or 0)

    async def _stablecoin_peg(self, symbol: str, contract_address: Optional[str]) -> float:
        if contract_address and normalize_address(contract_address) in _STABLE_ADDRESSES:
            return 1.0
        return 0.0
