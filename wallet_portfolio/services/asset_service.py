"""
Asset service
Prices a wallet's holdings token by token and normalizes portfolio percentages
"""
import inspect
import logging
import math
from typing import Any, Callable, List, Optional

from wallet_portfolio.config import NETWORK_LABELS, Settings, settings as default_settings
from wallet_portfolio.models import Asset
from wallet_portfolio.services.blockchain_service import AlchemyClient, hex_to_int, token_decimals
from wallet_portfolio.services.price_service import PriceService

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[List[Asset]], Any]

# Percentages are unknown until every asset is priced
PROVISIONAL = math.nan


def normalize_percentages(assets: List[Asset]) -> List[Asset]:
    total = sum(asset.value for asset in assets)
    for asset in assets:
        asset.percentage = (asset.value / total * 100) if total > 0 else 0.0
    return assets


def total_value(assets: List[Asset]) -> float:
    return sum(asset.value for asset in assets)


class AssetService:
    def __init__(self, alchemy: AlchemyClient, prices: PriceService, settings: Settings = default_settings):
        self.alchemy = alchemy
        self.prices = prices
        self.network = NETWORK_LABELS.get(settings.ALCHEMY_NETWORK, settings.ALCHEMY_NETWORK)

    async def load_assets(self, address: str, on_progress: Optional[ProgressCallback] = None) -> List[Asset]:
        """
        Tokens are processed one at a time to stay under provider rate limits.
        on_progress receives a snapshot after each priced token; percentages
        in those snapshots are NaN until the final pass.
        """
        assets: List[Asset] = []

        native = await self._native_asset(address)
        if native is not None:
            assets.append(native)
            await self._publish(on_progress, assets)

        try:
            tokens = await self.alchemy.get_held_tokens(address)
        except Exception as e:
            logger.warning(f"Error fetching token balances for {address}: {e}")
            tokens = []

        for token in tokens:
            contract = token.get("contractAddress", "")
            try:
                metadata = await self.alchemy.get_token_metadata(contract)
                decimals = token_decimals(metadata)
            except Exception as e:
                logger.warning(f"Skipping token {contract}, metadata failed: {e}")
                continue

            balance = hex_to_int(token.get("tokenBalance")) / (10 ** decimals)
            symbol = metadata.get("symbol") or "UNKNOWN"

            price = await self._price(symbol, contract)
            assets.append(Asset(
                name=metadata.get("name") or symbol,
                symbol=symbol,
                percentage=PROVISIONAL,
                network=self.network,
                price=price,
                balance=balance,
                value=balance * price,
                logo=metadata.get("logo") or None,
                contract_address=contract,
            ))
            await self._publish(on_progress, assets)

        return normalize_percentages(assets)

    async def _native_asset(self, address: str) -> Optional[Asset]:
        try:
            balance = await self.alchemy.get_eth_balance(address)
        except Exception as e:
            logger.warning(f"Error fetching ETH balance for {address}: {e}")
            return None
        if balance <= 0:
            return None

        price = await self._price("ETH", None)
        return Asset(
            name="Ethereum",
            symbol="ETH",
            percentage=PROVISIONAL,
            network=self.network,
            price=price,
            balance=balance,
            value=balance * price,
        )

    async def _price(self, symbol: str, contract: Optional[str]) -> float:
        try:
            return await self.prices.get_usd_price(symbol, contract)
        except Exception as e:
            logger.warning(f"Price lookup failed for {symbol}: {e}")
            return 0.0

    async def _publish(self, on_progress: Optional[ProgressCallback], assets: List[Asset]) -> None:
        if on_progress is None:
            return
        snapshot = [asset.model_copy() for asset in assets]
        try:
            result = on_progress(snapshot)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Asset progress callback failed: {e}")
