"""
Portfolio service
Serves cached portfolio data immediately and refreshes sections that are
stale, expired or missing in the background, writing results back to the
cache.
"""
import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from wallet_portfolio.models import CacheEntry
from wallet_portfolio.services.asset_service import AssetService, ProgressCallback, total_value
from wallet_portfolio.services.blockchain_service import normalize_address
from wallet_portfolio.services.cache_service import FRESH, SECTIONS, PortfolioCache
from wallet_portfolio.services.nft_service import NFTAggregator, group_nfts_by_collection, nft_total_value
from wallet_portfolio.services.price_service import PriceService
from wallet_portfolio.services.transaction_service import TransactionService

logger = logging.getLogger(__name__)


class PortfolioService:
    def __init__(
        self,
        cache: PortfolioCache,
        assets: AssetService,
        nfts: NFTAggregator,
        transactions: TransactionService,
        prices: PriceService,
    ):
        self.cache = cache
        self.assets = assets
        self.nfts = nfts
        self.transactions = transactions
        self.prices = prices
        self._tasks: Dict[Tuple[str, str], asyncio.Task] = {}

    async def load(self, address: str, sections: Iterable[str] = SECTIONS) -> Optional[CacheEntry]:
        """Return whatever is cached now and schedule refreshes for non-fresh sections."""
        entry = self.cache.get(address)
        for section in sections:
            if self.cache.freshness(address, section) != FRESH:
                self.schedule_refresh(address, section)
        return entry

    def schedule_refresh(self, address: str, section: str) -> asyncio.Task:
        if section not in SECTIONS:
            raise ValueError(f"Unknown portfolio section {section!r}")

        key = (normalize_address(address), section)
        running = self._tasks.get(key)
        if running is not None and not running.done():
            return running

        task = asyncio.get_running_loop().create_task(self._refresh_logged(address, section))
        self._tasks[key] = task
        task.add_done_callback(lambda t: self._forget_task(key, t))
        return task

    def _forget_task(self, key: Tuple[str, str], task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]

    def pending(self, address: str) -> List[str]:
        wallet = normalize_address(address)
        return [section for (w, section), task in self._tasks.items() if w == wallet and not task.done()]

    async def _refresh_logged(self, address: str, section: str) -> Optional[CacheEntry]:
        try:
            return await self.refresh(address, section)
        except Exception as e:
            logger.warning(f"Background refresh of {section} failed for {address}: {e}")
            return None

    async def refresh(self, address: str, section: str) -> CacheEntry:
        if section == "assets":
            return await self.refresh_assets(address)
        if section == "transactions":
            return await self.refresh_transactions(address)
        if section == "nfts":
            return await self.refresh_nfts(address)
        raise ValueError(f"Unknown portfolio section {section!r}")

    async def refresh_assets(self, address: str, on_progress: Optional[ProgressCallback] = None) -> CacheEntry:
        assets = await self.assets.load_assets(address, on_progress)
        native = next((a for a in assets if a.symbol == "ETH" and a.contract_address is None), None)
        balance = f"{native.balance:.2f}" if native else "0.00"
        return self.cache.save_assets(address, assets, total_value(assets), balance)

    async def refresh_transactions(self, address: str) -> CacheEntry:
        transactions = await self.transactions.get_transactions(address)
        return self.cache.save_transactions(address, transactions)

    async def refresh_nfts(self, address: str) -> Optional[CacheEntry]:
        nfts = await self.nfts.fetch_owned_nfts(address)
        if not nfts:
            cached = self.cache.get(address)
            if cached is not None and cached.nfts is not None and cached.nfts.nfts:
                logger.info(f"No NFTs fetched for {address}, keeping cached NFTs")
                return cached

        collections = group_nfts_by_collection(nfts)
        eth_usd = pol_usd = 0.0
        if any(nft.floor_price for nft in nfts):
            eth_usd, pol_usd = await asyncio.gather(
                self.prices.get_usd_price("ETH"),
                self.prices.get_usd_price("POL"),
            )
        return self.cache.save_nfts(address, nfts, collections, nft_total_value(nfts, eth_usd, pol_usd))

    async def close(self) -> None:
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
