"""
Service wiring
Builds every portfolio service around one HTTP session and one durable store.
"""
import logging
from typing import Optional

from wallet_portfolio.config import Settings, settings as default_settings
from wallet_portfolio.services.approval_service import ApprovalScanner
from wallet_portfolio.services.asset_service import AssetService
from wallet_portfolio.services.blockchain_service import AlchemyClient, HttpClient
from wallet_portfolio.services.cache_service import PortfolioCache
from wallet_portfolio.services.gas_service import GasPriceAggregator
from wallet_portfolio.services.nft_service import NFTAggregator
from wallet_portfolio.services.portfolio_service import PortfolioService
from wallet_portfolio.services.price_service import PriceService
from wallet_portfolio.services.transaction_service import TransactionService
from wallet_portfolio.services.wallet_service import WalletSession
from wallet_portfolio.storage import FileKeyValueStore, KeyValueStore

logger = logging.getLogger(__name__)


class Dashboard:
    def __init__(
        self,
        http: Optional[HttpClient] = None,
        store: Optional[KeyValueStore] = None,
        alchemy: Optional[AlchemyClient] = None,
        settings: Settings = default_settings,
    ):
        self.settings = settings
        self.http = http or HttpClient()
        self.store = store or FileKeyValueStore(settings.CACHE_DIR)
        self.alchemy = alchemy or AlchemyClient(self.http, settings)

        self.cache = PortfolioCache(self.store, settings)
        self.prices = PriceService(self.http, settings)
        self.gas = GasPriceAggregator(self.http, settings)
        self.nfts = NFTAggregator(self.http, settings)
        self.assets = AssetService(self.alchemy, self.prices, settings)
        self.transactions = TransactionService(self.alchemy)
        self.approvals = ApprovalScanner(self.alchemy, settings=settings)
        self.wallet = WalletSession(self.alchemy, self.cache, settings)
        self.portfolio = PortfolioService(self.cache, self.assets, self.nfts, self.transactions, self.prices)

    def start(self) -> None:
        """Must be called from inside a running event loop."""
        self.gas.start()
        logger.info("Gas price updates started")

    async def close(self) -> None:
        await self.gas.stop()
        await self.portfolio.close()
        await self.http.close()
