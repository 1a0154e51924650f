"""
Wallet session
Current address and chain, change notifications, disconnect and
inactivity timeout. Connection UX lives in the front end; this only
tracks what the front end reports.
"""
import logging
import time
from typing import Any, Callable, Optional

from wallet_portfolio.config import Settings, settings as default_settings
from wallet_portfolio.observable import Subscription, ValueHolder
from wallet_portfolio.services.blockchain_service import AlchemyClient, is_address, normalize_address
from wallet_portfolio.services.cache_service import PortfolioCache

logger = logging.getLogger(__name__)


class WalletSession:
    def __init__(
        self,
        alchemy: AlchemyClient,
        cache: Optional[PortfolioCache] = None,
        settings: Settings = default_settings,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.alchemy = alchemy
        self.cache = cache
        self.clock = clock
        self.timeout_seconds = settings.SESSION_TIMEOUT_MINUTES * 60
        self.address: ValueHolder[Optional[str]] = ValueHolder(None)
        self.chain_id: ValueHolder[Optional[str]] = ValueHolder(None)
        self._last_activity = clock()

    @property
    def current_address(self) -> Optional[str]:
        return self.address.value

    def on_address_change(self, callback: Callable[[Optional[str]], Any]) -> Subscription:
        return self.address.subscribe(callback)

    def on_chain_change(self, callback: Callable[[Optional[str]], Any]) -> Subscription:
        return self.chain_id.subscribe(callback, replay=False)

    def connect(self, address: str, chain_id: Optional[str] = None) -> str:
        if not is_address(address):
            raise ValueError(f"Invalid wallet address: {address!r}")
        wallet = normalize_address(address)
        self.touch()
        if chain_id is not None:
            self.set_chain(chain_id)
        if wallet != self.address.value:
            logger.info(f"Wallet connected: {wallet}")
            self.address.publish(wallet)
        return wallet

    def set_chain(self, chain_id: str) -> None:
        if chain_id != self.chain_id.value:
            self.chain_id.publish(chain_id)

    def disconnect(self) -> None:
        """Forget the address and drop its cached portfolio."""
        wallet = self.address.value
        if wallet is None:
            return
        if self.cache is not None:
            self.cache.clear(wallet)
        self.address.publish(None)
        logger.info(f"Wallet disconnected: {wallet}")

    def touch(self) -> None:
        self._last_activity = self.clock()

    def expire_if_idle(self) -> bool:
        if self.address.value is None or self.timeout_seconds <= 0:
            return False
        if self.clock() - self._last_activity < self.timeout_seconds:
            return False
        logger.info("Session timed out after inactivity")
        self.disconnect()
        return True

    async def get_balance(self) -> Optional[float]:
        wallet = self.address.value
        if wallet is None:
            return None
        try:
            return await self.alchemy.get_eth_balance(wallet)
        except Exception as e:
            logger.warning(f"Error getting balance for {wallet}: {e}")
            return None
