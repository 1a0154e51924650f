"""
Portfolio cache
Per-wallet assets, transactions and NFTs held in memory and written
through to a durable key-value store. Each section keeps its own
timestamp, so freshness is tracked per section.

Freshness, with age = now - timestamp:
  fresh    age < CACHE_FRESH_SECONDS      use as is
  stale    fresh window <= age < max age  show, refresh in background
  expired  age >= CACHE_MAX_AGE_SECONDS   do not trust
Entries are only removed by clear()/clear_all(), never by age.
"""
import logging
import time
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError

from wallet_portfolio.config import CACHE_KEY_PREFIX, Settings, settings as default_settings
from wallet_portfolio.models import (
    Asset, CachedAssets, CachedNFTs, CachedTransactions, CacheEntry, NFT, NFTCollection, Transaction
)
from wallet_portfolio.observable import Subscription, ValueHolder
from wallet_portfolio.services.blockchain_service import normalize_address
from wallet_portfolio.storage import KeyValueStore

logger = logging.getLogger(__name__)

SECTIONS = ("assets", "transactions", "nfts")

FRESH = "fresh"
STALE = "stale"
EXPIRED = "expired"
MISSING = "missing"


def now_ms() -> int:
    return int(time.time() * 1000)


def cache_key(address: str) -> str:
    return f"{CACHE_KEY_PREFIX}{normalize_address(address)}"


class PortfolioCache:
    def __init__(
        self,
        store: KeyValueStore,
        settings: Settings = default_settings,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.clock = clock
        self.fresh_ms = settings.CACHE_FRESH_SECONDS * 1000
        self.max_age_ms = settings.CACHE_MAX_AGE_SECONDS * 1000
        self._memory: Dict[str, CacheEntry] = {}
        # emits the wallet address after each save
        self.updates: ValueHolder[Optional[str]] = ValueHolder(None)

    # ---------- freshness ----------

    def tier(self, timestamp: Optional[int]) -> str:
        if not timestamp:
            return MISSING
        age = self.clock() - timestamp
        if age < self.fresh_ms:
            return FRESH
        if age < self.max_age_ms:
            return STALE
        return EXPIRED

    def is_valid(self, timestamp: Optional[int]) -> bool:
        return self.tier(timestamp) == FRESH

    def is_stale(self, timestamp: Optional[int]) -> bool:
        return self.tier(timestamp) == STALE

    # ---------- write ----------

    def save(
        self,
        address: str,
        assets: Optional[CachedAssets] = None,
        transactions: Optional[CachedTransactions] = None,
        nfts: Optional[CachedNFTs] = None,
    ) -> CacheEntry:
        """Merge the given sections into the wallet's entry, stamping each one."""
        key = cache_key(address)
        existing = self._lookup(key)
        entry = existing.model_copy(deep=True) if existing else CacheEntry()
        now = self.clock()

        for name, record in (("assets", assets), ("transactions", transactions), ("nfts", nfts)):
            if record is not None:
                setattr(entry, name, record.model_copy(update={"timestamp": now}, deep=True))
        entry.timestamp = now

        self._memory[key] = entry
        try:
            self.store.set(key, entry.model_dump_json(by_alias=True))
        except Exception as e:
            logger.warning(f"Failed to persist cache for {key}, keeping memory copy: {e}")

        self.updates.publish(normalize_address(address))
        return entry.model_copy(deep=True)

    def save_assets(self, address: str, assets: List[Asset], total_value: float, balance: str) -> CacheEntry:
        return self.save(address, assets=CachedAssets(assets=assets, total_value=total_value, balance=balance))

    def save_transactions(self, address: str, transactions: List[Transaction]) -> CacheEntry:
        return self.save(address, transactions=CachedTransactions(transactions=transactions))

    def save_nfts(
        self,
        address: str,
        nfts: List[NFT],
        collections: List[NFTCollection],
        total_value: float,
    ) -> CacheEntry:
        return self.save(
            address,
            nfts=CachedNFTs(nfts=nfts, nft_collections=collections, nft_total_value=total_value),
        )

    # ---------- read ----------

    def get(self, address: str) -> Optional[CacheEntry]:
        """
        Memory copy when fresh, otherwise the durable copy (any tier).
        Callers decide what to do with stale or expired data.
        """
        entry = self._lookup(cache_key(address))
        return entry.model_copy(deep=True) if entry else None

    def _lookup(self, key: str) -> Optional[CacheEntry]:
        cached = self._memory.get(key)
        if cached is not None and self.is_valid(cached.timestamp):
            return cached

        stored = self._read_durable(key)
        # memory stays authoritative unless the durable copy is newer
        if stored is not None and (cached is None or stored.timestamp > cached.timestamp):
            self._memory[key] = stored
            return stored
        return cached

    def _read_durable(self, key: str) -> Optional[CacheEntry]:
        try:
            raw = self.store.get(key)
        except Exception as e:
            logger.warning(f"Failed to read cache for {key}: {e}")
            return None
        if not raw:
            return None
        try:
            return CacheEntry.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            return None

    def has_valid_cache(self, address: str, section: Optional[str] = None) -> bool:
        return self.freshness(address, section) == FRESH

    def has_stale_cache(self, address: str, section: Optional[str] = None) -> bool:
        return self.freshness(address, section) == STALE

    def freshness(self, address: str, section: Optional[str] = None) -> str:
        """Tier of the whole entry (last save) or of one section."""
        entry = self._lookup(cache_key(address))
        if entry is None:
            return MISSING
        if section is None:
            return self.tier(entry.timestamp)
        if section not in SECTIONS:
            raise ValueError(f"Unknown cache section {section!r}")
        record = getattr(entry, section)
        return self.tier(record.timestamp) if record is not None else MISSING

    def sections_needing_refresh(self, address: str) -> List[str]:
        return [s for s in SECTIONS if self.freshness(address, s) != FRESH]

    # ---------- clear ----------

    def clear(self, address: str) -> None:
        key = cache_key(address)
        self._memory.pop(key, None)
        try:
            self.store.remove(key)
        except Exception as e:
            logger.warning(f"Failed to clear cache for {key}: {e}")

    def clear_all(self) -> None:
        self._memory.clear()
        try:
            for key in self.store.keys():
                if key.startswith(CACHE_KEY_PREFIX):
                    self.store.remove(key)
        except Exception as e:
            logger.warning(f"Failed to clear all caches: {e}")

    def subscribe(self, callback) -> Subscription:
        return self.updates.subscribe(callback, replay=False)
