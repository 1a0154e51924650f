from __future__ import annotations

import asyncio

import pytest

from conftest import WALLET, FakeAlchemy, FakeHttp, FakePrices
from wallet_portfolio.errors import ProviderError
from wallet_portfolio.services.asset_service import AssetService
from wallet_portfolio.services.cache_service import PortfolioCache
from wallet_portfolio.services.nft_service import NFTAggregator
from wallet_portfolio.services.portfolio_service import PortfolioService
from wallet_portfolio.services.transaction_service import TransactionService
from wallet_portfolio.storage import MemoryKeyValueStore

TOKEN = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"


def _nft_url(settings):
    return f"https://eth-mainnet.g.alchemy.com/nft/v3/{settings.ALCHEMY_API_KEY}/getNFTsForOwner"


def _owned(token_id, floor=None):
    return {
        "contract": {"address": "0xc", "name": "Apes", "openSeaMetadata": {"floorPrice": floor}},
        "tokenId": token_id,
        "raw": {"metadata": {"image": "https://img"}},
    }


class Harness:
    def __init__(self, settings, clock, nft_response=None):
        self.alchemy = FakeAlchemy(
            balances=[{"contractAddress": TOKEN, "tokenBalance": hex(10 * 10 ** 6)}],
            metadata={TOKEN: {"symbol": "USDC", "name": "USD Coin", "decimals": 6}},
            eth_balance=1.234,
        )
        self.alchemy.transfers = {False: [{"hash": "0x1", "blockNum": "0x5"}], True: []}
        self.prices = FakePrices({"ETH": 2000.0, "USDC": 1.0, "POL": 0.5})
        self.http = FakeHttp({
            _nft_url(settings): nft_response if nft_response is not None else {"ownedNfts": [_owned("1", 2.0)]},
            f"{settings.OPENSEA_API_URL}/chain/ethereum/account/{WALLET}/nfts": ProviderError("HTTP 500"),
        })
        self.cache = PortfolioCache(MemoryKeyValueStore(), settings, clock=clock)
        self.service = PortfolioService(
            self.cache,
            AssetService(self.alchemy, self.prices, settings),
            NFTAggregator(self.http, settings),
            TransactionService(self.alchemy),
            self.prices,
        )


def test_refresh_assets_saves_totals_and_native_balance(settings, clock) -> None:
    h = Harness(settings, clock)
    entry = asyncio.run(h.service.refresh(WALLET, "assets"))

    assert entry.assets.total_value == pytest.approx(2478.0)
    assert entry.assets.balance == "1.23"
    assert [a.symbol for a in entry.assets.assets] == ["ETH", "USDC"]
    assert h.cache.freshness(WALLET, "assets") == "fresh"


def test_refresh_nfts_values_floors(settings, clock) -> None:
    h = Harness(settings, clock)
    entry = asyncio.run(h.service.refresh(WALLET, "nfts"))

    assert entry.nfts.nft_total_value == pytest.approx(4000.0)
    assert [c.name for c in entry.nfts.nft_collections] == ["Apes"]
    assert sorted(h.prices.calls) == ["ETH", "POL"]


def test_empty_nft_fetch_keeps_cached_nfts(settings, clock) -> None:
    h = Harness(settings, clock)
    asyncio.run(h.service.refresh(WALLET, "nfts"))
    h.http.routes[_nft_url(settings)] = {"ownedNfts": []}

    clock.advance(600)
    entry = asyncio.run(h.service.refresh(WALLET, "nfts"))

    assert [n.token_id for n in entry.nfts.nfts] == ["1"]
    assert h.cache.freshness(WALLET, "nfts") == "stale"


def test_nfts_without_floor_skip_price_lookup(settings, clock) -> None:
    h = Harness(settings, clock, nft_response={"ownedNfts": [_owned("1")]})
    entry = asyncio.run(h.service.refresh(WALLET, "nfts"))

    assert entry.nfts.nft_total_value == 0.0
    assert h.prices.calls == []


def test_unknown_section_is_rejected(settings, clock) -> None:
    h = Harness(settings, clock)
    with pytest.raises(ValueError):
        asyncio.run(h.service.refresh(WALLET, "balances"))


def test_load_serves_cache_and_refreshes_missing_sections(settings, clock) -> None:
    h = Harness(settings, clock)

    async def scenario():
        first = await h.service.load(WALLET)
        pending = h.service.pending(WALLET)
        await asyncio.gather(*h.service._tasks.values())
        return first, pending

    first, pending = asyncio.run(scenario())

    assert first is None
    assert sorted(pending) == ["assets", "nfts", "transactions"]
    assert h.cache.sections_needing_refresh(WALLET) == []
    assert h.service.pending(WALLET) == []


def test_load_skips_fresh_sections(settings, clock) -> None:
    h = Harness(settings, clock)

    async def scenario():
        await h.service.refresh(WALLET, "assets")
        await h.service.refresh(WALLET, "transactions")
        clock.advance(400)
        await h.service.refresh(WALLET, "transactions")
        entry = await h.service.load(WALLET)
        pending = h.service.pending(WALLET)
        await h.service.close()
        return entry, pending

    entry, pending = asyncio.run(scenario())

    # stale data is still served
    assert [a.symbol for a in entry.assets.assets] == ["ETH", "USDC"]
    assert sorted(pending) == ["assets", "nfts"]


def test_refresh_is_not_scheduled_twice(settings, clock) -> None:
    h = Harness(settings, clock)

    async def scenario():
        first = h.service.schedule_refresh(WALLET, "transactions")
        second = h.service.schedule_refresh(WALLET.upper().replace("0X", "0x"), "transactions")
        await first
        return first is second

    assert asyncio.run(scenario()) is True


def test_background_failure_is_logged_not_raised(settings, clock) -> None:
    h = Harness(settings, clock)

    async def failing(address, on_progress=None):
        raise ProviderError("assets unavailable")

    h.service.assets.load_assets = failing

    async def scenario():
        return await h.service.schedule_refresh(WALLET, "assets")

    assert asyncio.run(scenario()) is None
    assert h.cache.get(WALLET) is None
