from __future__ import annotations

import asyncio

import pytest

from conftest import WALLET, FakeHttp
from wallet_portfolio.errors import ProviderError
from wallet_portfolio.models import NFT
from wallet_portfolio.services.nft_service import (
    NFTAggregator,
    collection_slug,
    get_image_url,
    group_nfts_by_collection,
    map_alchemy_nft,
    nft_total_value,
)


def _alchemy_url(settings, network="eth-mainnet"):
    return f"https://{network}.g.alchemy.com/nft/v3/{settings.ALCHEMY_API_KEY}/getNFTsForOwner"


def _opensea_url(settings):
    return f"{settings.OPENSEA_API_URL}/chain/ethereum/account/{WALLET}/nfts"


def _owned(contract, name, token_id, image="ipfs://img", floor=None):
    return {
        "contract": {"address": contract, "name": name, "openSeaMetadata": {"floorPrice": floor}},
        "tokenId": token_id,
        "raw": {"metadata": {"name": f"{name} #{token_id}", "image": image}},
    }


def _nft(collection, token_id, floor=None, currency="ETH"):
    return NFT(
        id=f"0x{collection}-{token_id}",
        token_id=token_id,
        contract_address=f"0x{collection}",
        name=f"#{token_id}",
        image_url=f"https://img/{collection}/{token_id}",
        collection_name=collection,
        floor_price=floor,
        floor_price_currency=currency,
        owner=WALLET,
    )


@pytest.mark.parametrize(
    "url, expected",
    [
        ("ipfs://abc123", "https://ipfs.io/ipfs/abc123"),
        ("", "/assets/images/placeholder-nft.png"),
        (None, "/assets/images/placeholder-nft.png"),
        ("https://example.com/a.png", "https://example.com/a.png"),
    ],
)
def test_get_image_url(settings, url, expected) -> None:
    assert get_image_url(url, settings) == expected


def test_collection_slug_collapses_whitespace() -> None:
    assert collection_slug("Bored  Ape Yacht\tClub") == "bored-ape-yacht-club"


def test_map_alchemy_nft_defaults_name_to_token_id(settings) -> None:
    nft = map_alchemy_nft(
        {"contract": {"address": "0xc"}, "tokenId": "42", "raw": {"metadata": {}}},
        WALLET, settings=settings,
    )
    assert nft.name == "#42"
    assert nft.id == "0xc-42"
    assert nft.collection_name == "Unknown Collection"
    assert nft.image_url == settings.NFT_PLACEHOLDER_IMAGE
    assert nft.network == "ethereum"


def test_map_alchemy_nft_reads_v2_shape(settings) -> None:
    nft = map_alchemy_nft(
        {
            "contract": {"address": "0xc", "name": "Punks"},
            "id": {"tokenId": "7"},
            "metadata": {"name": "Punk 7", "image": "ipfs://p7"},
        },
        WALLET, settings=settings,
    )
    assert nft.token_id == "7"
    assert nft.name == "Punk 7"
    assert nft.image_url == "https://ipfs.io/ipfs/p7"


def test_grouping_takes_display_fields_from_first_member() -> None:
    nfts = [_nft("Apes", "1", floor=10.0), _nft("Punks", "2"), _nft("Apes", "3", floor=99.0)]
    collections = group_nfts_by_collection(nfts)

    assert [(c.name, c.count) for c in collections] == [("Apes", 2), ("Punks", 1)]
    assert collections[0].slug == "apes"
    assert collections[0].image_url == "https://img/Apes/1"
    assert collections[0].floor_price == 10.0


def test_nft_total_value_prices_floors() -> None:
    nfts = [_nft("A", "1", floor=2.0), _nft("B", "2", floor=100.0, currency="POL"), _nft("C", "3")]
    assert nft_total_value(nfts, eth_usd=3000.0, pol_usd=0.5) == pytest.approx(6050.0)


def test_invalid_address_makes_no_calls(settings) -> None:
    http = FakeHttp()
    assert asyncio.run(NFTAggregator(http, settings).fetch_owned_nfts("not-an-address")) == []
    assert http.calls == []


def test_alchemy_pages_are_followed(settings) -> None:
    pages = {
        None: {"ownedNfts": [_owned("0xa", "Apes", "1")], "pageKey": "p2"},
        "p2": {"ownedNfts": [_owned("0xa", "Apes", "2", floor=1.5)]},
    }
    http = FakeHttp({_alchemy_url(settings): lambda params: pages[params.get("pageKey")]})

    nfts = asyncio.run(NFTAggregator(http, settings).fetch_owned_nfts(WALLET))

    assert [n.token_id for n in nfts] == ["1", "2"]
    assert nfts[0].image_url == "https://ipfs.io/ipfs/img"
    assert nfts[1].floor_price == 1.5
    assert len(http.calls) == 2


def test_opensea_fallback_when_alchemy_fails(settings) -> None:
    http = FakeHttp({
        _alchemy_url(settings): ProviderError("HTTP 500"),
        _opensea_url(settings): {"nfts": [{
            "identifier": "9",
            "contract": "0xb",
            "collection": "bears",
            "image_url": "https://img/9",
        }]},
    })
    aggregator = NFTAggregator(http, settings)
    nfts = asyncio.run(aggregator.fetch_owned_nfts(WALLET))

    assert [(n.token_id, n.collection_name, n.name) for n in nfts] == [("9", "bears", "#9")]
    assert aggregator.chain.last_source == "_from_opensea"


def test_empty_alchemy_result_falls_through(settings) -> None:
    http = FakeHttp({
        _alchemy_url(settings): {"ownedNfts": []},
        _opensea_url(settings): {"nfts": []},
    })
    assert asyncio.run(NFTAggregator(http, settings).fetch_owned_nfts(WALLET)) == []
    assert http.urls() == [_alchemy_url(settings), _opensea_url(settings)]


def test_both_providers_failing_returns_empty_list(settings) -> None:
    http = FakeHttp({
        _alchemy_url(settings): ProviderError("HTTP 500"),
        _opensea_url(settings): ProviderError("HTTP 429"),
    })
    assert asyncio.run(NFTAggregator(http, settings).fetch_owned_nfts(WALLET)) == []


def test_missing_alchemy_key_skips_to_opensea(settings) -> None:
    settings.ALCHEMY_API_KEY = ""
    http = FakeHttp({_opensea_url(settings): {"nfts": [{"identifier": "1", "contract": "0xb"}]}})
    nfts = asyncio.run(NFTAggregator(http, settings).fetch_owned_nfts(WALLET))

    assert len(nfts) == 1
    assert http.urls() == [_opensea_url(settings)]
