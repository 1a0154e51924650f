"""
NFT service
Fetches owned NFTs from Alchemy with OpenSea as fallback and maps both
responses onto the NFT model.
"""
import logging
import re
from typing import Dict, List, Optional

from wallet_portfolio.config import NETWORK_LABELS, Settings, settings as default_settings
from wallet_portfolio.errors import ProviderError
from wallet_portfolio.models import NFT, NFTCollection
from wallet_portfolio.provider_chain import ProviderChain
from wallet_portfolio.services.blockchain_service import HttpClient, is_address

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def get_image_url(url: Optional[str], settings: Settings = default_settings) -> str:
    if not url:
        return settings.NFT_PLACEHOLDER_IMAGE
    if url.startswith("ipfs://"):
        return settings.IPFS_GATEWAY + url[len("ipfs://"):]
    if "ipfs" in url:
        return url.replace("ipfs://", settings.IPFS_GATEWAY)
    return url


def collection_slug(name: str) -> str:
    return _WHITESPACE.sub("-", name.lower())


def _network_label(network: str) -> str:
    return NETWORK_LABELS.get(network, network).lower()


def map_alchemy_nft(nft: Dict, owner: str, network: str = "eth-mainnet", settings: Settings = default_settings) -> NFT:
    """Handles both the v2 (id.tokenId, metadata) and v3 (tokenId, raw.metadata) shapes."""
    contract = nft.get("contract") or {}
    token_id = str((nft.get("id") or {}).get("tokenId") or nft.get("tokenId") or "")
    metadata = nft.get("metadata") or (nft.get("raw") or {}).get("metadata") or {}

    image = metadata.get("image") or metadata.get("image_url") or ""
    if not image and isinstance(nft.get("image"), dict):
        image = nft["image"].get("cachedUrl") or nft["image"].get("originalUrl") or ""

    opensea = contract.get("openSeaMetadata") or {}
    floor_price = opensea.get("floorPrice")

    return NFT(
        id=f"{contract.get('address', '')}-{token_id}",
        token_id=token_id,
        contract_address=contract.get("address", ""),
        name=metadata.get("name") or nft.get("name") or f"#{token_id}",
        description=metadata.get("description") or nft.get("description") or "",
        image_url=get_image_url(image, settings),
        collection_name=contract.get("name") or opensea.get("collectionName") or "Unknown Collection",
        collection_slug=opensea.get("collectionSlug"),
        floor_price=float(floor_price) if floor_price else None,
        floor_price_currency="ETH",
        network=_network_label(network),
        owner=owner,
    )


def map_opensea_nft(nft: Dict, owner: str, settings: Settings = default_settings) -> NFT:
    token_id = str(nft.get("identifier") or "")
    floor_price = nft.get("floor_price")

    return NFT(
        id=f"{nft.get('contract', '')}-{token_id}",
        token_id=token_id,
        contract_address=nft.get("contract", ""),
        name=nft.get("name") or f"#{token_id}",
        description=nft.get("description") or "",
        image_url=get_image_url(nft.get("image_url") or nft.get("image") or "", settings),
        collection_name=nft.get("collection") or "Unknown Collection",
        collection_slug=nft.get("collection_slug") or nft.get("collection"),
        floor_price=float(floor_price) if floor_price else None,
        floor_price_currency="ETH",
        network="ethereum",
        owner=owner,
    )


def group_nfts_by_collection(nfts: List[NFT]) -> List[NFTCollection]:
    groups: Dict[str, List[NFT]] = {}
    for nft in nfts:
        groups.setdefault(nft.collection_name, []).append(nft)

    collections = []
    for name, items in groups.items():
        first = items[0]
        collections.append(NFTCollection(
            name=name,
            slug=first.collection_slug or collection_slug(name),
            image_url=first.image_url,
            count=len(items),
            floor_price=first.floor_price,
        ))
    return collections


def nft_total_value(nfts: List[NFT], eth_usd: float, pol_usd: float) -> float:
    """USD value of all floor prices; non-ETH floors are treated as POL."""
    total = 0.0
    for nft in nfts:
        if not nft.floor_price:
            continue
        rate = eth_usd if nft.floor_price_currency == "ETH" else pol_usd
        total += nft.floor_price * rate
    return total


class NFTAggregator:
    def __init__(self, http: HttpClient, settings: Settings = default_settings):
        self.http = http
        self.settings = settings
        self.chain = ProviderChain(
            [self._from_alchemy, self._from_opensea],
            default=[],
            name="nfts",
        )

    async def fetch_owned_nfts(self, address: str, network: str = "eth-mainnet") -> List[NFT]:
        if not is_address(address):
            return []
        nfts = await self.chain.run(address.strip(), network)
        if not nfts:
            logger.warning(f"No NFTs from any provider for {address}")
        return nfts

    async def _from_alchemy(self, address: str, network: str) -> List[NFT]:
        if not self.settings.ALCHEMY_API_KEY:
            raise ProviderError("Alchemy API key not configured")

        base = f"https://{network}.g.alchemy.com/nft/v3/{self.settings.ALCHEMY_API_KEY}"
        params = {"owner": address, "withMetadata": "true", "pageSize": "100"}
        nfts: List[NFT] = []

        while True:
            data = await self.http.get_json(f"{base}/getNFTsForOwner", params=params)
            for item in (data or {}).get("ownedNfts") or []:
                nfts.append(map_alchemy_nft(item, address, network, self.settings))
            page_key = (data or {}).get("pageKey")
            if not page_key:
                break
            params["pageKey"] = page_key

        return nfts

    async def _from_opensea(self, address: str, network: str) -> List[NFT]:
        url = f"{self.settings.OPENSEA_API_URL}/chain/ethereum/account/{address}/nfts"
        headers = {"X-API-KEY": self.settings.OPENSEA_API_KEY} if self.settings.OPENSEA_API_KEY else None
        data = await self.http.get_json(url, headers=headers)
        return [map_opensea_nft(item, address, self.settings) for item in (data or {}).get("nfts") or []]
