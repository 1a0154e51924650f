# models.py
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class PortfolioModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class WalletRequest(BaseModel):
    wallet_address: str


class RevokeRequest(BaseModel):
    wallet_address: str
    token_address: str
    spender: str


class RevokeAllRequest(BaseModel):
    wallet_address: str
    token_address: str
    spenders: List[str]


class AssetTransferParams(BaseModel):
    fromBlock: str = "0x0"
    toBlock: str = "latest"
    category: List[str] = ["external", "erc20", "erc721", "erc1155"]
    excludeZeroValue: bool = True
    maxCount: str = "0x3e8"  # 1000 in hex


class Asset(PortfolioModel):
    name: str
    symbol: str
    percentage: float = 0.0
    network: str = "Ethereum"
    price: float = 0.0
    balance: float = 0.0
    value: float = 0.0
    change: float = 0.0
    change_value: float = Field(0.0, alias="changeValue")
    logo: Optional[str] = None
    contract_address: Optional[str] = Field(None, alias="contractAddress")


class TokenApproval(PortfolioModel):
    token_address: str = Field(alias="tokenAddress")
    token_symbol: str = Field(alias="tokenSymbol")
    token_name: str = Field(alias="tokenName")
    token_logo: Optional[str] = Field(None, alias="tokenLogo")
    spender: str
    spender_name: str = Field(alias="spenderName")
    allowance: str
    allowance_formatted: str = Field(alias="allowanceFormatted")
    network: str = "Ethereum"


class NFT(PortfolioModel):
    id: str
    token_id: str = Field(alias="tokenId")
    contract_address: str = Field(alias="contractAddress")
    name: str
    description: str = ""
    image_url: str = Field(alias="imageUrl")
    collection_name: str = Field(alias="collectionName")
    collection_slug: Optional[str] = Field(None, alias="collectionSlug")
    floor_price: Optional[float] = Field(None, alias="floorPrice")
    floor_price_currency: Optional[str] = Field(None, alias="floorPriceCurrency")
    network: str = "ethereum"
    owner: str


class NFTCollection(PortfolioModel):
    name: str
    slug: str
    image_url: Optional[str] = Field(None, alias="imageUrl")
    count: int
    floor_price: Optional[float] = Field(None, alias="floorPrice")


class Transaction(PortfolioModel):
    hash: str
    from_address: str = Field("", alias="from")
    to_address: str = Field("", alias="to")
    value: float = 0.0
    asset: str = ""
    category: str = ""
    block_num: str = Field("0x0", alias="blockNum")
    direction: str = "in"
    timestamp: Optional[str] = None


class EthGas(PortfolioModel):
    slow: float = 0
    standard: float = 0
    fast: float = 0
    unit: str = "Gwei"


class SolanaGas(PortfolioModel):
    price: float = 0
    unit: str = "SOL"


class GasPrice(PortfolioModel):
    eth: EthGas = Field(default_factory=EthGas)
    solana: SolanaGas = Field(default_factory=SolanaGas)


# Cache records, timestamps are unix millis

class CachedAssets(PortfolioModel):
    assets: List[Asset] = []
    total_value: float = Field(0.0, alias="totalValue")
    balance: str = "0"
    timestamp: int = 0


class CachedTransactions(PortfolioModel):
    transactions: List[Transaction] = []
    timestamp: int = 0


class CachedNFTs(PortfolioModel):
    nfts: List[NFT] = []
    nft_collections: List[NFTCollection] = Field(default_factory=list, alias="nftCollections")
    nft_total_value: float = Field(0.0, alias="nftTotalValue")
    timestamp: int = 0


class CacheEntry(PortfolioModel):
    assets: Optional[CachedAssets] = None
    transactions: Optional[CachedTransactions] = None
    nfts: Optional[CachedNFTs] = None
    timestamp: int = 0
