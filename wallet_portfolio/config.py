# config.py
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    ALCHEMY_API_KEY: str = ""
    ALCHEMY_NETWORK: str = "eth-mainnet"
    ALCHEMY_CORE_URL: str = ""
    ALCHEMY_NFT_URL: str = ""
    ALCHEMY_PRICE_URL: str = ""

    OPENSEA_API_URL: str = "https://api.opensea.io/api/v2"
    OPENSEA_API_KEY: str = ""

    BLOCKNATIVE_URL: str = "https://api.blocknative.com/gasprices/blockprices"
    BLOCKNATIVE_API_KEY: str = ""
    ETHGASSTATION_URL: str = "https://ethgasstation.info/api/ethgasAPI.json"
    OWLRACLE_URL: str = "https://api.owlracle.info/v1/eth"
    SOLANA_RPC_URL: str = "https://api.mainnet-beta.solana.com"

    COINGECKO_URL: str = "https://api.coingecko.com/api/v3/simple/price"
    IPFS_GATEWAY: str = "https://ipfs.io/ipfs/"
    NFT_PLACEHOLDER_IMAGE: str = "/assets/images/placeholder-nft.png"

    CACHE_DIR: str = ".cache/portfolio"
    CACHE_FRESH_SECONDS: int = 5 * 60
    CACHE_MAX_AGE_SECONDS: int = 30 * 60

    GAS_REFRESH_SECONDS: float = 30.0
    SESSION_TIMEOUT_MINUTES: int = 30

    RECEIPT_POLL_SECONDS: float = 2.0
    RECEIPT_TIMEOUT_SECONDS: float = 300.0

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        base = f"https://{self.ALCHEMY_NETWORK}.g.alchemy.com"
        if not self.ALCHEMY_CORE_URL:
            self.ALCHEMY_CORE_URL = f"{base}/v2/{self.ALCHEMY_API_KEY}"
        if not self.ALCHEMY_NFT_URL:
            self.ALCHEMY_NFT_URL = f"{base}/nft/v3/{self.ALCHEMY_API_KEY}"
        if not self.ALCHEMY_PRICE_URL:
            self.ALCHEMY_PRICE_URL = f"https://api.g.alchemy.com/prices/v1/{self.ALCHEMY_API_KEY}/tokens/by-address"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()

CACHE_KEY_PREFIX = "portfolio_cache_"

# Display labels only, never used for authorization
KNOWN_SPENDERS = {
    "0x7a250d5630b4cf539739df2c5dacb4c659f2488d": "Uniswap V2 Router",
    "0xe592427a0aece92de3edee1f18e0157c05861564": "Uniswap V3 Router",
    "0xd9e1ce17f2641f24ae83637ab66a2cca9c378b9f": "SushiSwap Router",
    "0x1111111254fb6c44bac0bed2854e76f90643097d": "1inch Router",
    "0x881d40237659c251811cec9c364ef91dc08d300c": "Metamask Swap",
    "0xdef1c0ded9bec7f1a1670819833240f027b25eff": "0x Protocol",
}

COINGECKO_IDS = {
    "ETH": "ethereum",
    "WETH": "weth",
    "USDC": "usd-coin",
    "USDT": "tether",
    "DAI": "dai",
    "BUSD": "binance-usd",
    "WBTC": "wrapped-bitcoin",
    "POL": "polygon-ecosystem-token",
    "MATIC": "matic-network",
    "SOL": "solana",
}

STABLECOINS = {
    "usdc": "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48",
    "usdt": "0xdac17f958d2ee523a2206206994597c13d831ec7",
    "dai": "0x6b175474e89094c44da98b954eedeac495271d0f",
}

NETWORK_LABELS = {
    "eth-mainnet": "Ethereum",
    "polygon-mainnet": "Polygon",
    "arb-mainnet": "Arbitrum",
    "opt-mainnet": "Optimism",
    "base-mainnet": "Base",
}

DEFAULT_ETH_GAS = {"slow": 20, "standard": 30, "fast": 40, "unit": "Gwei"}
DEFAULT_SOLANA_GAS = {"price": 0.000005, "unit": "SOL"}
