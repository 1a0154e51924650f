"""
Gas price service
Publishes ETH and Solana gas prices to subscribers, refreshed on a fixed interval.
ETH goes through three providers (Blocknative, ethgasstation, Owlracle),
Solana through recent prioritization fees.
"""
import asyncio
import logging
import math
from typing import Any, Callable, Dict, Optional

from wallet_portfolio.config import DEFAULT_ETH_GAS, DEFAULT_SOLANA_GAS, Settings, settings as default_settings
from wallet_portfolio.models import EthGas, GasPrice, SolanaGas
from wallet_portfolio.observable import Subscription, ValueHolder
from wallet_portfolio.provider_chain import ProviderChain
from wallet_portfolio.services.blockchain_service import HttpClient, RpcClient

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000


def _round(value: Any) -> int:
    # half-up, matches how the dashboard displayed gas
    return int(math.floor(float(value) + 0.5))


def map_blocknative(data: Dict) -> Optional[Dict]:
    block_prices = (data or {}).get("blockPrices") or []
    if not block_prices:
        return None
    prices = block_prices[0].get("estimatedPrices") or []
    if len(prices) < 3:
        return None
    return {
        "slow": _round(prices[0].get("price") or 0),
        "standard": _round(prices[1].get("price") or 0),
        "fast": _round(prices[2].get("price") or 0),
        "unit": "Gwei"
    }


def map_ethgasstation(data: Dict) -> Optional[Dict]:
    # ethgasstation reports in tenths of a Gwei
    if not data or not data.get("safe"):
        return None
    return {
        "slow": _round((data.get("safe") or 0) / 10) or DEFAULT_ETH_GAS["slow"],
        "standard": _round((data.get("average") or 0) / 10) or DEFAULT_ETH_GAS["standard"],
        "fast": _round((data.get("fast") or 0) / 10) or DEFAULT_ETH_GAS["fast"],
        "unit": "Gwei"
    }


def map_owlracle(data: Dict) -> Optional[Dict]:
    speeds = (data or {}).get("speeds")
    if not speeds:
        return None

    def speed(i: int, fallback: int) -> int:
        if i < len(speeds) and speeds[i].get("gasPrice"):
            return _round(speeds[i]["gasPrice"])
        return fallback

    return {
        "slow": speed(0, DEFAULT_ETH_GAS["slow"]),
        "standard": speed(1, DEFAULT_ETH_GAS["standard"]),
        "fast": speed(2, DEFAULT_ETH_GAS["fast"]),
        "unit": "Gwei"
    }


def map_solana_fees(result: Any) -> Optional[Dict]:
    """Average prioritization fee, micro-lamports -> SOL."""
    if not result:
        return None
    fees = [(sample or {}).get("prioritizationFee") or 0 for sample in result]
    avg_fee = sum(fees) / len(fees)
    price = avg_fee / LAMPORTS_PER_SOL
    return {"price": price or DEFAULT_SOLANA_GAS["price"], "unit": "SOL"}


class GasPriceAggregator:
    def __init__(self, http: HttpClient, settings: Settings = default_settings):
        self.http = http
        self.settings = settings
        self.gas_price: ValueHolder[GasPrice] = ValueHolder(GasPrice())
        self.solana_rpc = RpcClient(http, settings.SOLANA_RPC_URL)

        self.eth_chain = ProviderChain(
            [self._from_blocknative, self._from_ethgasstation, self._from_owlracle],
            default=DEFAULT_ETH_GAS,
            name="eth-gas",
        )
        self.solana_chain = ProviderChain(
            [self._from_solana_rpc],
            default=DEFAULT_SOLANA_GAS,
            name="solana-gas",
        )
        self._task: Optional[asyncio.Task] = None

    @property
    def current(self) -> GasPrice:
        return self.gas_price.value

    def subscribe(self, callback: Callable[[GasPrice], Any]) -> Subscription:
        return self.gas_price.subscribe(callback)

    async def _from_blocknative(self) -> Optional[Dict]:
        headers = {"Authorization": self.settings.BLOCKNATIVE_API_KEY} if self.settings.BLOCKNATIVE_API_KEY else None
        data = await self.http.get_json(self.settings.BLOCKNATIVE_URL, headers=headers)
        return map_blocknative(data)

    async def _from_ethgasstation(self) -> Optional[Dict]:
        data = await self.http.get_json(self.settings.ETHGASSTATION_URL)
        return map_ethgasstation(data)

    async def _from_owlracle(self) -> Optional[Dict]:
        data = await self.http.get_json(self.settings.OWLRACLE_URL)
        return map_owlracle(data)

    async def _from_solana_rpc(self) -> Optional[Dict]:
        result = await self.solana_rpc.call("getRecentPrioritizationFees", [])
        return map_solana_fees(result)

    async def fetch_eth_gas_price(self) -> EthGas:
        return EthGas(**await self.eth_chain.run())

    async def fetch_solana_gas_price(self) -> SolanaGas:
        return SolanaGas(**await self.solana_chain.run())

    async def fetch_once(self) -> GasPrice:
        """Fetch both legs concurrently and publish the merged value."""
        eth, solana = await asyncio.gather(
            self.fetch_eth_gas_price(),
            self.fetch_solana_gas_price(),
            return_exceptions=True
        )
        if isinstance(eth, Exception):
            logger.warning(f"ETH gas leg failed: {eth}")
            eth = EthGas(**DEFAULT_ETH_GAS)
        if isinstance(solana, Exception):
            logger.warning(f"Solana gas leg failed: {solana}")
            solana = SolanaGas(**DEFAULT_SOLANA_GAS)

        gas_price = GasPrice(eth=eth, solana=solana)
        self.gas_price.publish(gas_price)
        return gas_price

    async def _run(self) -> None:
        while True:
            await self.fetch_once()
            await asyncio.sleep(self.settings.GAS_REFRESH_SECONDS)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
