"""
Blockchain data fetching service
Handles all interactions with HTTP data providers and JSON-RPC nodes (Alchemy)
"""
import asyncio
import itertools
import logging
import re
from typing import Any, Dict, List, Optional

import aiohttp

from wallet_portfolio.config import Settings, settings as default_settings
from wallet_portfolio.errors import ProviderError, RpcError
from wallet_portfolio.models import AssetTransferParams

logger = logging.getLogger(__name__)

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

# ERC20 selectors
ALLOWANCE_SELECTOR = "0xdd62ed3e"  # allowance(address,address)
APPROVE_SELECTOR = "0x095ea7b3"    # approve(address,uint256)


def normalize_address(address: str) -> str:
    return (address or "").strip().lower()


def is_address(address: Optional[str]) -> bool:
    return bool(address) and bool(ADDRESS_RE.match(address.strip()))


def short_address(address: str) -> str:
    return f"{address[:6]}...{address[-4:]}"


def hex_to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    s = str(value).strip().lower()
    if s in ("", "0x"):
        return 0
    try:
        return int(s, 16) if s.startswith("0x") else int(s)
    except ValueError:
        return 0


def token_decimals(metadata: Dict) -> int:
    """ERC20 decimals from token metadata, 18 when absent. Raises ValueError on garbage."""
    decimals = metadata.get("decimals")
    if decimals is None:
        return 18
    try:
        return int(decimals)
    except (TypeError, ValueError) as e:
        raise ValueError(f"invalid decimals {decimals!r}") from e


def _encode_address(address: str) -> str:
    return normalize_address(address).replace("0x", "").rjust(64, "0")


def _encode_uint(value: int) -> str:
    return format(value, "x").rjust(64, "0")


class HttpClient:
    """
    Thin JSON-over-HTTP wrapper around one aiohttp session.
    Non-200 answers raise ProviderError; no retries, transport timeouts only.
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def get_json(self, url: str, params: Optional[Dict] = None, headers: Optional[Dict] = None) -> Any:
        session = self._get_session()
        async with session.get(url, params=params, headers=headers) as resp:
            if resp.status != 200:
                raise ProviderError(f"GET {url} returned HTTP {resp.status}")
            return await resp.json(content_type=None)

    async def post_json(self, url: str, payload: Any, headers: Optional[Dict] = None) -> Any:
        session = self._get_session()
        async with session.post(url, json=payload, headers=headers) as resp:
            if resp.status != 200:
                raise ProviderError(f"POST {url} returned HTTP {resp.status}")
            return await resp.json(content_type=None)

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()


class RpcClient:
    """JSON-RPC 2.0 over HttpClient."""

    _ids = itertools.count(1)

    def __init__(self, http: HttpClient, url: str):
        self.http = http
        self.url = url

    async def call(self, method: str, params: Optional[List] = None) -> Any:
        payload = {
            "id": next(self._ids),
            "jsonrpc": "2.0",
            "method": method,
            "params": params if params is not None else []
        }
        data = await self.http.post_json(self.url, payload)

        if not isinstance(data, dict):
            raise ProviderError(f"{method}: malformed JSON-RPC response")
        if data.get("error"):
            error = data["error"]
            if isinstance(error, dict):
                raise RpcError(method, error.get("message", "unknown error"), error.get("code"))
            raise RpcError(method, str(error))
        if "result" not in data:
            raise ProviderError(f"{method}: response has no result")
        return data["result"]


class AlchemyClient:
    """
    Wallet-side capabilities: balances, token metadata, allowances and
    approval submission. Signing is left to the node behind the endpoint.
    """

    def __init__(self, http: HttpClient, settings: Settings = default_settings):
        self.settings = settings
        self.rpc = RpcClient(http, settings.ALCHEMY_CORE_URL)

    async def get_token_balances(self, wallet: str) -> List[Dict]:
        result = await self.rpc.call("alchemy_getTokenBalances", [wallet, "erc20"])
        return (result or {}).get("tokenBalances", [])

    async def get_held_tokens(self, wallet: str) -> List[Dict]:
        balances = await self.get_token_balances(wallet)
        return [b for b in balances if hex_to_int(b.get("tokenBalance")) > 0]

    async def get_token_metadata(self, contract_address: str) -> Dict:
        result = await self.rpc.call("alchemy_getTokenMetadata", [contract_address])
        if not isinstance(result, dict):
            raise ProviderError(f"no metadata for {contract_address}")
        return result

    async def get_eth_balance(self, wallet: str) -> float:
        balance_hex = await self.rpc.call("eth_getBalance", [wallet, "latest"])
        balance_wei = hex_to_int(balance_hex)
        return balance_wei / (10 ** 18)

    async def get_allowance(self, token: str, owner: str, spender: str) -> int:
        data = ALLOWANCE_SELECTOR + _encode_address(owner) + _encode_address(spender)
        result = await self.rpc.call("eth_call", [{"to": token, "data": data}, "latest"])
        return hex_to_int(result)

    async def send_approve(self, token: str, owner: str, spender: str, amount: int) -> str:
        data = APPROVE_SELECTOR + _encode_address(spender) + _encode_uint(amount)
        tx_hash = await self.rpc.call("eth_sendTransaction", [{"from": owner, "to": token, "data": data}])
        logger.info(f"approve({spender}, {amount}) sent on {token}: {tx_hash}")
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str) -> Dict:
        """Poll until the transaction is mined; reverted receipts raise RpcError."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.RECEIPT_TIMEOUT_SECONDS

        while True:
            receipt = await self.rpc.call("eth_getTransactionReceipt", [tx_hash])
            if receipt:
                if hex_to_int(receipt.get("status", "0x1")) == 0:
                    raise RpcError("eth_getTransactionReceipt", f"transaction {tx_hash} reverted")
                return receipt
            if loop.time() >= deadline:
                raise RpcError("eth_getTransactionReceipt", f"transaction {tx_hash} not confirmed in time")
            await asyncio.sleep(self.settings.RECEIPT_POLL_SECONDS)

    async def get_asset_transfers(self, wallet: str, params: AssetTransferParams, is_from: bool = False) -> List[Dict]:
        query = {
            "fromBlock": params.fromBlock,
            "toBlock": params.toBlock,
            "excludeZeroValue": params.excludeZeroValue,
            "maxCount": params.maxCount,
            "category": params.category,
            "withMetadata": True
        }
        key = "fromAddress" if is_from else "toAddress"
        query[key] = wallet

        result = await self.rpc.call("alchemy_getAssetTransfers", [query])
        transfers = list(result.get("transfers", []))
        page_key = result.get("pageKey")

        while page_key:
            query["pageKey"] = page_key
            result = await self.rpc.call("alchemy_getAssetTransfers", [query])
            transfers.extend(result.get("transfers", []))
            page_key = result.get("pageKey")

        return transfers
