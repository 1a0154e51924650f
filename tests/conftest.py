from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional, Tuple

import pytest

from wallet_portfolio.config import Settings
from wallet_portfolio.errors import ProviderError, RpcError
from wallet_portfolio.services.blockchain_service import hex_to_int, normalize_address

WALLET = "0x1111111111111111111111111111111111111111"


class FakeHttp:
    """Routes exact URLs to canned JSON, exceptions, or callables of the request body/params."""

    def __init__(self, routes: Optional[Dict[str, Any]] = None) -> None:
        self.routes: Dict[str, Any] = dict(routes or {})
        self.calls: List[Tuple[str, str, Any]] = []

    async def get_json(self, url: str, params=None, headers=None) -> Any:
        self.calls.append(("GET", url, params))
        return self._answer(url, params)

    async def post_json(self, url: str, payload: Any, headers=None) -> Any:
        self.calls.append(("POST", url, payload))
        return self._answer(url, payload)

    def _answer(self, url: str, arg: Any) -> Any:
        if url not in self.routes:
            raise ProviderError(f"no route for {url}")
        value = self.routes[url]
        if callable(value):
            value = value(arg)
        if isinstance(value, Exception):
            raise value
        return copy.deepcopy(value)

    def urls(self) -> List[str]:
        return [url for _method, url, _arg in self.calls]

    async def close(self) -> None:
        pass


class FakeAlchemy:
    def __init__(
        self,
        balances: Optional[List[Dict]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        allowances: Optional[Dict[Tuple[str, str], Any]] = None,
        eth_balance: Any = 0.0,
    ) -> None:
        self.balances = balances or []
        self.metadata = {normalize_address(k): v for k, v in (metadata or {}).items()}
        self.allowances = {(normalize_address(t), normalize_address(s)): v for (t, s), v in (allowances or {}).items()}
        self.eth_balance = eth_balance
        self.calls: List[Tuple[str, Any]] = []
        self.send_failures: Dict[str, Exception] = {}
        self.receipt_failures: Dict[str, Exception] = {}
        self.sent: List[Tuple[str, str, int]] = []
        self.transfers: Dict[bool, Any] = {False: [], True: []}

    async def get_held_tokens(self, wallet: str) -> List[Dict]:
        self.calls.append(("balances", wallet))
        if isinstance(self.balances, Exception):
            raise self.balances
        return [b for b in self.balances if hex_to_int(b.get("tokenBalance")) > 0]

    async def get_token_metadata(self, contract: str) -> Dict:
        self.calls.append(("metadata", contract))
        value = self.metadata.get(normalize_address(contract))
        if isinstance(value, Exception):
            raise value
        if value is None:
            raise ProviderError(f"no metadata for {contract}")
        return dict(value)

    async def get_eth_balance(self, wallet: str) -> float:
        self.calls.append(("eth_balance", wallet))
        if isinstance(self.eth_balance, Exception):
            raise self.eth_balance
        return self.eth_balance

    async def get_allowance(self, token: str, owner: str, spender: str) -> int:
        self.calls.append(("allowance", (normalize_address(token), normalize_address(spender))))
        value = self.allowances.get((normalize_address(token), normalize_address(spender)), 0)
        if isinstance(value, Exception):
            raise value
        return value

    async def send_approve(self, token: str, owner: str, spender: str, amount: int) -> str:
        self.calls.append(("approve", (token, spender, amount)))
        failure = self.send_failures.get(normalize_address(spender))
        if failure is not None:
            raise failure
        self.sent.append((token, spender, amount))
        return f"0xtx{len(self.sent)}"

    async def wait_for_receipt(self, tx_hash: str) -> Dict:
        self.calls.append(("receipt", tx_hash))
        failure = self.receipt_failures.get(tx_hash)
        if failure is not None:
            raise failure
        return {"transactionHash": tx_hash, "status": "0x1"}

    async def get_asset_transfers(self, wallet: str, params, is_from: bool = False) -> List[Dict]:
        value = self.transfers[is_from]
        if isinstance(value, Exception):
            raise value
        return list(value)

    def count(self, kind: str) -> int:
        return sum(1 for name, _ in self.calls if name == kind)


class FakePrices:
    def __init__(self, prices: Optional[Dict[str, Any]] = None) -> None:
        self.prices = prices or {}
        self.calls: List[str] = []

    async def get_usd_price(self, symbol: str, contract_address: Optional[str] = None) -> float:
        self.calls.append(symbol)
        value = self.prices.get(symbol, 0.0)
        if isinstance(value, Exception):
            raise value
        return value


class Clock:
    def __init__(self, now_ms: int = 1_700_000_000_000) -> None:
        self.now = now_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


@pytest.fixture
def settings() -> Settings:
    return Settings(ALCHEMY_API_KEY="test-key", CACHE_DIR="unused")


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def rpc_error() -> RpcError:
    return RpcError("eth_call", "execution reverted")
