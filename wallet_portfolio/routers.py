# routers.py
from datetime import datetime

from fastapi import APIRouter, HTTPException, Request

from wallet_portfolio.dashboard import Dashboard
from wallet_portfolio.errors import RevokeError
from wallet_portfolio.models import RevokeAllRequest, RevokeRequest, WalletRequest
from wallet_portfolio.services.blockchain_service import is_address, normalize_address
from wallet_portfolio.services.cache_service import SECTIONS
from wallet_portfolio.services.nft_service import group_nfts_by_collection

api_router = APIRouter()


def _dashboard(request: Request) -> Dashboard:
    return request.app.state.dashboard


def _wallet(address: str) -> str:
    if not is_address(address):
        raise HTTPException(
            status_code=422,
            detail="Invalid Ethereum address format. Must be 42 characters starting with 0x"
        )
    return normalize_address(address)


def _entry_json(entry):
    return entry.to_json() if entry is not None else None


@api_router.get("/health")
async def health():
    return {"status": "ok", "timestamp": datetime.now().isoformat()}


@api_router.get("/gas")
async def get_gas_prices(request: Request):
    """Latest published gas prices"""
    return _dashboard(request).gas.current.to_json()


@api_router.post("/wallet/connect")
async def connect_wallet(request: Request, body: WalletRequest):
    dashboard = _dashboard(request)
    wallet = dashboard.wallet.connect(_wallet(body.wallet_address))
    return {"wallet_address": wallet}


@api_router.post("/wallet/disconnect")
async def disconnect_wallet(request: Request):
    """Forget the connected wallet and its cached portfolio"""
    _dashboard(request).wallet.disconnect()
    return {"wallet_address": None}


@api_router.get("/wallets/{address}/portfolio")
async def get_portfolio(request: Request, address: str):
    """Cached portfolio right away; non-fresh sections refresh in the background"""
    dashboard = _dashboard(request)
    wallet = _wallet(address)
    entry = await dashboard.portfolio.load(wallet)
    return {
        "wallet_address": wallet,
        "data": _entry_json(entry),
        "freshness": {s: dashboard.cache.freshness(wallet, s) for s in SECTIONS},
        "refreshing": dashboard.portfolio.pending(wallet)
    }


@api_router.post("/wallets/{address}/refresh/{section}")
async def refresh_section(request: Request, address: str, section: str):
    """Refresh one section now and return the updated entry"""
    if section not in SECTIONS:
        raise HTTPException(404, f"Unknown section {section}")
    dashboard = _dashboard(request)
    try:
        entry = await dashboard.portfolio.refresh(_wallet(address), section)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(500, str(e))
    return _entry_json(entry)


@api_router.get("/wallets/{address}/nfts")
async def get_nfts(request: Request, address: str, network: str = "eth-mainnet"):
    """Owned NFTs grouped by collection"""
    dashboard = _dashboard(request)
    nfts = await dashboard.nfts.fetch_owned_nfts(_wallet(address), network)
    return {
        "nfts": [nft.to_json() for nft in nfts],
        "collections": [c.to_json() for c in group_nfts_by_collection(nfts)]
    }


@api_router.get("/wallets/{address}/approvals")
async def get_approvals(request: Request, address: str):
    """Active ERC20 allowances granted to known spenders"""
    dashboard = _dashboard(request)
    approvals = await dashboard.approvals.scan(_wallet(address))
    return {"approvals": [a.to_json() for a in approvals]}


@api_router.post("/approvals/revoke")
async def revoke_approval(request: Request, body: RevokeRequest):
    dashboard = _dashboard(request)
    try:
        await dashboard.approvals.revoke(_wallet(body.wallet_address), body.token_address, body.spender)
    except RevokeError as e:
        raise HTTPException(400, str(e))
    remaining = dashboard.approvals.approvals_for(body.wallet_address)
    return {"revoked": True, "approvals": [a.to_json() for a in remaining]}


@api_router.post("/approvals/revoke-all")
async def revoke_all_approvals(request: Request, body: RevokeAllRequest):
    dashboard = _dashboard(request)
    try:
        await dashboard.approvals.revoke_all_for_token(
            _wallet(body.wallet_address), body.token_address, body.spenders
        )
    except RevokeError as e:
        raise HTTPException(400, str(e))
    remaining = dashboard.approvals.approvals_for(body.wallet_address)
    return {"revoked": True, "approvals": [a.to_json() for a in remaining]}


@api_router.delete("/wallets/{address}/cache")
async def clear_wallet_cache(request: Request, address: str):
    _dashboard(request).cache.clear(_wallet(address))
    return {"cleared": address.lower()}


@api_router.delete("/cache")
async def clear_all_caches(request: Request):
    _dashboard(request).cache.clear_all()
    return {"cleared": "all"}
