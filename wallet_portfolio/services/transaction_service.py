"""
Transaction history service
Incoming and outgoing asset transfers for a wallet, newest block first
"""
import asyncio
import logging
from typing import Dict, List

from wallet_portfolio.models import AssetTransferParams, Transaction
from wallet_portfolio.services.blockchain_service import AlchemyClient, hex_to_int

logger = logging.getLogger(__name__)


def map_transfer(transfer: Dict, direction: str) -> Transaction:
    value = transfer.get("value")
    metadata = transfer.get("metadata") or {}
    return Transaction(
        hash=transfer.get("hash") or transfer.get("uniqueId") or "",
        from_address=transfer.get("from") or "",
        to_address=transfer.get("to") or "",
        value=float(value) if isinstance(value, (int, float)) else 0.0,
        asset=transfer.get("asset") or "",
        category=transfer.get("category") or "",
        block_num=transfer.get("blockNum") or "0x0",
        direction=direction,
        timestamp=metadata.get("blockTimestamp"),
    )


class TransactionService:
    def __init__(self, alchemy: AlchemyClient):
        self.alchemy = alchemy

    async def get_transactions(self, wallet: str, params: AssetTransferParams = None) -> List[Transaction]:
        params = params or AssetTransferParams()
        incoming, outgoing = await asyncio.gather(
            self.alchemy.get_asset_transfers(wallet, params, is_from=False),
            self.alchemy.get_asset_transfers(wallet, params, is_from=True),
            return_exceptions=True
        )

        transactions: List[Transaction] = []
        for direction, transfers in (("in", incoming), ("out", outgoing)):
            if isinstance(transfers, Exception):
                logger.warning(f"Error fetching {direction} transfers for {wallet}: {transfers}")
                continue
            transactions.extend(map_transfer(t, direction) for t in transfers)

        transactions.sort(key=lambda tx: hex_to_int(tx.block_num), reverse=True)
        return transactions
