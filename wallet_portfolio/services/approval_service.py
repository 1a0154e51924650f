"""
Token approval service
Scans ERC20 allowances granted by a wallet to known spender contracts
and revokes them on request.
"""
import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional

from wallet_portfolio.config import KNOWN_SPENDERS, NETWORK_LABELS, Settings, settings as default_settings
from wallet_portfolio.errors import RevokeError
from wallet_portfolio.models import TokenApproval
from wallet_portfolio.services.blockchain_service import (
    AlchemyClient, hex_to_int, normalize_address, short_address, token_decimals
)

logger = logging.getLogger(__name__)


def format_units(raw: int, decimals: int) -> str:
    """Exact decimal rendering, always with a fractional part ("1.0", "0.000001")."""
    raw = int(raw)
    sign = "-" if raw < 0 else ""
    raw = abs(raw)
    if decimals <= 0:
        return f"{sign}{raw}.0"
    scale = 10 ** decimals
    whole, frac = divmod(raw, scale)
    frac_str = str(frac).rjust(decimals, "0").rstrip("0") or "0"
    return f"{sign}{whole}.{frac_str}"


def format_allowance(amount: str, decimals: int = 18) -> str:
    try:
        num = Decimal(format_units(int(amount), decimals))
    except (ValueError, TypeError, InvalidOperation):
        return "0"

    if num >= Decimal(1e9):
        return f"{num / Decimal(1e9):.2f}B"
    if num >= Decimal(1e6):
        return f"{num / Decimal(1e6):.2f}M"
    if num >= Decimal(1e3):
        return f"{num / Decimal(1e3):.2f}K"
    if num >= 1:
        return f"{num:.2f}"
    return f"{num:.6f}"


def pair_key(token: str, spender: str) -> str:
    return f"{normalize_address(token)}-{normalize_address(spender)}"



class ApprovalScanner:
    def __init__(
        self,
        alchemy: AlchemyClient,
        spender_names: Optional[Dict[str, str]] = None,
        settings: Settings = default_settings,
    ):
        self.alchemy = alchemy
        self.spender_names = {normalize_address(k): v for k, v in (spender_names or KNOWN_SPENDERS).items()}
        self.network = NETWORK_LABELS.get(settings.ALCHEMY_NETWORK, settings.ALCHEMY_NETWORK)
        # last scan result per wallet
        self._approvals: Dict[str, List[TokenApproval]] = {}

    def spender_label(self, spender: str) -> str:
        return self.spender_names.get(normalize_address(spender)) or short_address(spender)

    def approvals_for(self, wallet: str) -> List[TokenApproval]:
        return list(self._approvals.get(normalize_address(wallet), []))

    async def scan(self, wallet: str, known_spenders: Optional[Iterable[str]] = None) -> List[TokenApproval]:
        """
        Check every held token against every known spender. Each
        (token, spender) pair is queried at most once; pairs or tokens that
        fail are logged and skipped.
        """
        spenders = [normalize_address(s) for s in (known_spenders if known_spenders is not None else self.spender_names)]

        try:
            tokens = await self.alchemy.get_held_tokens(wallet)
        except Exception as e:
            logger.warning(f"Error fetching token balances for {wallet}: {e}")
            self._approvals[normalize_address(wallet)] = []
            return []

        checked = set()
        approvals: List[TokenApproval] = []

        for token in tokens:
            contract = token.get("contractAddress", "")
            if hex_to_int(token.get("tokenBalance")) <= 0:
                continue

            try:
                metadata = await self.alchemy.get_token_metadata(contract)
                decimals = token_decimals(metadata)
            except Exception as e:
                logger.warning(f"Failed to process token {contract}: {e}")
                continue

            symbol = metadata.get("symbol") or "UNKNOWN"
            name = metadata.get("name") or symbol

            for spender in spenders:
                key = pair_key(contract, spender)
                if key in checked:
                    continue
                checked.add(key)

                try:
                    allowance = await self.alchemy.get_allowance(contract, wallet, spender)
                except Exception as e:
                    logger.warning(f"Failed to check approval for {contract} -> {spender}: {e}")
                    continue

                if allowance <= 0:
                    continue

                approvals.append(TokenApproval(
                    token_address=contract,
                    token_symbol=symbol,
                    token_name=name,
                    token_logo=metadata.get("logo") or None,
                    spender=spender,
                    spender_name=self.spender_label(spender),
                    allowance=str(allowance),
                    allowance_formatted=format_units(allowance, decimals),
                    network=self.network,
                ))

        self._approvals[normalize_address(wallet)] = approvals
        return list(approvals)

    async def revoke(self, wallet: str, token: str, spender: str) -> bool:
        """Set one allowance to zero and wait for confirmation."""
        try:
            tx_hash = await self.alchemy.send_approve(token, wallet, spender, 0)
            await self.alchemy.wait_for_receipt(tx_hash)
        except Exception as e:
            logger.error(f"Error revoking approval {token} -> {spender}: {e}")
            raise RevokeError(str(e) or "Failed to revoke approval") from e

        logger.info(f"Approval revoked: {token} -> {spender}")
        self._forget(wallet, token, [spender])
        return True

    async def revoke_all_for_token(self, wallet: str, token: str, spenders: List[str]) -> bool:
        """
        Submit every revoke at once, then wait for all confirmations.
        Confirmed revokes are forgotten even when others fail; the first
        failure is raised once every submission has settled.
        """
        sent = await asyncio.gather(
            *(self.alchemy.send_approve(token, wallet, spender, 0) for spender in spenders),
            return_exceptions=True
        )
        failures = [(spender, r) for spender, r in zip(spenders, sent) if isinstance(r, BaseException)]
        submitted = [(spender, r) for spender, r in zip(spenders, sent) if not isinstance(r, BaseException)]
        logger.info(f"Revoke transactions sent: {[tx_hash for _, tx_hash in submitted]}")

        receipts = await asyncio.gather(
            *(self.alchemy.wait_for_receipt(tx_hash) for _, tx_hash in submitted),
            return_exceptions=True
        )
        confirmed = []
        for (spender, _), receipt in zip(submitted, receipts):
            if isinstance(receipt, BaseException):
                failures.append((spender, receipt))
            else:
                confirmed.append(spender)

        self._forget(wallet, token, confirmed)

        if failures:
            for spender, error in failures:
                logger.error(f"Error revoking approval {token} -> {spender}: {error}")
            error = failures[0][1]
            raise RevokeError(str(error) or "Failed to revoke approvals") from error

        logger.info(f"All approvals revoked for {token}")
        return True

    def _forget(self, wallet: str, token: str, spenders: Iterable[str]) -> None:
        keys = {pair_key(token, spender) for spender in spenders}
        wallet = normalize_address(wallet)
        if wallet in self._approvals:
            self._approvals[wallet] = [
                a for a in self._approvals[wallet] if pair_key(a.token_address, a.spender) not in keys
            ]
