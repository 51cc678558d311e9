"""
Account directory: read-only ledger queries over Horizon.

Answers existence, trust line and balance questions, and hands out fresh
``stellar_sdk.Account`` objects (account id + current sequence number) for
the envelope builder. Nothing here writes to the ledger.
"""

from __future__ import annotations

from typing import Optional, Tuple

from stellar_sdk import Account

from .adapters.horizon import AccountRecord, HorizonClient
from .config import Settings
from .errors import AccountNotFound, SponsorUnderfunded
from .logging import get_logger
from .models import Balances, SponsorInfo

log = get_logger(__name__)


class AccountDirectory:
    def __init__(self, horizon: HorizonClient, settings: Settings, *, sponsor_public_key: Optional[str] = None):
        self.horizon = horizon
        self.settings = settings
        self.sponsor_public_key = sponsor_public_key

    @property
    def asset(self) -> Tuple[str, str]:
        return self.settings.eurc_code, self.settings.eurc_issuer

    async def _record(self, account_id: str) -> Optional[AccountRecord]:
        try:
            return await self.horizon.load_account(account_id)
        except AccountNotFound:
            return None

    async def account_exists(self, account_id: str) -> bool:
        return await self._record(account_id) is not None

    async def has_trustline(self, account_id: str, code: Optional[str] = None, issuer: Optional[str] = None) -> bool:
        record = await self._record(account_id)
        if record is None:
            return False
        default_code, default_issuer = self.asset
        return record.asset_line(code or default_code, issuer or default_issuer) is not None

    async def balances(self, account_id: str) -> Balances:
        record = await self._record(account_id)
        if record is None:
            return Balances()
        line = record.asset_line(*self.asset)
        return Balances(native=record.native_balance(), asset=float(line.balance) if line else 0.0)

    async def load_sequence(self, account_id: str) -> Account:
        """Fresh source account for building; raises AccountNotFound."""
        record = await self.horizon.load_account(account_id)
        return Account(record.account_id, record.sequence)

    # ---------- sponsor ----------

    def _require_sponsor(self) -> str:
        if not self.sponsor_public_key:
            raise ValueError("AccountDirectory was created without a sponsor public key")
        return self.sponsor_public_key

    async def sponsor_info(self) -> SponsorInfo:
        pk = self._require_sponsor()
        bal = await self.balances(pk)
        return SponsorInfo(
            public_key=pk,
            native_balance=bal.native,
            asset_balance=bal.asset,
            is_low_balance=bal.native < self.settings.min_sponsor_balance,
            network=self.settings.stellar_network,
        )

    async def ensure_sponsor_funded(self) -> float:
        """
        Pre-flight check before any sponsor-paid submission.

        Returns the native balance; raises SponsorUnderfunded under the floor
        and logs a warning under the low-balance threshold.
        """
        pk = self._require_sponsor()
        native = (await self.balances(pk)).native
        if native < self.settings.sponsor_balance_floor:
            log.error("sponsor.underfunded", public_key=pk, balance=native, floor=self.settings.sponsor_balance_floor)
            raise SponsorUnderfunded(pk, balance=native, floor=self.settings.sponsor_balance_floor)
        if native < self.settings.min_sponsor_balance:
            log.warning("sponsor.low_balance", public_key=pk, balance=native, threshold=self.settings.min_sponsor_balance)
        return native


__all__ = ["AccountDirectory"]
