"""
Sponsored account activation.

New users hold no XLM, so the sponsor creates their account (1 XLM starting
balance) and hands back an unsigned trust-line envelope for the savings
asset. The user signs it on their device and sends it back through the
fee-bump relay.
"""

from __future__ import annotations

from typing import Optional

from stellar_sdk import Account, Asset

from .adapters.soroban_rpc import SorobanRpc
from .config import Settings
from .directory import AccountDirectory
from .errors import AccountNotFound
from .logging import get_logger
from .models import ActivationResult
from .orchestrator import SponsorSequencer
from .signer import SponsorIdentity
from .tx.build import build_change_trust, build_create_account
from .tx.outcome import Confirmed, Outcome, Rejected, TimedOut
from .tx.send import SubmissionHandle, poll, submit

log = get_logger(__name__)


class AccountActivator:
    def __init__(
        self,
        *,
        rpc: SorobanRpc,
        directory: AccountDirectory,
        sponsor: SponsorIdentity,
        settings: Settings,
        sequencer: SponsorSequencer,
    ):
        self.rpc = rpc
        self.directory = directory
        self.sponsor = sponsor
        self.settings = settings
        self.sequencer = sequencer

    @property
    def asset(self) -> Asset:
        return Asset(self.settings.eurc_code, self.settings.eurc_issuer)

    async def build_trustline_transaction(self, user: str) -> str:
        """Unsigned change-trust XDR sourced by ``user``; raises AccountNotFound."""
        source = await self.directory.load_sequence(user)
        te = build_change_trust(source, self.asset, network_passphrase=self.settings.passphrase)
        return te.to_xdr()

    async def _submit_create_account(self, source: Account, user: str) -> SubmissionHandle:
        te = build_create_account(
            source,
            user,
            base_fee=self.settings.max_fee_stroops,
            network_passphrase=self.settings.passphrase,
            timeout=self.settings.tx_timeout_seconds,
        )
        self.sponsor.sign(te)
        return await submit(self.rpc, te)

    async def create_account(self, user: str, *, poll_attempts: Optional[int] = None) -> Outcome:
        """Sponsor-sourced create-account through the shared sequencer; restarts once on a stale sequence."""
        await self.directory.ensure_sponsor_funded()
        submitted = await self.sequencer.submit_with_restart(
            lambda source: self._submit_create_account(source, user), event="activation"
        )
        if isinstance(submitted, Rejected):
            return submitted
        outcome = await poll(
            self.rpc,
            submitted,
            attempts=self.settings.poll_attempts if poll_attempts is None else poll_attempts,
            interval=self.settings.poll_interval_seconds,
        )
        if isinstance(outcome, Confirmed):
            log.info("activation.account_created", public_key=user, tx_hash=outcome.hash)
        return outcome

    async def activate_account(self, user: str, *, poll_attempts: Optional[int] = None) -> ActivationResult:
        if await self.directory.account_exists(user):
            if await self.directory.has_trustline(user):
                return ActivationResult(status="already_active", public_key=user)
            return ActivationResult(
                status="needs_trustline",
                public_key=user,
                trustline_xdr=await self.build_trustline_transaction(user),
            )

        outcome = await self.create_account(user, poll_attempts=poll_attempts)
        if isinstance(outcome, Rejected):
            log.warning("activation.rejected", public_key=user, code=outcome.error.code)
            return ActivationResult(
                status="rejected", public_key=user, tx_hash=outcome.hash, error=outcome.error.to_problem()
            )
        if isinstance(outcome, TimedOut):
            return ActivationResult(status="timed_out", public_key=user, tx_hash=outcome.hash)

        tx_hash = outcome.hash
        try:
            xdr = await self.build_trustline_transaction(user)
        except AccountNotFound:
            # Horizon has not ingested the new ledger yet; the caller asks again later
            log.warning("activation.trustline_deferred", public_key=user, tx_hash=tx_hash)
            xdr = None
        return ActivationResult(status="created", public_key=user, tx_hash=tx_hash, trustline_xdr=xdr)


__all__ = ["AccountActivator"]
