"""
Fee-bump relay.

Takes an envelope the user has fully signed, checks that it really belongs to
the user who claims it, wraps it in a sponsor-paid fee-bump envelope and
broadcasts it.

Flow
----
1) Decode the base64 XDR (MalformedEnvelope on garbage).
2) Refuse fee-bump input (NestedFeeBump).
3) The inner source must equal the claimed account and carry a valid
   signature from it (SourceMismatch).
4) Pre-flight sponsor balance floor (SponsorUnderfunded).
5) Wrap with MAX_FEE_STROOPS as base fee, sign with the sponsor only, submit.
6) Poll with the shared loop; ``Confirmed.fee_charged`` is what the sponsor
   actually paid.

Steps 1-3 never touch the network. The inner envelope carries its own
sequence number, so relaying does not take the sponsor sequencer slot.
"""

from __future__ import annotations

from typing import Optional

from stellar_sdk import FeeBumpTransactionEnvelope, Keypair, StrKey, TransactionBuilder, TransactionEnvelope
from stellar_sdk import xdr as stellar_xdr
from stellar_sdk.exceptions import BadSignatureError

from .adapters.soroban_rpc import SorobanRpc
from .config import Settings, stroops_to_xlm
from .directory import AccountDirectory
from .errors import MalformedEnvelope, NestedFeeBump, PollTimeout, SequenceConflict, SourceMismatch, SubmissionRejected
from .logging import get_logger
from .models import RelayReceipt
from .signer import SponsorIdentity
from .tx.outcome import Confirmed, Outcome, Rejected, TimedOut
from .tx.send import poll, submit

log = get_logger(__name__)


def _decode(envelope_xdr: str, passphrase: str) -> TransactionEnvelope:
    try:
        raw = stellar_xdr.TransactionEnvelope.from_xdr(envelope_xdr.strip())
    except Exception as e:  # any decoding failure of untrusted input
        raise MalformedEnvelope(f"Invalid transaction envelope: {e}") from e
    if raw.type == stellar_xdr.EnvelopeType.ENVELOPE_TYPE_TX_FEE_BUMP:
        raise NestedFeeBump()
    try:
        return TransactionEnvelope.from_xdr(envelope_xdr.strip(), passphrase)
    except Exception as e:
        raise MalformedEnvelope(f"Invalid transaction envelope: {e}") from e


def _signed_by(envelope: TransactionEnvelope, public_key: str) -> bool:
    kp = Keypair.from_public_key(public_key)
    hint = kp.signature_hint()
    tx_hash = envelope.hash()
    for sig in envelope.signatures:
        if sig.signature_hint != hint:
            continue
        try:
            kp.verify(tx_hash, sig.signature)
        except BadSignatureError:
            continue
        return True
    return False


class FeeBumpRelay:
    def __init__(
        self,
        *,
        rpc: SorobanRpc,
        directory: AccountDirectory,
        sponsor: SponsorIdentity,
        settings: Settings,
    ):
        self.rpc = rpc
        self.directory = directory
        self.sponsor = sponsor
        self.settings = settings

    def inspect(self, envelope_xdr: str, claimed_source: str) -> TransactionEnvelope:
        """Validate relay input without network access; returns the inner envelope."""
        inner = _decode(envelope_xdr, self.settings.passphrase)
        actual = inner.transaction.source.account_id
        if not StrKey.is_valid_ed25519_public_key(claimed_source) or actual != claimed_source:
            raise SourceMismatch(claimed_source, actual)
        if not _signed_by(inner, claimed_source):
            raise SourceMismatch(claimed_source, actual, reason="Transaction is not signed by the claimed source")
        return inner

    def wrap(self, inner: TransactionEnvelope) -> FeeBumpTransactionEnvelope:
        try:
            fee_bump = TransactionBuilder.build_fee_bump_transaction(
                fee_source=self.sponsor.public_key,
                base_fee=self.settings.max_fee_stroops,
                inner_transaction_envelope=inner,
                network_passphrase=self.settings.passphrase,
            )
        except ValueError as e:
            # inner envelope already bids more than the ceiling
            raise SubmissionRejected(f"Fee bump refused: {e}", tx_hash=inner.hash_hex()) from e
        self.sponsor.sign(fee_bump)
        return fee_bump

    async def relay(
        self,
        envelope_xdr: str,
        claimed_source: str,
        *,
        poll_attempts: Optional[int] = None,
        poll_interval: Optional[float] = None,
    ) -> Outcome:
        inner = self.inspect(envelope_xdr, claimed_source)
        await self.directory.ensure_sponsor_funded()

        try:
            fee_bump = self.wrap(inner)
            handle = await submit(self.rpc, fee_bump)
        except (SubmissionRejected, SequenceConflict) as e:
            log.warning("relay.rejected", source=claimed_source, code=e.code, error=str(e))
            return Rejected(hash=getattr(e, "tx_hash", None), error=e)
        log.info("relay.submitted", source=claimed_source, tx_hash=handle.hash, inner_hash=inner.hash_hex())

        outcome = await poll(
            self.rpc,
            handle,
            attempts=self.settings.poll_attempts if poll_attempts is None else poll_attempts,
            interval=self.settings.poll_interval_seconds if poll_interval is None else poll_interval,
        )
        if isinstance(outcome, Confirmed):
            log.info("relay.confirmed", tx_hash=outcome.hash, fee_charged=outcome.fee_charged, ledger=outcome.ledger)
        return outcome

    async def relay_receipt(self, envelope_xdr: str, claimed_source: str, **kw) -> RelayReceipt:
        """Like :meth:`relay` but raises on anything but Confirmed."""
        outcome = await self.relay(envelope_xdr, claimed_source, **kw)
        if isinstance(outcome, Rejected):
            raise outcome.error
        if isinstance(outcome, TimedOut):
            raise PollTimeout(outcome.hash, attempts=outcome.attempts)
        fee = outcome.fee_charged or 0
        return RelayReceipt(
            tx_hash=outcome.hash,
            fee_charged_stroops=fee,
            fee_charged_xlm=stroops_to_xlm(fee),
            ledger=outcome.ledger,
        )


__all__ = ["FeeBumpRelay"]
