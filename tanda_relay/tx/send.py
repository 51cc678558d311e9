"""
tanda_relay.tx.send
===================

Submit signed envelopes to Soroban RPC and poll for a terminal status.

- submit(rpc, envelope) -> SubmissionHandle
    One ``sendTransaction`` call. A stale sequence number (on a fee bump, the
    inner transaction's) raises SequenceConflict; every other refusal raises
    SubmissionRejected.
    DUPLICATE means the exact envelope is already in flight, which is fine.

- poll(rpc, handle, *, attempts, interval) -> Outcome
    Fixed-interval ``getTransaction`` loop bounded by ``attempts``. Never
    resubmits. Cancelling the awaiting task only cancels the wait; the
    broadcast transaction is unaffected.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol, Union

from stellar_sdk import FeeBumpTransactionEnvelope, TransactionEnvelope

from ..errors import RpcTransportError, SequenceConflict, SubmissionRejected, TransactionFailed
from ..logging import get_logger
from ..types import SendReport, SendStatus, TransactionReport, TxStatus
from .codec import decode_scval
from .outcome import Confirmed, Outcome, Rejected, TimedOut

log = get_logger(__name__)

Envelope = Union[TransactionEnvelope, FeeBumpTransactionEnvelope]

BAD_SEQ = "txBAD_SEQ"


class _Rpc(Protocol):
    async def send(self, envelope: Envelope) -> SendReport: ...

    async def get_transaction(self, tx_hash: str) -> TransactionReport: ...


@dataclass
class SubmissionHandle:
    hash: str
    status: TxStatus = TxStatus.PENDING


def _source_and_sequence(envelope: Envelope):
    tx = envelope.transaction
    if isinstance(envelope, FeeBumpTransactionEnvelope):
        tx = tx.inner_transaction_envelope.transaction
    return tx.source.account_id, tx.sequence


async def submit(rpc: _Rpc, envelope: Envelope) -> SubmissionHandle:
    tx_hash = envelope.hash_hex()
    try:
        report = await rpc.send(envelope)
    except RpcTransportError as e:
        raise SubmissionRejected(f"sendTransaction failed: {e}", tx_hash=tx_hash) from e

    if report.status in (SendStatus.PENDING, SendStatus.DUPLICATE):
        if report.status is SendStatus.DUPLICATE:
            log.info("tx.duplicate", tx_hash=report.hash)
        return SubmissionHandle(hash=report.hash)

    if report.status is SendStatus.TRY_AGAIN_LATER:
        raise SubmissionRejected("Network asked to try again later", tx_hash=report.hash)

    if BAD_SEQ in (report.error_code, report.inner_error_code):
        source, sequence = _source_and_sequence(envelope)
        raise SequenceConflict(source, sequence=sequence)
    raise SubmissionRejected(
        f"Transaction rejected: {report.error_code or 'unknown error'}",
        tx_hash=report.hash,
        result_code=report.error_code,
    )


async def poll(rpc: _Rpc, handle: SubmissionHandle, *, attempts: int, interval: float = 1.0) -> Outcome:
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(1, attempts + 1):
        try:
            report = await rpc.get_transaction(handle.hash)
        except RpcTransportError as e:
            # status unknown this round; the budget still bounds the loop
            log.warning("tx.poll_error", tx_hash=handle.hash, attempt=attempt, error=str(e))
        else:
            handle.status = report.status
            if report.status is TxStatus.SUCCESS:
                return Confirmed(
                    hash=handle.hash,
                    return_value=decode_scval(report.return_value),
                    fee_charged=report.fee_charged,
                    ledger=report.ledger,
                )
            if report.status is TxStatus.FAILED:
                return Rejected(
                    hash=handle.hash,
                    error=TransactionFailed(
                        handle.hash, result_code=report.result_code, fee_charged=report.fee_charged
                    ),
                )
        if attempt < attempts:
            await asyncio.sleep(interval)

    log.warning("tx.poll_timeout", tx_hash=handle.hash, attempts=attempts)
    return TimedOut(hash=handle.hash, attempts=attempts)


__all__ = ["SubmissionHandle", "submit", "poll", "BAD_SEQ"]
