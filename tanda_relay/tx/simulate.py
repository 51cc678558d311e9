"""
Assembly of simulated envelopes.

``assemble`` is the Simulated -> Assembled data transformation: it takes an
unsigned envelope plus a successful simulation and returns a *new* envelope
carrying the simulated resource footprint, the resource fee added on top of
the inclusion fee, and the recorded authorization entries when the operation
has none of its own. It performs no I/O.
"""

from __future__ import annotations

from stellar_sdk import TransactionEnvelope

from ..types import SimulationSuccess


def copy_envelope(envelope: TransactionEnvelope) -> TransactionEnvelope:
    return TransactionEnvelope.from_xdr(envelope.to_xdr(), envelope.network_passphrase)


def assemble(envelope: TransactionEnvelope, success: SimulationSuccess) -> TransactionEnvelope:
    if not isinstance(success, SimulationSuccess):
        raise TypeError("assemble requires a successful simulation")
    if envelope.transaction.soroban_data is not None:
        raise ValueError("envelope is already assembled; rebuild it before simulating again")

    te = copy_envelope(envelope)
    te.signatures = []
    te.transaction.fee += success.min_resource_fee
    te.transaction.soroban_data = success.transaction_data
    op = te.transaction.operations[0]
    if hasattr(op, "auth") and not op.auth:
        op.auth = list(success.auth)
    return te


__all__ = ["assemble", "copy_envelope"]
