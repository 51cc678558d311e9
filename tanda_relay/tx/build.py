"""
tanda_relay.tx.build
====================

Builders for the three envelope shapes the relay produces:

- ``build_invocation``     : one invoke-contract operation, sponsor-sourced
- ``build_create_account`` : sponsored account activation
- ``build_change_trust``   : user-sourced trust line, returned unsigned

All builders take a ``stellar_sdk.Account`` and consume its next sequence
number (``TransactionBuilder.build`` increments it in place). Envelopes are
returned unsigned.

Argument encoders wrap ``stellar_sdk.scval`` so call sites read like the
contract signature:

    args = [address(creator), string("Vacation"), i128(1_000_000_000), u32(5)]
"""

from __future__ import annotations

from typing import Sequence, Union

from stellar_sdk import Account, Asset, TransactionBuilder, TransactionEnvelope, scval
from stellar_sdk import xdr as stellar_xdr

SCVal = stellar_xdr.SCVal

DEFAULT_TIMEOUT = 30
TRUSTLINE_TIMEOUT = 300
TRUSTLINE_BASE_FEE = 100
STARTING_BALANCE = "1"


# -----------------------------------------------------------------------------
# Argument encoders
# -----------------------------------------------------------------------------


def address(value: str) -> SCVal:
    return scval.to_address(value)


def string(value: Union[str, bytes]) -> SCVal:
    return scval.to_string(value)


def i128(value: int) -> SCVal:
    return scval.to_int128(int(value))


def u32(value: int) -> SCVal:
    return scval.to_uint32(int(value))


def u64(value: int) -> SCVal:
    return scval.to_uint64(int(value))


def boolean(value: bool) -> SCVal:
    return scval.to_bool(bool(value))


# -----------------------------------------------------------------------------
# Envelope builders
# -----------------------------------------------------------------------------


def build_invocation(
    source: Account,
    contract_id: str,
    method: str,
    args: Sequence[SCVal],
    *,
    base_fee: int,
    network_passphrase: str,
    timeout: int = DEFAULT_TIMEOUT,
) -> TransactionEnvelope:
    """Unsigned envelope with a single invoke-contract operation."""
    return (
        TransactionBuilder(source, network_passphrase, base_fee=base_fee)
        .append_invoke_contract_function_op(
            contract_id=contract_id,
            function_name=method,
            parameters=list(args),
        )
        .set_timeout(timeout)
        .build()
    )


def build_create_account(
    source: Account,
    destination: str,
    *,
    base_fee: int,
    network_passphrase: str,
    starting_balance: str = STARTING_BALANCE,
    timeout: int = DEFAULT_TIMEOUT,
) -> TransactionEnvelope:
    return (
        TransactionBuilder(source, network_passphrase, base_fee=base_fee)
        .append_create_account_op(destination=destination, starting_balance=starting_balance)
        .set_timeout(timeout)
        .build()
    )


def build_change_trust(
    source: Account,
    asset: Asset,
    *,
    network_passphrase: str,
    base_fee: int = TRUSTLINE_BASE_FEE,
    timeout: int = TRUSTLINE_TIMEOUT,
) -> TransactionEnvelope:
    """User-sourced trust line; the long window leaves time to sign on a device."""
    return (
        TransactionBuilder(source, network_passphrase, base_fee=base_fee)
        .append_change_trust_op(asset=asset)
        .set_timeout(timeout)
        .build()
    )


def invocation_of(envelope: TransactionEnvelope) -> stellar_xdr.InvokeContractArgs:
    """The InvokeContractArgs of an envelope built by :func:`build_invocation`."""
    op = envelope.transaction.operations[0]
    return op.host_function.invoke_contract


__all__ = [
    "address",
    "string",
    "i128",
    "u32",
    "u64",
    "boolean",
    "build_invocation",
    "build_create_account",
    "build_change_trust",
    "invocation_of",
]
