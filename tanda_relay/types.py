"""
Typed reports produced by the network adapters.

The Soroban RPC adapter decodes wire responses (base64 XDR inside JSON) into
these plain dataclasses so the pipeline never touches raw JSON, and tests can
construct reports directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from stellar_sdk import xdr as stellar_xdr


class SendStatus(str, Enum):
    PENDING = "PENDING"
    DUPLICATE = "DUPLICATE"
    TRY_AGAIN_LATER = "TRY_AGAIN_LATER"
    ERROR = "ERROR"


class TxStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    NOT_FOUND = "NOT_FOUND"

    @property
    def terminal(self) -> bool:
        return self in (TxStatus.SUCCESS, TxStatus.FAILED)


@dataclass(frozen=True)
class SendReport:
    status: SendStatus
    hash: str
    error_code: Optional[str] = None  # e.g. "txBAD_SEQ" when status is ERROR
    inner_error_code: Optional[str] = None  # inner transaction code when a fee bump failed


@dataclass(frozen=True)
class TransactionReport:
    status: TxStatus
    ledger: Optional[int] = None
    fee_charged: Optional[int] = None
    return_value: Optional[stellar_xdr.SCVal] = None
    result_code: Optional[str] = None


@dataclass(frozen=True)
class SimulationSuccess:
    """Resource data and (for getters) the answer of a dry run."""

    transaction_data: stellar_xdr.SorobanTransactionData
    min_resource_fee: int
    auth: List[stellar_xdr.SorobanAuthorizationEntry] = field(default_factory=list)
    return_value: Optional[stellar_xdr.SCVal] = None
    latest_ledger: int = 0

    ok = True


@dataclass(frozen=True)
class SimulationFailed:
    error: str

    ok = False


SimulationResult = Union[SimulationSuccess, SimulationFailed]


__all__ = [
    "SendStatus",
    "TxStatus",
    "SendReport",
    "TransactionReport",
    "SimulationSuccess",
    "SimulationFailed",
    "SimulationResult",
]
