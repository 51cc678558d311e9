from __future__ import annotations

"""
Error hierarchy for tanda-relay.

Every failure the pipeline can surface is a :class:`RelayError` subclass with
a stable machine ``code``, a human ``message`` and optional structured
``details``. ``to_problem()`` renders an RFC 7807 body so the HTTP layer that
sits in front of this package can return errors without re-mapping them.

Usage
-----
    from tanda_relay.errors import SimulationFailure

    raise SimulationFailure("HostError: tanda not active", method="deposit")

Taxonomy
--------
- Pre-flight (nothing broadcast): ConfigurationError, SimulationFailure,
  SponsorUnderfunded, MissingCounterSignature, NestedFeeBump, SourceMismatch,
  MalformedEnvelope, UnsupportedOperation.
- Submission: SequenceConflict, SubmissionRejected.
- Post-broadcast: TransactionFailed, PollTimeout (status unknown, re-query by
  hash; never resubmit).
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional


DEFAULT_ERROR_DOCS_BASE = "https://docs.tanda.app/errors"


@dataclass
class RelayError(Exception):
    message: str
    status_code: int = 400
    code: str = "relay_error"
    details: Optional[Mapping[str, Any]] = None
    type_uri_base: str = DEFAULT_ERROR_DOCS_BASE

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    # --- RFC 7807 helpers -------------------------------------------------- #

    def type_uri(self) -> str:
        return f"{self.type_uri_base}#{self.code}"

    def title(self) -> str:
        return {
            "configuration_error": "Service Not Configured",
            "simulation_failed": "Contract Rejected Call",
            "sequence_conflict": "Sequence Number Conflict",
            "submission_rejected": "Submission Rejected",
            "transaction_failed": "Transaction Failed",
            "poll_timeout": "Confirmation Pending",
            "sponsor_underfunded": "Sponsor Underfunded",
            "missing_counter_signature": "Signature Required",
            "nested_fee_bump": "Nested Fee Bump",
            "source_mismatch": "Source Mismatch",
            "malformed_envelope": "Malformed Envelope",
            "account_not_found": "Account Not Found",
            "rpc_error": "Upstream RPC Error",
            "unsupported_operation": "Unsupported Operation",
        }.get(self.code, self.message or "Error")

    def to_problem(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "type": self.type_uri(),
            "title": self.title(),
            "status": self.status_code,
            "code": self.code,
            "detail": self.message,
        }
        if self.details:
            body["details"] = dict(self.details)
        return body


# ------------------------------ Concrete types ------------------------------- #


class ConfigurationError(RelayError):
    def __init__(self, message: str, *, setting: Optional[str] = None):
        super().__init__(
            message=message,
            status_code=503,
            code="configuration_error",
            details={"setting": setting} if setting else None,
        )


class SimulationFailure(RelayError):
    """The contract (or the simulator) rejected the call; surfaced verbatim."""

    def __init__(self, diagnostic: str, *, method: Optional[str] = None):
        super().__init__(
            message=diagnostic,
            status_code=400,
            code="simulation_failed",
            details={"method": method} if method else None,
        )
        self.diagnostic = diagnostic
        self.method = method


class SequenceConflict(RelayError):
    def __init__(self, source: Optional[str] = None, *, sequence: Optional[int] = None):
        details: Dict[str, Any] = {}
        if source:
            details["source"] = source
        if sequence is not None:
            details["sequence"] = sequence
        super().__init__(
            message="Source account sequence number is stale",
            status_code=409,
            code="sequence_conflict",
            details=details or None,
        )


class SubmissionRejected(RelayError):
    def __init__(self, reason: str, *, tx_hash: Optional[str] = None, result_code: Optional[str] = None):
        details: Dict[str, Any] = {}
        if tx_hash:
            details["tx_hash"] = tx_hash
        if result_code:
            details["result_code"] = result_code
        super().__init__(
            message=reason,
            status_code=502,
            code="submission_rejected",
            details=details or None,
        )
        self.tx_hash = tx_hash
        self.result_code = result_code


class TransactionFailed(RelayError):
    def __init__(self, tx_hash: str, *, result_code: Optional[str] = None, fee_charged: Optional[int] = None):
        details: Dict[str, Any] = {"tx_hash": tx_hash}
        if result_code:
            details["result_code"] = result_code
        if fee_charged is not None:
            details["fee_charged"] = fee_charged
        super().__init__(
            message=f"Transaction {tx_hash} failed on ledger",
            status_code=422,
            code="transaction_failed",
            details=details,
        )
        self.tx_hash = tx_hash
        self.result_code = result_code
        self.fee_charged = fee_charged


class PollTimeout(RelayError):
    def __init__(self, tx_hash: str, *, attempts: int):
        super().__init__(
            message=f"Transaction {tx_hash} not final after {attempts} polls; re-query by hash",
            status_code=504,
            code="poll_timeout",
            details={"tx_hash": tx_hash, "attempts": attempts},
        )
        self.tx_hash = tx_hash
        self.attempts = attempts


class SponsorUnderfunded(RelayError):
    def __init__(self, public_key: str, *, balance: float, floor: float):
        super().__init__(
            message=f"Sponsor balance {balance:.7f} XLM is below the {floor:.7f} XLM floor",
            status_code=503,
            code="sponsor_underfunded",
            details={"public_key": public_key, "balance": balance, "floor": floor},
        )


class MissingCounterSignature(RelayError):
    def __init__(self, authorizer: str, *, method: Optional[str] = None, reason: Optional[str] = None):
        details: Dict[str, Any] = {"authorizer": authorizer}
        if method:
            details["method"] = method
        super().__init__(
            message=reason or f"Authorization by {authorizer} is required",
            status_code=401,
            code="missing_counter_signature",
            details=details,
        )


class NestedFeeBump(RelayError):
    def __init__(self) -> None:
        super().__init__(
            message="Expected a regular transaction, not a fee-bump transaction",
            status_code=400,
            code="nested_fee_bump",
        )


class SourceMismatch(RelayError):
    def __init__(self, claimed: str, actual: Optional[str], *, reason: Optional[str] = None):
        super().__init__(
            message=reason or "Transaction source does not match user",
            status_code=403,
            code="source_mismatch",
            details={"claimed": claimed, "actual": actual},
        )


class MalformedEnvelope(RelayError):
    def __init__(self, reason: str = "Invalid transaction envelope"):
        super().__init__(message=reason, status_code=400, code="malformed_envelope")


class AccountNotFound(RelayError):
    def __init__(self, account_id: str):
        super().__init__(
            message=f"Account not found: {account_id}",
            status_code=404,
            code="account_not_found",
            details={"account_id": account_id},
        )
        self.account_id = account_id


class RpcTransportError(RelayError):
    def __init__(self, message: str = "Upstream RPC error", *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=message, status_code=502, code="rpc_error", details=details)


class UnsupportedOperation(RelayError):
    def __init__(self, operation: str, *, reason: str):
        super().__init__(
            message=reason,
            status_code=409,
            code="unsupported_operation",
            details={"operation": operation},
        )


InvocationError = RelayError


__all__ = [
    "RelayError",
    "InvocationError",
    "ConfigurationError",
    "SimulationFailure",
    "SequenceConflict",
    "SubmissionRejected",
    "TransactionFailed",
    "PollTimeout",
    "SponsorUnderfunded",
    "MissingCounterSignature",
    "NestedFeeBump",
    "SourceMismatch",
    "MalformedEnvelope",
    "AccountNotFound",
    "RpcTransportError",
    "UnsupportedOperation",
]
