from __future__ import annotations

import pytest

from tanda_relay.errors import (
    InvocationError,
    PollTimeout,
    RelayError,
    SequenceConflict,
    SimulationFailure,
    SourceMismatch,
    SponsorUnderfunded,
    SubmissionRejected,
    UnsupportedOperation,
)


def test_problem_body_shape():
    err = SimulationFailure("HostError: Error(Contract, #5)", method="deposit")
    body = err.to_problem()
    assert body == {
        "type": "https://docs.tanda.app/errors#simulation_failed",
        "title": "Contract Rejected Call",
        "status": 400,
        "code": "simulation_failed",
        "detail": "HostError: Error(Contract, #5)",
        "details": {"method": "deposit"},
    }
    assert str(err) == "HostError: Error(Contract, #5)"


@pytest.mark.parametrize(
    "err, status, code",
    [
        (SequenceConflict("GA", sequence=3), 409, "sequence_conflict"),
        (SubmissionRejected("nope", tx_hash="h"), 502, "submission_rejected"),
        (PollTimeout("h", attempts=30), 504, "poll_timeout"),
        (SponsorUnderfunded("GS", balance=1.0, floor=2.0), 503, "sponsor_underfunded"),
        (SourceMismatch("GA", "GB"), 403, "source_mismatch"),
        (UnsupportedOperation("leave_tanda", reason="no"), 409, "unsupported_operation"),
    ],
)
def test_status_codes(err, status, code):
    assert isinstance(err, RelayError)
    assert err.status_code == status
    assert err.code == code
    assert err.to_problem()["status"] == status


def test_invocation_error_alias_catches_everything():
    with pytest.raises(InvocationError):
        raise PollTimeout("h", attempts=1)


def test_unknown_code_falls_back_to_message_title():
    assert RelayError("something odd", code="other").title() == "something odd"
