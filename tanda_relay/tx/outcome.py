"""
Terminal outcomes of a submission.

Exactly one of :class:`Confirmed`, :class:`Rejected` or :class:`TimedOut`
ends every broadcast. ``TimedOut`` is not a failure: the transaction may
still land, so callers re-query by hash and never resubmit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

from ..errors import PollTimeout, RelayError


@dataclass(frozen=True)
class Confirmed:
    hash: str
    return_value: Any = None
    fee_charged: Optional[int] = None
    ledger: Optional[int] = None

    ok = True

    def unwrap(self) -> Any:
        return self.return_value


@dataclass(frozen=True)
class Rejected:
    hash: Optional[str]
    error: RelayError

    ok = False

    def unwrap(self) -> Any:
        raise self.error


@dataclass(frozen=True)
class TimedOut:
    hash: str
    attempts: int

    ok = False

    def unwrap(self) -> Any:
        raise PollTimeout(self.hash, attempts=self.attempts)


Outcome = Union[Confirmed, Rejected, TimedOut]


__all__ = ["Confirmed", "Rejected", "TimedOut", "Outcome"]
