"""
Envelope pipeline pieces.

- build    : unsigned envelopes (invoke-contract, create-account, change-trust)
             and SCVal argument encoders
- codec    : SCVal -> Python value decoding
- simulate : the pure ``assemble`` step and envelope copies
- outcome  : terminal outcomes (Confirmed | Rejected | TimedOut)
- send     : submission and the bounded poll loop
"""

from .outcome import Confirmed, Outcome, Rejected, TimedOut

__all__ = ["Confirmed", "Rejected", "TimedOut", "Outcome"]
