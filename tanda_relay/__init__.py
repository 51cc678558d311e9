"""
tanda-relay
===========

Sponsored transaction relay for the tanda (savings circle) Soroban contract.

A backend sponsor account pays every network fee: contract calls are built,
simulated, assembled and signed here, and user-signed envelopes are wrapped in
sponsor-paid fee bumps before they are relayed.

Prefer importing submodules directly for specific concerns:
``tanda_relay.orchestrator``, ``tanda_relay.relay``, ``tanda_relay.tanda``,
``tanda_relay.config``, ``tanda_relay.logging``, etc.
"""

from __future__ import annotations

from .version import __version__

__all__ = ["__version__"]
