"""
Adapters for the external Stellar services tanda-relay talks to.

- soroban_rpc : JSON-RPC client for Soroban RPC (simulate, send, getTransaction)
- horizon     : REST client for Horizon account loads (sequence, balances)

Submodules are loaded lazily via PEP 562 (__getattr__).
"""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING

__all__ = [
    "soroban_rpc",
    "horizon",
]


def __getattr__(name: str):
    if name in __all__:
        return importlib.import_module(f".{name}", __name__)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__():
    return sorted(list(globals().keys()) + __all__)


if TYPE_CHECKING:
    from . import horizon, soroban_rpc
