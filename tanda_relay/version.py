"""
Version helpers for tanda-relay.

- ``__version__`` is the semantic version for packaging.
- ``user_agent()`` is the header value sent to Horizon and Soroban RPC.
"""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Optional

# Bump this when making a release; use semver (MAJOR.MINOR.PATCH)
__version__ = "0.1.0"


def _commit_short() -> Optional[str]:
    root = Path(__file__).resolve().parent.parent
    try:
        out = subprocess.check_output(
            ["git", "-C", str(root), "rev-parse", "--short", "HEAD"],
            stderr=subprocess.DEVNULL,
            timeout=1.5,
        )
        return out.decode().strip() or None
    except (OSError, subprocess.SubprocessError):
        return os.getenv("GIT_COMMIT") or os.getenv("BUILD_SHA") or None


def build_version(base: str = __version__) -> str:
    """
    PEP 440 version with the commit attached when known, e.g. "0.1.0+gabc1234".
    """
    commit = _commit_short()
    return f"{base}+g{commit}" if commit else base


def user_agent() -> str:
    return f"tanda-relay/{__version__}"


__all__ = ["__version__", "build_version", "user_agent"]
