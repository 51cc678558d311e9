"""
Operator CLI for tanda-relay.

Commands:
  - sponsor-info   : sponsor public key and balances
  - read           : read-only contract call (simulation only)
  - tanda          : ledger view of one tanda
  - relay          : fee-bump and submit a user-signed envelope
  - registry-list  : ids in the local instance registry
  - activate       : sponsored account activation for a new user
  - version        : package version (with git commit when known)

Usage:
  tanda-relay <command> [options]
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, List, Optional

import typer

from .config import get_settings
from .errors import RelayError
from .logging import setup_logging
from .registry import open_registry
from .service import Services
from .tanda import method
from .tx.outcome import Confirmed, Rejected
from .version import build_version

app = typer.Typer(add_completion=False, help="tanda-relay: sponsored Soroban relay CLI")


def _print(obj: Any) -> None:
    if hasattr(obj, "model_dump"):
        obj = obj.model_dump()
    typer.echo(json.dumps(obj, indent=2, sort_keys=True, default=str))


def _run(fn: Callable[[Services], Awaitable[Any]]) -> None:
    """Build services, run ``fn``, print the result; RelayErrors become exit code 1."""

    async def _main() -> Any:
        services = Services.from_settings()
        try:
            return await fn(services)
        finally:
            await services.aclose()

    try:
        _print(asyncio.run(_main()))
    except RelayError as e:
        _print(e.to_problem())
        raise typer.Exit(code=1) from e


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
    log_format: Optional[str] = typer.Option("console", "--log-format", help="json or console"),
):
    setup_logging(level=log_level, log_format=log_format)


@app.command("version")
def version() -> None:
    """Print the tanda-relay version."""
    typer.echo(f"tanda-relay {build_version()}")


@app.command("sponsor-info")
def sponsor_info():
    """Show sponsor public key and balances."""
    _run(lambda s: s.directory.sponsor_info())


@app.command("read")
def read(
    name: str = typer.Argument(..., help="Contract method, e.g. get_tanda"),
    args: List[str] = typer.Argument(None, help="Positional arguments"),
):
    """Read-only contract call; integer parameters are parsed from the strings given."""
    m = method(name)
    if not m.read_only:
        raise typer.BadParameter(f"{name} changes state; only getters can be read", param_hint="NAME")
    values: List[Any] = [
        int(v) if kind in ("i128", "u32", "u64") else v for kind, v in zip(m.params, args or [])
    ]
    _run(lambda s: s.require_tanda().call(name, *values))


@app.command("tanda")
def tanda(tanda_id: str = typer.Argument(..., help="Tanda id")):
    """Ledger view of one tanda."""
    _run(lambda s: s.require_tanda().tanda_view(tanda_id))


@app.command("relay")
def relay(
    xdr: str = typer.Argument(..., help="User-signed transaction envelope (base64 XDR)"),
    source: str = typer.Option(..., "--source", help="Claimed source account (G...)"),
    attempts: Optional[int] = typer.Option(None, "--attempts", help="Poll budget"),
):
    """Fee-bump a user-signed envelope and wait for the outcome."""

    async def _go(s: Services) -> Any:
        outcome = await s.relay.relay(xdr, source, poll_attempts=attempts)
        if isinstance(outcome, Confirmed):
            return {"status": "confirmed", "hash": outcome.hash, "fee_charged": outcome.fee_charged, "ledger": outcome.ledger}
        if isinstance(outcome, Rejected):
            return {"status": "rejected", "hash": outcome.hash, "error": outcome.error.to_problem()}
        return {"status": "timed_out", "hash": outcome.hash, "attempts": outcome.attempts}

    _run(_go)


@app.command("activate")
def activate(public_key: str = typer.Argument(..., help="User account (G...)")):
    """Create the account if needed and print the trust-line XDR to sign."""
    _run(lambda s: s.activator.activate_account(public_key))


@app.command("registry-list")
def registry_list(
    creator: Optional[str] = typer.Option(None, "--creator"),
    participant: Optional[str] = typer.Option(None, "--participant"),
):
    """List ids in the local registry (no ledger access)."""
    registry = open_registry(get_settings().registry_path)
    _print(registry.list_known_ids(creator=creator, participant=participant))


if __name__ == "__main__":  # pragma: no cover
    app()
