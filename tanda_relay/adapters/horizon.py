"""
REST client for Horizon account loads.

Only ``GET /accounts/{id}`` is needed: it yields the current sequence number
and the balance lines. Reads are idempotent and retried on transient HTTP
statuses; a 404 is not an error of the transport but a fact about the
ledger, surfaced as :class:`AccountNotFound`.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from ..errors import AccountNotFound, RpcTransportError
from ..version import user_agent


@dataclass(frozen=True)
class BalanceLine:
    asset_type: str
    balance: str
    asset_code: Optional[str] = None
    asset_issuer: Optional[str] = None

    @property
    def is_native(self) -> bool:
        return self.asset_type == "native"

    def matches(self, code: str, issuer: str) -> bool:
        return self.asset_code == code and self.asset_issuer == issuer


@dataclass(frozen=True)
class AccountRecord:
    account_id: str
    sequence: int
    balances: List[BalanceLine] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "AccountRecord":
        return cls(
            account_id=data.get("account_id") or data["id"],
            sequence=int(data["sequence"]),
            balances=[
                BalanceLine(
                    asset_type=b["asset_type"],
                    balance=b["balance"],
                    asset_code=b.get("asset_code"),
                    asset_issuer=b.get("asset_issuer"),
                )
                for b in data.get("balances", [])
            ],
        )

    def native_balance(self) -> float:
        for b in self.balances:
            if b.is_native:
                return float(b.balance)
        return 0.0

    def asset_line(self, code: str, issuer: str) -> Optional[BalanceLine]:
        for b in self.balances:
            if b.matches(code, issuer):
                return b
        return None


@dataclass
class HorizonConfig:
    url: str
    timeout_s: float = 10.0
    max_retries: int = 2
    backoff_base_s: float = 0.25


class HorizonClient:
    def __init__(self, config: HorizonConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._cfg = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._cfg.url,
                timeout=self._cfg.timeout_s,
                headers={"accept": "application/json", "user-agent": user_agent()},
                transport=self._transport,
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HorizonClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def load_account(self, account_id: str) -> AccountRecord:
        if self._client is None:
            await self.start()
        assert self._client is not None

        attempt = 0
        while True:
            attempt += 1
            try:
                resp = await self._client.get(f"/accounts/{account_id}")
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                if attempt > self._cfg.max_retries:
                    raise RpcTransportError(
                        f"Horizon unreachable after {attempt} attempt(s): {exc}",
                        details={"account_id": account_id},
                    ) from exc
            else:
                if resp.status_code == 200:
                    return AccountRecord.from_json(resp.json())
                if resp.status_code == 404:
                    raise AccountNotFound(account_id)
                if resp.status_code not in (429, 502, 503, 504) or attempt > self._cfg.max_retries:
                    raise RpcTransportError(
                        f"Horizon HTTP {resp.status_code}: {resp.text[:256]!r}",
                        details={"account_id": account_id, "status": resp.status_code},
                    )
            await asyncio.sleep(self._cfg.backoff_base_s * (2 ** (attempt - 1)))


__all__ = ["HorizonClient", "HorizonConfig", "AccountRecord", "BalanceLine"]
