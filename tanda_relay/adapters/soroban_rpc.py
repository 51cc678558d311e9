"""
JSON-RPC client for Soroban RPC.

Provides:
- an async JSON-RPC transport over HTTP(S), retrying idempotent reads only
- typed methods for the endpoints the pipeline needs:
  * simulateTransaction  -> SimulationResult (never raises)
  * sendTransaction      -> SendReport
  * getTransaction       -> TransactionReport
  * getLatestLedger      -> int

Notes
-----
* Envelopes travel as base64 XDR strings; this module decodes the XDR fields
  of responses (transactionData, auth, resultXdr, resultMetaXdr) with
  ``stellar_sdk.xdr`` so callers only see typed values.
* simulate and send are never retried here: a repeated simulate is harmless
  but slow, and a repeated send can race the first one.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import httpx
from stellar_sdk import FeeBumpTransactionEnvelope, TransactionEnvelope
from stellar_sdk import xdr as stellar_xdr

from ..errors import RpcTransportError
from ..logging import get_logger
from ..types import (
    SendReport,
    SendStatus,
    SimulationFailed,
    SimulationResult,
    SimulationSuccess,
    TransactionReport,
    TxStatus,
)
from ..version import user_agent

log = get_logger(__name__)

Envelope = Union[TransactionEnvelope, FeeBumpTransactionEnvelope]


# ----------------------------- Helpers --------------------------------------


def _should_retry(status: Optional[int]) -> bool:
    return status in (429, 502, 503, 504)


def _build_headers(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    hdrs = {
        "content-type": "application/json",
        "accept": "application/json",
        "user-agent": user_agent(),
    }
    if extra:
        hdrs.update(extra)
    return hdrs


def result_code_of(result_xdr: Optional[str]) -> Optional[str]:
    """Name of the TransactionResultCode in a base64 TransactionResult, e.g. 'txBAD_SEQ'."""
    if not result_xdr:
        return None
    result = stellar_xdr.TransactionResult.from_xdr(result_xdr)
    return result.result.code.name


def inner_result_code_of(result_xdr: Optional[str]) -> Optional[str]:
    """Inner transaction code of a fee-bump result, or None for plain results."""
    if not result_xdr:
        return None
    result = stellar_xdr.TransactionResult.from_xdr(result_xdr).result
    if result.inner_result_pair is None:
        return None
    return result.inner_result_pair.result.result.code.name


def fee_charged_of(result_xdr: Optional[str]) -> Optional[int]:
    if not result_xdr:
        return None
    return stellar_xdr.TransactionResult.from_xdr(result_xdr).fee_charged.int64


def return_value_of(meta_xdr: Optional[str]) -> Optional[stellar_xdr.SCVal]:
    """Contract return value carried in TransactionMeta v3 or v4."""
    if not meta_xdr:
        return None
    meta = stellar_xdr.TransactionMeta.from_xdr(meta_xdr)
    body = {3: meta.v3, 4: getattr(meta, "v4", None)}.get(meta.v)
    if body is None or body.soroban_meta is None:
        return None
    return body.soroban_meta.return_value


def _envelope_xdr(envelope: Union[Envelope, str]) -> str:
    return envelope if isinstance(envelope, str) else envelope.to_xdr()


# ----------------------------- Client ---------------------------------------


@dataclass
class SorobanRpcConfig:
    url: str
    timeout_s: float = 10.0
    max_retries: int = 2
    backoff_base_s: float = 0.25
    headers: Optional[Dict[str, str]] = None


class SorobanRpc:
    """Minimal async Soroban JSON-RPC client."""

    def __init__(self, config: SorobanRpcConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._cfg = config
        self._id = 0
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    # ---------- lifecycle ----------

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._cfg.url,
                timeout=self._cfg.timeout_s,
                headers=_build_headers(self._cfg.headers),
                transport=self._transport,
            )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "SorobanRpc":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ---------- core transport ----------

    async def _call(self, method: str, params: Optional[Dict[str, Any]] = None, *, retry: bool = False) -> Any:
        if self._client is None:
            await self.start()
        assert self._client is not None

        self._id += 1
        payload = {"jsonrpc": "2.0", "id": self._id, "method": method, "params": params or {}}
        max_attempts = 1 + (self._cfg.max_retries if retry else 0)

        attempt = 0
        while True:
            attempt += 1
            status: Optional[int] = None
            try:
                resp = await self._client.post("", json=payload)
                status = resp.status_code
                if status == 200:
                    data = json.loads(resp.content)
                    err = data.get("error")
                    if err:
                        raise RpcTransportError(
                            f"RPC error {err.get('code', -32000)}: {err.get('message', 'Unknown error')}",
                            details={"method": method, "rpc_code": err.get("code"), "data": err.get("data")},
                        )
                    return data.get("result")
                exc: Exception = RpcTransportError(
                    f"HTTP {status}: {resp.text[:256]!r}", details={"method": method, "status": status}
                )
            except (httpx.TimeoutException, httpx.TransportError, ValueError) as e:
                exc = e
            if attempt >= max_attempts or (status is not None and not _should_retry(status)):
                if isinstance(exc, RpcTransportError):
                    raise exc
                raise RpcTransportError(
                    f"{method} failed after {attempt} attempt(s): {exc}", details={"method": method}
                ) from exc
            await asyncio.sleep(self._cfg.backoff_base_s * (2 ** (attempt - 1)))

    # ---------- typed methods ----------

    async def simulate(self, envelope: Union[Envelope, str]) -> SimulationResult:
        """
        Dry-run an envelope. Contract errors, archived state and transport
        failures (timeouts included) all come back as ``SimulationFailed``.
        """
        try:
            res = await self._call("simulateTransaction", {"transaction": _envelope_xdr(envelope)})
        except RpcTransportError as e:
            log.warning("soroban.simulate_transport_failed", error=str(e))
            return SimulationFailed(error=f"simulation unavailable: {e}")
        return parse_simulation(res or {})

    async def send(self, envelope: Union[Envelope, str]) -> SendReport:
        res = await self._call("sendTransaction", {"transaction": _envelope_xdr(envelope)})
        return SendReport(
            status=SendStatus(res["status"]),
            hash=res["hash"],
            error_code=result_code_of(res.get("errorResultXdr")),
            inner_error_code=inner_result_code_of(res.get("errorResultXdr")),
        )

    async def get_transaction(self, tx_hash: str) -> TransactionReport:
        res = await self._call("getTransaction", {"hash": tx_hash}, retry=True)
        status = TxStatus(res["status"])
        if status is TxStatus.NOT_FOUND:
            return TransactionReport(status=status)
        ret = res.get("returnValue")
        return TransactionReport(
            status=status,
            ledger=res.get("ledger"),
            fee_charged=fee_charged_of(res.get("resultXdr")),
            return_value=stellar_xdr.SCVal.from_xdr(ret) if ret else return_value_of(res.get("resultMetaXdr")),
            result_code=result_code_of(res.get("resultXdr")),
        )

    async def get_latest_ledger(self) -> int:
        res = await self._call("getLatestLedger", retry=True)
        return int(res["sequence"])


def parse_simulation(res: Dict[str, Any]) -> SimulationResult:
    if res.get("error"):
        return SimulationFailed(error=str(res["error"]))
    if res.get("restorePreamble"):
        return SimulationFailed(error="contract state is archived and must be restored before this call")
    if not res.get("transactionData"):
        return SimulationFailed(error="simulation returned no transaction data")

    results = res.get("results") or []
    first = results[0] if results else {}
    return SimulationSuccess(
        transaction_data=stellar_xdr.SorobanTransactionData.from_xdr(res["transactionData"]),
        min_resource_fee=int(res.get("minResourceFee") or 0),
        auth=[stellar_xdr.SorobanAuthorizationEntry.from_xdr(a) for a in first.get("auth") or []],
        return_value=stellar_xdr.SCVal.from_xdr(first["xdr"]) if first.get("xdr") else None,
        latest_ledger=int(res.get("latestLedger") or 0),
    )


__all__ = [
    "SorobanRpc",
    "SorobanRpcConfig",
    "parse_simulation",
    "result_code_of",
    "inner_result_code_of",
    "fee_charged_of",
    "return_value_of",
]
