"""
Tanda contract client.

A thin facade over the fixed method surface of the savings-circle contract.
Argument order and types mirror the contract exactly; the table below also
records which argument (if any) is the participant whose authorization the
contract requires.

Registry use is limited to discovery: ``create_tanda`` and ``join_tanda``
record ids and participants, ``list_tandas`` and ``tandas_for_user`` ask the
registry *which* ids to look at and then read every field from the ledger.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from stellar_sdk import xdr as stellar_xdr

from .config import Settings, asset_to_units, units_to_asset
from .errors import RelayError, UnsupportedOperation
from .logging import get_logger
from .models import STATUS_MAP, AdvanceStatus, Participant, TandaStatus, TandaView
from .orchestrator import ContractInvoker
from .registry import InstanceRegistry
from .tx import build
from .types import SimulationResult

log = get_logger(__name__)


_ENCODERS = {
    "address": build.address,
    "string": build.string,
    "i128": build.i128,
    "u32": build.u32,
    "u64": build.u64,
    "bool": build.boolean,
}


@dataclass(frozen=True)
class ContractMethod:
    name: str
    params: Tuple[str, ...]
    authorizer: Optional[int] = None  # index of the arg that must authorize
    read_only: bool = False

    def encode(self, values: Sequence[Any]) -> List[stellar_xdr.SCVal]:
        if len(values) != len(self.params):
            raise ValueError(f"{self.name} takes {len(self.params)} argument(s), got {len(values)}")
        return [_ENCODERS[kind](v) for kind, v in zip(self.params, values)]

    def authorizer_of(self, values: Sequence[Any]) -> Optional[str]:
        return None if self.authorizer is None else str(values[self.authorizer])


def _m(name: str, *params: str, authorizer: Optional[int] = None, read_only: bool = False) -> ContractMethod:
    return ContractMethod(name=name, params=params, authorizer=authorizer, read_only=read_only)


METHODS: Dict[str, ContractMethod] = {
    m.name: m
    for m in (
        _m("create_tanda", "address", "string", "i128", "u32", authorizer=0),
        _m("join_tanda", "address", "string", authorizer=0),
        _m("start_tanda", "address", "string", authorizer=0),
        _m("deposit", "address", "string", authorizer=0),
        _m("trigger_payout", "string"),
        _m("expel_delinquent", "string", "address"),
        _m("advance", "string"),
        _m("cancel_tanda", "address", "string", authorizer=0),
        _m("get_tanda", "string", read_only=True),
        _m("get_members", "string", read_only=True),
        _m("all_deposited", "string", read_only=True),
        _m("get_beneficiary", "string", read_only=True),
        _m("can_expel", "string", "address", read_only=True),
        _m("time_to_deadline", "string", read_only=True),
        _m("get_advance_status", "string", read_only=True),
    )
}


def method(name: str) -> ContractMethod:
    try:
        return METHODS[name]
    except KeyError:
        raise ValueError(f"unknown contract method: {name}") from None


def to_view(raw: Dict[str, Any], members: List[Dict[str, Any]], decimals: int = 7) -> TandaView:
    participants = [
        Participant(
            address=m["address"],
            status=m["status"],
            position=m["position"],
            has_deposited=m["has_deposited"],
            joined_at=m["joined_at"],
        )
        for m in members
    ]
    active = sorted((p for p in participants if p.status != "Expelled"), key=lambda p: p.position)
    return TandaView(
        id=raw["id"],
        name=raw["name"],
        creator=raw["creator"],
        amount=units_to_asset(raw["amount"], decimals),
        amount_units=int(raw["amount"]),
        max_members=raw["max_members"],
        current_members=len(active),
        status=STATUS_MAP[raw["status"]],
        current_cycle=raw["current_cycle"],
        total_cycles=raw["total_cycles"],
        created_at=raw["created_at"],
        started_at=raw.get("started_at", 0),
        last_payout_at=raw.get("last_payout_at", 0),
        participants=participants,
        beneficiary_order=[p.address for p in active],
    )


class TandaClient:
    def __init__(self, invoker: ContractInvoker, registry: InstanceRegistry, settings: Settings):
        self.invoker = invoker
        self.registry = registry
        self.settings = settings

    # ---------- generic ----------

    async def simulate(self, name: str, *values: Any) -> SimulationResult:
        m = method(name)
        return await self.invoker.simulate(m.name, m.encode(values))

    async def call(
        self,
        name: str,
        *values: Any,
        signer_secret: Optional[str] = None,
        poll_attempts: Optional[int] = None,
    ) -> Any:
        """Read or write ``name``; writes return the decoded value of a Confirmed outcome."""
        m = method(name)
        args = m.encode(values)
        if m.read_only:
            return await self.invoker.read(m.name, args)
        outcome = await self.invoker.invoke(
            m.name,
            args,
            authorizer=m.authorizer_of(values),
            signer_secret=signer_secret,
            poll_attempts=poll_attempts,
        )
        return outcome.unwrap()

    # ---------- writes ----------

    async def create_tanda(
        self, creator: str, name: str, amount: float, max_members: int, *, signer_secret: Optional[str] = None
    ) -> str:
        units = asset_to_units(amount, self.settings.eurc_decimals)
        tanda_id = str(await self.call("create_tanda", creator, name, units, max_members, signer_secret=signer_secret))
        self.registry.register(tanda_id, creator)
        log.info("tanda.created", tanda_id=tanda_id, creator=creator, amount_units=units, max_members=max_members)
        return tanda_id

    async def join_tanda(self, user: str, tanda_id: str, *, signer_secret: Optional[str] = None) -> None:
        await self.call("join_tanda", user, tanda_id, signer_secret=signer_secret)
        self.registry.add_participant(tanda_id, user)

    async def start_tanda(self, caller: str, tanda_id: str, *, signer_secret: Optional[str] = None) -> None:
        await self.call("start_tanda", caller, tanda_id, signer_secret=signer_secret)

    async def deposit(self, user: str, tanda_id: str, *, signer_secret: Optional[str] = None) -> None:
        await self.call("deposit", user, tanda_id, signer_secret=signer_secret)

    async def advance(self, tanda_id: str) -> bool:
        return bool(await self.call("advance", tanda_id))

    async def trigger_payout(self, tanda_id: str) -> None:
        await self.call("trigger_payout", tanda_id)

    async def expel_delinquent(self, tanda_id: str, member: str) -> None:
        await self.call("expel_delinquent", tanda_id, member)

    async def cancel_tanda(self, caller: str, tanda_id: str, *, signer_secret: Optional[str] = None) -> None:
        await self.call("cancel_tanda", caller, tanda_id, signer_secret=signer_secret)

    async def leave_tanda(self, user: str, tanda_id: str) -> None:
        raise UnsupportedOperation(
            "leave_tanda",
            reason="The tanda contract has no leave operation; membership cannot change off-ledger",
        )

    # ---------- reads ----------

    async def get_tanda(self, tanda_id: str) -> Dict[str, Any]:
        return await self.call("get_tanda", tanda_id)

    async def get_members(self, tanda_id: str) -> List[Dict[str, Any]]:
        return await self.call("get_members", tanda_id) or []

    async def all_deposited(self, tanda_id: str) -> bool:
        return bool(await self.call("all_deposited", tanda_id))

    async def get_beneficiary(self, tanda_id: str) -> str:
        return await self.call("get_beneficiary", tanda_id)

    async def can_expel(self, tanda_id: str, member: str) -> bool:
        return bool(await self.call("can_expel", tanda_id, member))

    async def time_to_deadline(self, tanda_id: str) -> int:
        return int(await self.call("time_to_deadline", tanda_id))

    async def get_advance_status(self, tanda_id: str) -> AdvanceStatus:
        can_advance, expel_count, will_payout, beneficiary = await self.call("get_advance_status", tanda_id)
        return AdvanceStatus(
            can_advance=can_advance,
            will_expel_count=expel_count,
            will_payout=will_payout,
            beneficiary=beneficiary,
        )

    # ---------- views ----------

    async def tanda_view(self, tanda_id: str) -> TandaView:
        raw, members = await asyncio.gather(self.get_tanda(tanda_id), self.get_members(tanda_id))
        return to_view(raw, members, self.settings.eurc_decimals)

    async def _views(self, ids: List[str]) -> List[TandaView]:
        views: List[TandaView] = []
        for tanda_id in ids:
            try:
                views.append(await self.tanda_view(tanda_id))
            except RelayError as e:
                log.warning("tanda.read_failed", tanda_id=tanda_id, error=str(e))
        return views

    async def list_tandas(self, status: Optional[TandaStatus] = None) -> List[TandaView]:
        views = await self._views(self.registry.list_known_ids())
        return [v for v in views if status is None or v.status == status]

    async def tandas_for_user(self, address: str) -> List[TandaView]:
        ids = self.registry.list_known_ids(participant=address)
        return [v for v in await self._views(ids) if v.creator == address or v.has_member(address)]


__all__ = ["ContractMethod", "METHODS", "method", "to_view", "TandaClient"]
