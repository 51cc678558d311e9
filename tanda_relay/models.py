from __future__ import annotations

"""
Value models handed to callers (the HTTP layer, the CLI).

- Balances / SponsorInfo: account directory answers.
- Participant / TandaView / AdvanceStatus: ledger state of one tanda, with
  contract units converted to display units. Always built from a fresh
  ledger read, never from the local registry.
- ActivationResult: outcome of a sponsored account activation.
- RelayReceipt: what a confirmed fee-bump cost the sponsor.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

TandaStatus = Literal["waiting", "active", "completed", "cancelled"]

# Contract enum variant -> display status
STATUS_MAP = {
    "Forming": "waiting",
    "Active": "active",
    "Completed": "completed",
    "Cancelled": "cancelled",
}


class Balances(BaseModel):
    model_config = ConfigDict(frozen=True)

    native: float = Field(0.0, description="XLM balance.")
    asset: float = Field(0.0, description="Savings asset (EURC) balance.")


class SponsorInfo(BaseModel):
    public_key: str
    native_balance: float
    asset_balance: float = 0.0
    is_low_balance: bool = Field(..., description="True under MIN_SPONSOR_BALANCE.")
    network: str


class Participant(BaseModel):
    address: str
    status: Literal["Active", "Received", "Expelled"]
    position: int = Field(..., ge=0, description="Payout order, 0 receives first.")
    has_deposited: bool
    joined_at: int = Field(..., description="Unix seconds.")

    @property
    def has_received(self) -> bool:
        return self.status == "Received"


class TandaView(BaseModel):
    id: str
    name: str
    creator: str
    amount: float = Field(..., description="Per-cycle deposit in asset units.")
    amount_units: int = Field(..., description="Per-cycle deposit in contract units (7 decimals).")
    max_members: int
    current_members: int
    status: TandaStatus
    current_cycle: int
    total_cycles: int
    created_at: int
    started_at: int = 0
    last_payout_at: int = 0
    participants: List[Participant] = Field(default_factory=list)
    beneficiary_order: List[str] = Field(default_factory=list)

    def has_member(self, address: str) -> bool:
        return any(p.address == address for p in self.participants)


class AdvanceStatus(BaseModel):
    can_advance: bool = False
    will_expel_count: int = 0
    will_payout: bool = False
    beneficiary: Optional[str] = None


class ActivationResult(BaseModel):
    status: Literal["already_active", "needs_trustline", "created", "rejected", "timed_out"]
    public_key: str
    tx_hash: Optional[str] = Field(None, description="Hash of the sponsored create-account tx.")
    trustline_xdr: Optional[str] = Field(
        None, description="Unsigned change-trust envelope for the user to sign and relay."
    )
    error: Optional[Dict[str, Any]] = Field(None, description="Problem body when creation was rejected.")


class RelayReceipt(BaseModel):
    tx_hash: str
    fee_charged_stroops: int
    fee_charged_xlm: float
    ledger: Optional[int] = None


__all__ = [
    "STATUS_MAP",
    "TandaStatus",
    "Balances",
    "SponsorInfo",
    "Participant",
    "TandaView",
    "AdvanceStatus",
    "ActivationResult",
    "RelayReceipt",
]
