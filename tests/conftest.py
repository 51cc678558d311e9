from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pytest
from stellar_sdk import (
    Address,
    CreateAccount,
    FeeBumpTransactionEnvelope,
    Keypair,
    SorobanDataBuilder,
    StrKey,
    TransactionEnvelope,
    scval,
)
from stellar_sdk import xdr as stellar_xdr

from tanda_relay.adapters.horizon import AccountRecord, BalanceLine
from tanda_relay.config import Settings
from tanda_relay.directory import AccountDirectory
from tanda_relay.errors import AccountNotFound
from tanda_relay.orchestrator import ContractInvoker, SponsorSequencer
from tanda_relay.registry import InstanceRegistry
from tanda_relay.signer import SponsorIdentity
from tanda_relay.tanda import TandaClient
from tanda_relay.tx.codec import decode_scval
from tanda_relay.types import (
    SendReport,
    SendStatus,
    SimulationFailed,
    SimulationSuccess,
    TransactionReport,
    TxStatus,
)

CONTRACT_ID = StrKey.encode_contract(bytes(range(32)))
EURC_ISSUER = "GAQRF3UGHBT6JYQZ7YSUYCIYWAF4T2SAA5237Q5LIQYJOHHFAWDXZ7NM"


# ----------------------------------------------------------------------------
# SCVal helpers used by the fake contract
# ----------------------------------------------------------------------------


def sc_struct(**fields: stellar_xdr.SCVal) -> stellar_xdr.SCVal:
    entries = [stellar_xdr.SCMapEntry(key=scval.to_symbol(k), val=v) for k, v in sorted(fields.items())]
    return stellar_xdr.SCVal(type=stellar_xdr.SCValType.SCV_MAP, map=stellar_xdr.SCMap(entries))


def sc_variant(name: str) -> stellar_xdr.SCVal:
    return scval.to_vec([scval.to_symbol(name)])


def address_auth_entry(address: str, function: str, args: List[stellar_xdr.SCVal], nonce: int = 7):
    """Unsigned address-credential auth entry, as recorded by a simulation."""
    return stellar_xdr.SorobanAuthorizationEntry(
        credentials=stellar_xdr.SorobanCredentials(
            type=stellar_xdr.SorobanCredentialsType.SOROBAN_CREDENTIALS_ADDRESS,
            address=stellar_xdr.SorobanAddressCredentials(
                address=Address(address).to_xdr_sc_address(),
                nonce=stellar_xdr.Int64(nonce),
                signature_expiration_ledger=stellar_xdr.Uint32(0),
                signature=scval.to_void(),
            ),
        ),
        root_invocation=stellar_xdr.SorobanAuthorizedInvocation(
            function=stellar_xdr.SorobanAuthorizedFunction(
                type=stellar_xdr.SorobanAuthorizedFunctionType.SOROBAN_AUTHORIZED_FUNCTION_TYPE_CONTRACT_FN,
                contract_fn=stellar_xdr.InvokeContractArgs(
                    contract_address=Address(CONTRACT_ID).to_xdr_sc_address(),
                    function_name=stellar_xdr.SCSymbol(function.encode()),
                    args=list(args),
                ),
            ),
            sub_invocations=[],
        ),
    )


# ----------------------------------------------------------------------------
# In-memory tanda contract
# ----------------------------------------------------------------------------


class ContractError(Exception):
    pass


class TandaModel:
    """Just enough of the savings-circle rules to drive the pipeline."""

    def __init__(self) -> None:
        self.tandas: Dict[str, Dict[str, Any]] = {}
        self.members: Dict[str, List[Dict[str, Any]]] = {}
        self.count = 0
        self.now = 1_700_000_000

    def _tanda(self, tid: str) -> Dict[str, Any]:
        if tid not in self.tandas:
            raise ContractError("HostError: Error(Contract, #1) tanda not found")
        return self.tandas[tid]

    def create_tanda(self, creator, name, amount, max_members):
        if amount <= 0 or not 2 <= max_members <= 12:
            raise ContractError("HostError: Error(Contract, #2) invalid parameters")
        self.count += 1
        tid = f"{self.count:08d}"
        self.tandas[tid] = dict(
            id=tid, name=name, creator=creator, amount=amount, max_members=max_members,
            status="Forming", current_cycle=0, total_cycles=0,
            created_at=self.now, started_at=0, last_payout_at=0,
        )
        self.members[tid] = [dict(address=creator, status="Active", position=0, has_deposited=False, joined_at=self.now)]
        return tid

    def join_tanda(self, user, tid):
        t = self._tanda(tid)
        members = self.members[tid]
        if t["status"] != "Forming" or any(m["address"] == user for m in members) or len(members) >= t["max_members"]:
            raise ContractError("HostError: Error(Contract, #3) cannot join")
        members.append(dict(address=user, status="Active", position=len(members), has_deposited=False, joined_at=self.now))

    def start_tanda(self, caller, tid):
        t = self._tanda(tid)
        if caller != t["creator"] or t["status"] != "Forming" or len(self.members[tid]) < 2:
            raise ContractError("HostError: Error(Contract, #4) cannot start")
        t.update(status="Active", current_cycle=1, total_cycles=len(self.members[tid]), started_at=self.now, last_payout_at=self.now)

    def deposit(self, user, tid):
        t = self._tanda(tid)
        m = next((m for m in self.members[tid] if m["address"] == user), None)
        if t["status"] != "Active" or m is None or m["has_deposited"]:
            raise ContractError("HostError: Error(Contract, #5) cannot deposit")
        m["has_deposited"] = True

    def all_deposited(self, tid):
        self._tanda(tid)
        return all(m["has_deposited"] for m in self.members[tid] if m["status"] != "Expelled")

    def advance(self, tid):
        t = self._tanda(tid)
        if t["status"] != "Active" or not self.all_deposited(tid):
            return False
        for m in self.members[tid]:
            if m["position"] == t["current_cycle"] - 1:
                m["status"] = "Received"
            m["has_deposited"] = False
        t["current_cycle"] += 1
        t["last_payout_at"] = self.now
        if t["current_cycle"] > t["total_cycles"]:
            t["status"] = "Completed"
        return True

    def cancel_tanda(self, caller, tid):
        t = self._tanda(tid)
        if caller != t["creator"] or t["status"] != "Forming":
            raise ContractError("HostError: Error(Contract, #6) cannot cancel")
        t["status"] = "Cancelled"

    def get_tanda(self, tid):
        return self._tanda(tid)

    def get_members(self, tid):
        self._tanda(tid)
        return self.members[tid]

    def get_beneficiary(self, tid):
        t = self._tanda(tid)
        return next(m["address"] for m in self.members[tid] if m["position"] == t["current_cycle"] - 1)

    def time_to_deadline(self, tid):
        t = self._tanda(tid)
        return max(0, t["last_payout_at"] + 7 * 86400 - self.now)

    def get_advance_status(self, tid):
        t = self._tanda(tid)
        if t["status"] != "Active":
            return (False, 0, False, None)
        done = self.all_deposited(tid)
        return (done, 0, done, self.get_beneficiary(tid))

    # --- encoding --------------------------------------------------------

    def call(self, function: str, args: List[Any]) -> stellar_xdr.SCVal:
        fn = getattr(self, function, None)
        if fn is None or function.startswith("_") or function == "call":
            raise ContractError(f"HostError: Error(WasmVm, MissingValue) no function {function}")
        return self._encode(function, fn(*args))

    def _encode(self, function: str, value: Any) -> stellar_xdr.SCVal:
        if function == "get_tanda":
            return self._encode_tanda(value)
        if function == "get_members":
            return scval.to_vec([self._encode_member(m) for m in value])
        if function == "get_advance_status":
            can, count, payout, beneficiary = value
            return scval.to_vec([
                scval.to_bool(can), scval.to_uint32(count), scval.to_bool(payout),
                scval.to_address(beneficiary) if beneficiary else scval.to_void(),
            ])
        if function == "create_tanda":
            return scval.to_string(value)
        if function == "get_beneficiary":
            return scval.to_address(value)
        if function == "time_to_deadline":
            return scval.to_uint64(value)
        if isinstance(value, bool):
            return scval.to_bool(value)
        return scval.to_void()

    @staticmethod
    def _encode_tanda(t: Dict[str, Any]) -> stellar_xdr.SCVal:
        return sc_struct(
            id=scval.to_string(t["id"]),
            name=scval.to_string(t["name"]),
            creator=scval.to_address(t["creator"]),
            amount=scval.to_int128(t["amount"]),
            max_members=scval.to_uint32(t["max_members"]),
            status=sc_variant(t["status"]),
            current_cycle=scval.to_uint32(t["current_cycle"]),
            total_cycles=scval.to_uint32(t["total_cycles"]),
            created_at=scval.to_uint64(t["created_at"]),
            started_at=scval.to_uint64(t["started_at"]),
            last_payout_at=scval.to_uint64(t["last_payout_at"]),
        )

    @staticmethod
    def _encode_member(m: Dict[str, Any]) -> stellar_xdr.SCVal:
        return sc_struct(
            address=scval.to_address(m["address"]),
            status=sc_variant(m["status"]),
            position=scval.to_uint32(m["position"]),
            has_deposited=scval.to_bool(m["has_deposited"]),
            joined_at=scval.to_uint64(m["joined_at"]),
        )


# ----------------------------------------------------------------------------
# Fake ledger: Horizon + Soroban RPC over one state
# ----------------------------------------------------------------------------


@dataclass
class LedgerAccount:
    sequence: int
    native: float = 100.0
    lines: List[BalanceLine] = field(default_factory=list)


class FakeHorizon:
    def __init__(self, ledger: "FakeLedger"):
        self.ledger = ledger
        self.frozen: Optional[Dict[str, int]] = None
        self.loads = 0

    def freeze(self) -> None:
        """Serve the current sequences forever (an indexer that stopped ingesting)."""
        self.frozen = {k: a.sequence for k, a in self.ledger.accounts.items()}

    async def load_account(self, account_id: str) -> AccountRecord:
        await asyncio.sleep(0)
        self.loads += 1
        acct = self.ledger.accounts.get(account_id)
        if acct is None:
            raise AccountNotFound(account_id)
        seq = self.frozen.get(account_id, acct.sequence) if self.frozen is not None else acct.sequence
        balances = [BalanceLine(asset_type="native", balance=f"{acct.native:.7f}"), *acct.lines]
        return AccountRecord(account_id=account_id, sequence=seq, balances=balances)


class FakeLedger:
    def __init__(self) -> None:
        self.accounts: Dict[str, LedgerAccount] = {}
        self.contract = TandaModel()
        self.results: Dict[str, TransactionReport] = {}
        self.polls: Dict[str, int] = {}
        self.ledger_seq = 1000


class FakeSorobanRpc:
    """
    Soroban RPC double backed by :class:`FakeLedger`.

    - simulate dry-runs the contract on a copy of its state
    - send enforces sequence numbers (txBAD_SEQ, or txFEE_BUMP_INNER_FAILED
      wrapping it for fee bumps) and applies the call
    - get_transaction answers NOT_FOUND ``pending_rounds`` times per hash
    """

    def __init__(self, ledger: FakeLedger):
        self.ledger = ledger
        self.pending_rounds = 1
        self.emit_auth = False
        self.fee_charged = 200
        self.simulated: List[TransactionEnvelope] = []
        self.sent: List[Any] = []
        self.bad_seq = 0
        self.get_calls = 0

    @staticmethod
    def _invocation(tx):
        call = tx.operations[0].host_function.invoke_contract
        return call.function_name.sc_symbol.decode(), call.args

    async def simulate(self, envelope) -> Any:
        await asyncio.sleep(0)
        self.simulated.append(envelope)
        function, args = self._invocation(envelope.transaction)
        dry = copy.deepcopy(self.ledger.contract)
        try:
            ret = dry.call(function, [decode_scval(a) for a in args])
        except ContractError as e:
            return SimulationFailed(error=str(e))
        auth = []
        if self.emit_auth and not envelope.transaction.operations[0].auth and args:
            first = decode_scval(args[0])
            source = envelope.transaction.source.account_id
            if isinstance(first, str) and first.startswith("G") and first != source:
                auth = [address_auth_entry(first, function, list(args))]
        return SimulationSuccess(
            transaction_data=SorobanDataBuilder().build(),
            min_resource_fee=5_000,
            auth=auth,
            return_value=ret,
            latest_ledger=self.ledger.ledger_seq,
        )

    async def get_latest_ledger(self) -> int:
        return self.ledger.ledger_seq

    async def send(self, envelope) -> SendReport:
        await asyncio.sleep(0)
        self.sent.append(envelope)
        tx_hash = envelope.hash_hex()
        tx = envelope.transaction
        inner = tx.inner_transaction_envelope.transaction if isinstance(envelope, FeeBumpTransactionEnvelope) else tx
        acct = self.ledger.accounts[inner.source.account_id]
        if inner.sequence != acct.sequence + 1:
            self.bad_seq += 1
            if inner is not tx:
                # the network reports a stale inner sequence under the fee-bump code
                return SendReport(
                    status=SendStatus.ERROR,
                    hash=tx_hash,
                    error_code="txFEE_BUMP_INNER_FAILED",
                    inner_error_code="txBAD_SEQ",
                )
            return SendReport(status=SendStatus.ERROR, hash=tx_hash, error_code="txBAD_SEQ")
        acct.sequence = inner.sequence
        self.ledger.ledger_seq += 1

        op = inner.operations[0]
        report = TransactionReport(status=TxStatus.SUCCESS, ledger=self.ledger.ledger_seq, fee_charged=self.fee_charged)
        if isinstance(op, CreateAccount):
            self.ledger.accounts[op.destination] = LedgerAccount(sequence=self.ledger.ledger_seq << 32, native=float(op.starting_balance))
        elif hasattr(op, "host_function"):
            function, args = self._invocation(inner)
            try:
                ret = self.ledger.contract.call(function, [decode_scval(a) for a in args])
                report = TransactionReport(
                    status=TxStatus.SUCCESS, ledger=self.ledger.ledger_seq, fee_charged=self.fee_charged, return_value=ret
                )
            except ContractError:
                report = TransactionReport(
                    status=TxStatus.FAILED, ledger=self.ledger.ledger_seq, fee_charged=self.fee_charged, result_code="txFAILED"
                )
        self.ledger.results[tx_hash] = report
        return SendReport(status=SendStatus.PENDING, hash=tx_hash)

    async def get_transaction(self, tx_hash: str) -> TransactionReport:
        await asyncio.sleep(0)
        self.get_calls += 1
        seen = self.ledger.polls.get(tx_hash, 0)
        self.ledger.polls[tx_hash] = seen + 1
        if tx_hash not in self.ledger.results or seen < self.pending_rounds:
            return TransactionReport(status=TxStatus.NOT_FOUND)
        return self.ledger.results[tx_hash]


# ----------------------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------------------


@pytest.fixture
def sponsor_kp() -> Keypair:
    return Keypair.random()


@pytest.fixture
def alice() -> Keypair:
    return Keypair.random()


@pytest.fixture
def bob() -> Keypair:
    return Keypair.random()


@pytest.fixture
def settings(sponsor_kp: Keypair) -> Settings:
    return Settings(
        _env_file=None,
        sponsor_secret_key=sponsor_kp.secret,
        contract_id=CONTRACT_ID,
        poll_interval_seconds=0,
        poll_attempts=5,
    )


@pytest.fixture
def ledger(sponsor_kp: Keypair, alice: Keypair, bob: Keypair) -> FakeLedger:
    lg = FakeLedger()
    lg.accounts[sponsor_kp.public_key] = LedgerAccount(sequence=1_000, native=500.0)
    lg.accounts[alice.public_key] = LedgerAccount(
        sequence=2_000, native=2.0, lines=[BalanceLine("credit_alphanum4", "150.0000000", "EURC", EURC_ISSUER)]
    )
    lg.accounts[bob.public_key] = LedgerAccount(sequence=3_000, native=2.0)
    return lg


@pytest.fixture
def horizon(ledger: FakeLedger) -> FakeHorizon:
    return FakeHorizon(ledger)


@pytest.fixture
def rpc(ledger: FakeLedger) -> FakeSorobanRpc:
    return FakeSorobanRpc(ledger)


@pytest.fixture
def sponsor(sponsor_kp: Keypair) -> SponsorIdentity:
    return SponsorIdentity.from_secret(sponsor_kp.secret)


@pytest.fixture
def directory(horizon: FakeHorizon, settings: Settings, sponsor: SponsorIdentity) -> AccountDirectory:
    return AccountDirectory(horizon, settings, sponsor_public_key=sponsor.public_key)


@pytest.fixture
def sequencer(directory: AccountDirectory, sponsor: SponsorIdentity) -> SponsorSequencer:
    return SponsorSequencer(directory, sponsor.public_key)


@pytest.fixture
def invoker(rpc, directory, sponsor, settings, sequencer) -> ContractInvoker:
    return ContractInvoker(rpc=rpc, directory=directory, sponsor=sponsor, settings=settings, sequencer=sequencer)


@pytest.fixture
def registry() -> InstanceRegistry:
    return InstanceRegistry()


@pytest.fixture
def client(invoker: ContractInvoker, registry: InstanceRegistry, settings: Settings) -> TandaClient:
    return TandaClient(invoker, registry, settings)
