"""
Contract invocation orchestrator.

One invocation walks a strictly forward pipeline:

    Built -> Simulated -> Assembled -> Signed -> Submitted -> Confirmed | Rejected | TimedOut

Each stage is its own frozen type and every transition accepts only its
predecessor, so an envelope cannot be signed without having been simulated
and assembled first.

The sponsor account is the source of every invocation, so its sequence number
is shared by all concurrent callers. :class:`SponsorSequencer` serializes the
"take sequence -> build -> simulate -> sign -> submit" section; reads and
polling run outside it.
"""

from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Sequence, Union

from stellar_sdk import Account, Address, TransactionEnvelope
from stellar_sdk import xdr as stellar_xdr

from .adapters.soroban_rpc import SorobanRpc
from .config import Settings
from .directory import AccountDirectory
from .errors import MissingCounterSignature, SequenceConflict, SimulationFailure, SubmissionRejected
from .logging import bind_invocation_context, clear_invocation_context, get_logger
from .signer import CounterSigner, SponsorIdentity
from .tx.build import build_invocation
from .tx.codec import decode_scval
from .tx.outcome import Outcome, Rejected
from .tx.send import SubmissionHandle, poll, submit
from .tx.simulate import assemble, copy_envelope
from .types import SimulationFailed, SimulationResult, SimulationSuccess

log = get_logger(__name__)

# Ledgers a counter-party authorization stays valid (~8 minutes at 5 s/ledger)
AUTH_VALIDITY_LEDGERS = 100
READ_BASE_FEE = 100
# Reload-and-restart rounds after a stale sponsor sequence
CONFLICT_RESTARTS = 1


# ------------------------------- Stages ------------------------------------ #


@dataclass(frozen=True)
class Built:
    envelope: TransactionEnvelope
    method: str
    sequence: int

    def with_auth(self, entries: Sequence[stellar_xdr.SorobanAuthorizationEntry]) -> "Built":
        """Same envelope and sequence, with signed authorization entries installed."""
        te = copy_envelope(self.envelope)
        te.transaction.operations[0].auth = list(entries)
        return Built(envelope=te, method=self.method, sequence=self.sequence)


@dataclass(frozen=True)
class Simulated:
    built: Built
    result: SimulationSuccess


@dataclass(frozen=True)
class Assembled:
    envelope: TransactionEnvelope
    method: str
    sequence: int


@dataclass(frozen=True)
class Signed:
    envelope: TransactionEnvelope
    method: str
    sequence: int

    @property
    def hash(self) -> str:
        return self.envelope.hash_hex()


def _expect(stage: Any, kind: type) -> None:
    if not isinstance(stage, kind):
        raise TypeError(f"expected {kind.__name__}, got {type(stage).__name__}")


def to_simulated(built: Built, result: SimulationResult) -> Simulated:
    _expect(built, Built)
    if isinstance(result, SimulationFailed):
        raise SimulationFailure(result.error, method=built.method)
    return Simulated(built=built, result=result)


def to_assembled(simulated: Simulated) -> Assembled:
    _expect(simulated, Simulated)
    built = simulated.built
    return Assembled(envelope=assemble(built.envelope, simulated.result), method=built.method, sequence=built.sequence)


def to_signed(assembled: Assembled, sponsor: SponsorIdentity) -> Signed:
    _expect(assembled, Assembled)
    te = copy_envelope(assembled.envelope)
    sponsor.sign(te)
    return Signed(envelope=te, method=assembled.method, sequence=assembled.sequence)


# ------------------------------- Sequencer --------------------------------- #


class SponsorSequencer:
    """
    Single-slot serialization point for sponsor-sourced submissions.

    Holds a cached sponsor ``Account``. Building consumes the next sequence in
    place, so after an accepted submission the cache already points past it.
    Any exception leaving the slot (simulation failure, rejection,
    cancellation) drops the cache and the next holder reloads from Horizon.
    """

    def __init__(self, directory: AccountDirectory, public_key: str):
        self._directory = directory
        self._public_key = public_key
        self._lock = asyncio.Lock()
        self._account: Optional[Account] = None

    @asynccontextmanager
    async def slot(self) -> AsyncIterator["SponsorSequencer"]:
        async with self._lock:
            try:
                yield self
            except BaseException:
                self._account = None
                raise

    async def account(self) -> Account:
        if not self._lock.locked():
            raise RuntimeError("sponsor account requested outside the sequencer slot")
        if self._account is None:
            self._account = await self._directory.load_sequence(self._public_key)
            log.debug("sequencer.loaded", sequence=self._account.sequence)
        return self._account

    async def submit_with_restart(
        self, attempt: Callable[[Account], Awaitable[SubmissionHandle]], *, event: str
    ) -> Union[SubmissionHandle, Rejected]:
        """
        Run ``attempt`` in the slot with the sponsor account and return its handle.

        A SequenceConflict drops the cache, so the next round reloads from
        Horizon and rebuilds; once the restarts are spent the conflict comes
        back as ``Rejected``. A SubmissionRejected is returned as ``Rejected``
        at once. Anything else propagates.
        """
        conflict: Optional[SequenceConflict] = None
        for round_no in range(1, CONFLICT_RESTARTS + 2):
            try:
                async with self.slot():
                    return await attempt(await self.account())
            except SequenceConflict as e:
                conflict = e
                log.warning(f"{event}.sequence_conflict", attempt=round_no)
            except SubmissionRejected as e:
                log.warning(f"{event}.rejected", error=str(e), result_code=e.result_code)
                return Rejected(hash=e.tx_hash, error=e)
        return Rejected(hash=None, error=conflict)


# ------------------------------- Invoker ----------------------------------- #


def _address_of(entry: stellar_xdr.SorobanAuthorizationEntry) -> Optional[str]:
    if entry.credentials.type != stellar_xdr.SorobanCredentialsType.SOROBAN_CREDENTIALS_ADDRESS:
        return None
    return Address.from_xdr_sc_address(entry.credentials.address.address).address


class ContractInvoker:
    """
    Drives invocations of one contract with the sponsor as source and fee payer.

        sequencer = SponsorSequencer(directory, sponsor.public_key)
        invoker = ContractInvoker(rpc=rpc, directory=directory, sponsor=sponsor, settings=settings,
                                  sequencer=sequencer)
        value = await invoker.read("get_tanda", [string("00000001")])
        outcome = await invoker.invoke("deposit", [address(user), string(tid)],
                                       authorizer=user, signer_secret=secret)

    Every invoker (and the activator) of one sponsor must share a single
    ``SponsorSequencer``; separate sequencers do not serialize against each
    other and only meet again through conflict recovery.
    """

    def __init__(
        self,
        *,
        rpc: SorobanRpc,
        directory: AccountDirectory,
        sponsor: SponsorIdentity,
        settings: Settings,
        sequencer: SponsorSequencer,
    ):
        self.rpc = rpc
        self.directory = directory
        self.sponsor = sponsor
        self.settings = settings
        self.contract_id = settings.require_contract_id()
        self.sequencer = sequencer

    # ---------- reads ----------

    async def simulate(self, method: str, args: Sequence[stellar_xdr.SCVal]) -> SimulationResult:
        """Dry-run ``method``. Returns the Failure variant instead of raising."""
        # simulation does not check sequence numbers, so reads skip the account load
        source = Account(self.sponsor.public_key, 0)
        envelope = build_invocation(
            source,
            self.contract_id,
            method,
            args,
            base_fee=READ_BASE_FEE,
            network_passphrase=self.settings.passphrase,
            timeout=self.settings.tx_timeout_seconds,
        )
        return await self.rpc.simulate(envelope)

    async def read(self, method: str, args: Sequence[stellar_xdr.SCVal]) -> Any:
        result = await self.simulate(method, args)
        if isinstance(result, SimulationFailed):
            raise SimulationFailure(result.error, method=method)
        return decode_scval(result.return_value)

    # ---------- writes ----------

    async def invoke(
        self,
        method: str,
        args: Sequence[stellar_xdr.SCVal],
        *,
        authorizer: Optional[str] = None,
        signer_secret: Optional[str] = None,
        poll_attempts: Optional[int] = None,
        poll_interval: Optional[float] = None,
    ) -> Outcome:
        """
        Run the full pipeline for a state-changing call.

        Pre-flight failures raise (SponsorUnderfunded, MissingCounterSignature,
        SimulationFailure, ConfigurationError). Once a submission is attempted
        the result is an Outcome; ``Confirmed.return_value`` is decoded.
        """
        bind_invocation_context(invocation_id=uuid.uuid4().hex[:12], method=method)
        try:
            await self.directory.ensure_sponsor_funded()
            counter = self._counter_signer(method, authorizer, signer_secret)

            submitted = await self.sequencer.submit_with_restart(
                lambda source: self._submit_once(source, method, args, counter), event="invoke"
            )
            if isinstance(submitted, Rejected):
                return submitted

            outcome = await poll(
                self.rpc,
                submitted,
                attempts=self.settings.poll_attempts if poll_attempts is None else poll_attempts,
                interval=self.settings.poll_interval_seconds if poll_interval is None else poll_interval,
            )
            log.info("invoke.finished", tx_hash=outcome.hash, outcome=type(outcome).__name__)
            return outcome
        finally:
            clear_invocation_context("invocation_id", "method")

    def _counter_signer(self, method: str, authorizer: Optional[str], secret: Optional[str]) -> Optional[CounterSigner]:
        if authorizer is None or self.sponsor.owns(authorizer):
            return None
        if not secret:
            raise MissingCounterSignature(authorizer, method=method)
        return CounterSigner.from_secret(secret, expected=authorizer, method=method)

    async def _submit_once(
        self,
        source: Account,
        method: str,
        args: Sequence[stellar_xdr.SCVal],
        counter: Optional[CounterSigner],
    ) -> SubmissionHandle:
        envelope = build_invocation(
            source,
            self.contract_id,
            method,
            args,
            base_fee=self.settings.max_fee_stroops,
            network_passphrase=self.settings.passphrase,
            timeout=self.settings.tx_timeout_seconds,
        )
        built = Built(envelope=envelope, method=method, sequence=envelope.transaction.sequence)
        log.info("invoke.built", sequence=built.sequence)

        simulated = to_simulated(built, await self.rpc.simulate(built.envelope))
        if self._needs_authorization(simulated.result.auth):
            built = built.with_auth(await self._authorize(simulated.result, method, counter))
            # resources are measured with the signed auth entries installed
            simulated = to_simulated(built, await self.rpc.simulate(built.envelope))
        log.info("invoke.simulated", min_resource_fee=simulated.result.min_resource_fee)

        signed = to_signed(to_assembled(simulated), self.sponsor)
        handle = await submit(self.rpc, signed.envelope)
        log.info("invoke.submitted", tx_hash=handle.hash, sequence=signed.sequence)
        return handle

    def _needs_authorization(self, entries: List[stellar_xdr.SorobanAuthorizationEntry]) -> bool:
        return any(_address_of(e) is not None for e in entries)

    async def _authorize(
        self, result: SimulationSuccess, method: str, counter: Optional[CounterSigner]
    ) -> List[stellar_xdr.SorobanAuthorizationEntry]:
        latest = result.latest_ledger or await self.rpc.get_latest_ledger()
        valid_until = latest + AUTH_VALIDITY_LEDGERS
        signed: List[stellar_xdr.SorobanAuthorizationEntry] = []
        for entry in result.auth:
            addr = _address_of(entry)
            if addr is None:
                signed.append(entry)
                continue
            if self.sponsor.owns(addr):
                signer = self.sponsor
            elif counter is not None and counter.owns(addr):
                signer = counter
            else:
                raise MissingCounterSignature(addr, method=method)
            signed.append(
                signer.sign_auth_entry(entry, valid_until_ledger=valid_until, network_passphrase=self.settings.passphrase)
            )
        return signed


__all__ = [
    "Built",
    "Simulated",
    "Assembled",
    "Signed",
    "to_simulated",
    "to_assembled",
    "to_signed",
    "SponsorSequencer",
    "ContractInvoker",
    "AUTH_VALIDITY_LEDGERS",
    "CONFLICT_RESTARTS",
]
