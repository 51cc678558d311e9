"""
Process-level wiring.

Builds every collaborator from :class:`Settings` once, so the HTTP layer and
the CLI share one sponsor identity, one sequencer and one registry:

    services = Services.from_settings()
    try:
        view = await services.require_tanda().tanda_view("00000001")
    finally:
        await services.aclose()
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .activation import AccountActivator
from .adapters.horizon import HorizonClient, HorizonConfig
from .adapters.soroban_rpc import SorobanRpc, SorobanRpcConfig
from .config import Settings, get_settings
from .directory import AccountDirectory
from .errors import ConfigurationError
from .logging import get_logger
from .orchestrator import ContractInvoker, SponsorSequencer
from .registry import InstanceRegistry, SqliteInstanceRegistry, open_registry
from .relay import FeeBumpRelay
from .signer import SponsorIdentity
from .tanda import TandaClient

log = get_logger(__name__)


@dataclass
class Services:
    settings: Settings
    rpc: SorobanRpc
    horizon: HorizonClient
    sponsor: SponsorIdentity
    directory: AccountDirectory
    sequencer: SponsorSequencer
    registry: InstanceRegistry
    relay: FeeBumpRelay
    activator: AccountActivator
    invoker: Optional[ContractInvoker] = None
    tanda: Optional[TandaClient] = None

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "Services":
        settings = settings or get_settings()
        sponsor = SponsorIdentity.from_settings(settings)
        rpc = SorobanRpc(
            SorobanRpcConfig(
                url=settings.soroban_rpc,
                timeout_s=settings.rpc_timeout_seconds,
                max_retries=settings.rpc_max_retries,
            )
        )
        horizon = HorizonClient(
            HorizonConfig(
                url=settings.horizon,
                timeout_s=settings.rpc_timeout_seconds,
                max_retries=settings.rpc_max_retries,
            )
        )
        directory = AccountDirectory(horizon, settings, sponsor_public_key=sponsor.public_key)
        sequencer = SponsorSequencer(directory, sponsor.public_key)
        registry = open_registry(settings.registry_path)
        common = dict(rpc=rpc, directory=directory, sponsor=sponsor, settings=settings)

        invoker = tanda = None
        if settings.contract_id:
            invoker = ContractInvoker(sequencer=sequencer, **common)
            tanda = TandaClient(invoker, registry, settings)
        else:
            log.warning("service.contract_not_configured")

        log.info("service.ready", sponsor=sponsor.public_key, **settings.log_summary())
        return cls(
            settings=settings,
            rpc=rpc,
            horizon=horizon,
            sponsor=sponsor,
            directory=directory,
            sequencer=sequencer,
            registry=registry,
            relay=FeeBumpRelay(**common),
            activator=AccountActivator(sequencer=sequencer, **common),
            invoker=invoker,
            tanda=tanda,
        )

    def require_tanda(self) -> TandaClient:
        if self.tanda is None:
            raise ConfigurationError("Soroban contract not configured", setting="CONTRACT_ID")
        return self.tanda

    async def aclose(self) -> None:
        await self.rpc.close()
        await self.horizon.close()
        if isinstance(self.registry, SqliteInstanceRegistry):
            self.registry.close()


__all__ = ["Services"]
