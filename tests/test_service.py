from __future__ import annotations

import pytest

from tanda_relay.config import Settings
from tanda_relay.errors import ConfigurationError
from tanda_relay.registry import SqliteInstanceRegistry
from tanda_relay.service import Services

from .conftest import CONTRACT_ID


@pytest.mark.asyncio
async def test_services_share_one_sequencer(sponsor_kp, tmp_path):
    settings = Settings(
        _env_file=None, sponsor_secret_key=sponsor_kp.secret, contract_id=CONTRACT_ID, registry_path=tmp_path / "r.db"
    )
    services = Services.from_settings(settings)
    try:
        assert services.sponsor.public_key == sponsor_kp.public_key
        assert services.invoker.sequencer is services.sequencer
        assert services.activator.sequencer is services.sequencer
        assert services.require_tanda().registry is services.registry
        assert isinstance(services.registry, SqliteInstanceRegistry)
    finally:
        await services.aclose()


@pytest.mark.asyncio
async def test_relay_works_without_contract(sponsor_kp):
    services = Services.from_settings(Settings(_env_file=None, sponsor_secret_key=sponsor_kp.secret, contract_id=""))
    try:
        assert services.tanda is None
        assert services.relay is not None
        with pytest.raises(ConfigurationError) as exc:
            services.require_tanda()
        assert exc.value.to_problem()["details"] == {"setting": "CONTRACT_ID"}
    finally:
        await services.aclose()
