from __future__ import annotations

import pytest
from pydantic import ValidationError

from tanda_relay.config import (
    PUBLIC_PASSPHRASE,
    TESTNET_PASSPHRASE,
    Settings,
    asset_to_units,
    stroops_to_xlm,
    units_to_asset,
    xlm_to_stroops,
)
from tanda_relay.errors import ConfigurationError


def test_defaults_derive_testnet_endpoints(monkeypatch):
    monkeypatch.delenv("STELLAR_NETWORK", raising=False)
    s = Settings(_env_file=None)
    assert s.stellar_network == "testnet"
    assert s.horizon == "https://horizon-testnet.stellar.org"
    assert s.soroban_rpc == "https://soroban-testnet.stellar.org"
    assert s.passphrase == TESTNET_PASSPHRASE
    assert s.max_fee_stroops == 100_000


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("STELLAR_NETWORK", " MAINNET ")
    monkeypatch.setenv("SOROBAN_RPC_URL", "https://rpc.example.org/")
    monkeypatch.setenv("MAX_FEE_STROOPS", "250000")
    s = Settings(_env_file=None)
    assert s.stellar_network == "mainnet"
    assert s.passphrase == PUBLIC_PASSPHRASE
    assert s.horizon == "https://horizon.stellar.org"
    assert s.soroban_rpc == "https://rpc.example.org"
    assert s.max_fee_stroops == 250_000


def test_bad_url_scheme_is_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, horizon_url="ftp://horizon")


def test_required_values_raise_configuration_error():
    s = Settings(_env_file=None, contract_id="", sponsor_secret_key=None)
    with pytest.raises(ConfigurationError) as ei:
        s.require_contract_id()
    assert ei.value.details == {"setting": "CONTRACT_ID"}
    with pytest.raises(ConfigurationError):
        s.require_sponsor_secret()


def test_log_summary_never_contains_the_secret():
    s = Settings(_env_file=None, sponsor_secret_key="SSECRETVALUE")
    assert "SSECRETVALUE" not in repr(s.log_summary())
    assert "SSECRETVALUE" not in repr(s)


def test_unit_conversions():
    assert stroops_to_xlm(100_000) == 0.01
    assert xlm_to_stroops("1.5") == 15_000_000
    assert asset_to_units(100) == 1_000_000_000
    assert asset_to_units("0.00000019") == 1
    assert units_to_asset(1_005_000_000) == 100.5
    assert asset_to_units(2, decimals=2) == 200
