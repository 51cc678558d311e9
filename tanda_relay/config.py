from __future__ import annotations

"""
Configuration loader for tanda-relay.

- Reads environment variables (optionally from `.env`) via pydantic-settings.
- Derives network endpoints and passphrase from STELLAR_NETWORK unless they
  are set explicitly.
- Exposes a cached `get_settings()` accessor.

Environment variables:
    STELLAR_NETWORK          (str, default "testnet")  "testnet" or "mainnet"
    HORIZON_URL              (str, optional)           Horizon REST endpoint
    SOROBAN_RPC_URL          (str, optional)           Soroban JSON-RPC endpoint
    NETWORK_PASSPHRASE       (str, optional)
    SPONSOR_SECRET_KEY       (str, required to sign)   sponsor seed (S...)
    CONTRACT_ID              (str, optional)           tanda contract (C...)
    EURC_CODE / EURC_ISSUER / EURC_DECIMALS
    MAX_FEE_STROOPS          (int, default 100000)     sponsored fee ceiling
    MIN_SPONSOR_BALANCE      (float, default 10)       low-balance warning (XLM)
    SPONSOR_BALANCE_FLOOR    (float, default 2)        hard pre-flight floor (XLM)
    TX_TIMEOUT_SECONDS       (int, default 30)         envelope validity window
    RPC_TIMEOUT_SECONDS      (float, default 10)
    RPC_MAX_RETRIES          (int, default 2)          idempotent reads only
    POLL_INTERVAL_SECONDS    (float, default 1.0)
    POLL_ATTEMPTS            (int, default 30)
    REGISTRY_PATH            (str, optional)           sqlite file for the registry
    LOG_LEVEL / LOG_FORMAT
"""

from decimal import Decimal, ROUND_DOWN
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

TESTNET_PASSPHRASE = "Test SDF Network ; September 2015"
PUBLIC_PASSPHRASE = "Public Global Stellar Network ; September 2015"

_HORIZON = {
    "testnet": "https://horizon-testnet.stellar.org",
    "mainnet": "https://horizon.stellar.org",
}
_SOROBAN = {
    "testnet": "https://soroban-testnet.stellar.org",
    "mainnet": "https://soroban.stellar.org",
}

# Stellar amounts carry 7 decimals (1 XLM = 10^7 stroops)
STROOPS_PER_XLM = 10_000_000


class Settings(BaseSettings):
    # Network
    stellar_network: Literal["testnet", "mainnet"] = Field("testnet", description="Target network")
    horizon_url: Optional[str] = Field(None, description="Horizon REST endpoint")
    soroban_rpc_url: Optional[str] = Field(None, description="Soroban JSON-RPC endpoint")
    network_passphrase: Optional[str] = Field(None, description="Network passphrase")

    # Sponsor & contract
    sponsor_secret_key: Optional[SecretStr] = Field(None, description="Sponsor secret seed")
    contract_id: str = Field("", description="Tanda contract address")

    # Savings asset
    eurc_code: str = "EURC"
    eurc_issuer: str = "GAQRF3UGHBT6JYQZ7YSUYCIYWAF4T2SAA5237Q5LIQYJOHHFAWDXZ7NM"
    eurc_decimals: int = 7

    # Fees & balances
    max_fee_stroops: int = Field(100_000, ge=100, description="Fee ceiling for sponsored envelopes")
    min_sponsor_balance: float = Field(10.0, ge=0, description="Low-balance warning threshold (XLM)")
    sponsor_balance_floor: float = Field(2.0, ge=0, description="Pre-flight floor (XLM)")

    # Timing
    tx_timeout_seconds: int = Field(30, ge=1)
    rpc_timeout_seconds: float = Field(10.0, gt=0)
    rpc_max_retries: int = Field(2, ge=0)
    poll_interval_seconds: float = Field(1.0, ge=0)
    poll_attempts: int = Field(30, ge=1)

    # Local index
    registry_path: Optional[Path] = None

    # Logging
    log_level: str = Field("INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    log_format: Literal["json", "console"] = "json"

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", case_sensitive=False, extra="ignore"
    )

    @field_validator("stellar_network", mode="before")
    @classmethod
    def _lower_network(cls, v):
        return str(v).strip().lower() if v is not None else "testnet"

    @field_validator("horizon_url", "soroban_rpc_url", mode="after")
    @classmethod
    def _check_scheme(cls, v: Optional[str]) -> Optional[str]:
        if v and not v.lower().startswith(("http://", "https://")):
            raise ValueError(f"URL must start with http:// or https://, got: {v!r}")
        return v.rstrip("/") if v else v

    # --- Derived values ------------------------------------------------------

    @property
    def horizon(self) -> str:
        return self.horizon_url or _HORIZON[self.stellar_network]

    @property
    def soroban_rpc(self) -> str:
        return self.soroban_rpc_url or _SOROBAN[self.stellar_network]

    @property
    def passphrase(self) -> str:
        if self.network_passphrase:
            return self.network_passphrase
        return PUBLIC_PASSPHRASE if self.stellar_network == "mainnet" else TESTNET_PASSPHRASE

    def require_contract_id(self) -> str:
        if not self.contract_id:
            raise ConfigurationError("Soroban contract not configured", setting="CONTRACT_ID")
        return self.contract_id

    def require_sponsor_secret(self) -> str:
        if self.sponsor_secret_key is None or not self.sponsor_secret_key.get_secret_value():
            raise ConfigurationError(
                "Missing required environment variable: SPONSOR_SECRET_KEY",
                setting="SPONSOR_SECRET_KEY",
            )
        return self.sponsor_secret_key.get_secret_value()

    def log_summary(self) -> Dict[str, Any]:
        """Non-secret configuration, suitable for a startup log line."""
        return {
            "network": self.stellar_network,
            "horizon": self.horizon,
            "soroban_rpc": self.soroban_rpc,
            "contract_id": self.contract_id or None,
            "max_fee_stroops": self.max_fee_stroops,
            "sponsor_balance_floor": self.sponsor_balance_floor,
            "poll_attempts": self.poll_attempts,
            "registry_path": str(self.registry_path) if self.registry_path else None,
        }


# ------------------------------- Unit helpers -------------------------------- #


def stroops_to_xlm(stroops: int) -> float:
    return int(stroops) / STROOPS_PER_XLM


def xlm_to_stroops(xlm: float | str | Decimal) -> int:
    return int((Decimal(str(xlm)) * STROOPS_PER_XLM).to_integral_value(rounding=ROUND_DOWN))


def asset_to_units(amount: float | str | Decimal, decimals: int = 7) -> int:
    """Convert a display amount (e.g. 100.5 EURC) into contract units."""
    scale = Decimal(10) ** decimals
    return int((Decimal(str(amount)) * scale).to_integral_value(rounding=ROUND_DOWN))


def units_to_asset(units: int, decimals: int = 7) -> float:
    return float(Decimal(int(units)) / (Decimal(10) ** decimals))


# ------------------------------- Accessor API -------------------------------- #


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # pydantic-settings will read .env automatically


__all__ = [
    "Settings",
    "get_settings",
    "STROOPS_PER_XLM",
    "TESTNET_PASSPHRASE",
    "PUBLIC_PASSPHRASE",
    "stroops_to_xlm",
    "xlm_to_stroops",
    "asset_to_units",
    "units_to_asset",
]
