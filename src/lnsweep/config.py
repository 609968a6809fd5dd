"""
Configuration management using pydantic-settings.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from lnsweep.constants import DEFAULT_FEE_RATE, DEFAULT_RECOVERY_WINDOW, SWEEP_DUST_LIMIT

NetworkName = Literal["mainnet", "testnet", "signet", "regtest"]


class NetworkParams(BaseModel):
    """Chain parameters needed for addresses and extended key encoding."""

    model_config = ConfigDict(frozen=True)

    name: str
    bech32_hrp: str
    coin_type: int
    xprv_version: bytes
    xpub_version: bytes
    wif_prefix: int
    p2pkh_prefix: int


MAINNET = NetworkParams(
    name="mainnet",
    bech32_hrp="bc",
    coin_type=0,
    xprv_version=bytes.fromhex("0488ade4"),
    xpub_version=bytes.fromhex("0488b21e"),
    wif_prefix=0x80,
    p2pkh_prefix=0x00,
)

TESTNET = NetworkParams(
    name="testnet",
    bech32_hrp="tb",
    coin_type=1,
    xprv_version=bytes.fromhex("04358394"),
    xpub_version=bytes.fromhex("043587cf"),
    wif_prefix=0xEF,
    p2pkh_prefix=0x6F,
)

SIGNET = TESTNET.model_copy(update={"name": "signet"})

REGTEST = TESTNET.model_copy(update={"name": "regtest", "bech32_hrp": "bcrt"})

NETWORKS: dict[str, NetworkParams] = {
    "mainnet": MAINNET,
    "testnet": TESTNET,
    "signet": SIGNET,
    "regtest": REGTEST,
}

DEFAULT_API_URLS: dict[str, str] = {
    "mainnet": "https://blockstream.info/api",
    "testnet": "https://blockstream.info/testnet/api",
    "signet": "https://mempool.space/signet/api",
    "regtest": "http://127.0.0.1:3002",
}


def get_network_params(network: str) -> NetworkParams:
    try:
        return NETWORKS[network]
    except KeyError:
        raise ValueError(f"Unknown network: {network}") from None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LNSWEEP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
    )

    network: NetworkName = "mainnet"
    api_url: str = ""

    recovery_window: int = Field(default=DEFAULT_RECOVERY_WINDOW, ge=1)
    fee_rate: int = Field(default=DEFAULT_FEE_RATE, ge=1, description="Fee rate in sat/vbyte")
    dust_limit: int = Field(default=SWEEP_DUST_LIMIT, ge=0)
    lookup_concurrency: int = Field(default=4, ge=1, le=32)
    request_timeout: float = Field(default=30.0, gt=0)

    log_level: str = "INFO"

    @property
    def params(self) -> NetworkParams:
        return get_network_params(self.network)

    def get_api_url(self) -> str:
        return self.api_url or DEFAULT_API_URLS[self.network]


def get_settings(**overrides: object) -> Settings:
    return Settings(**overrides)  # type: ignore[arg-type]
