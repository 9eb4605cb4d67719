import os
from dataclasses import dataclass, field
from typing import Optional

from .errors import ConfigError

DEFAULT_NETWORK = "ethereum"


@dataclass(frozen=True)
class Config:
    rpc_endpoint: str
    network: str = DEFAULT_NETWORK
    private_key: Optional[str] = field(default=None, repr=False)
    api3_market_api_key: Optional[str] = field(default=None, repr=False)
    oev_api_key: Optional[str] = field(default=None, repr=False)
    request_timeout: int = 10
    max_retries: int = 3
    backoff_seconds: float = 0.5
    log_level: str = "INFO"

    @property
    def has_private_key(self) -> bool:
        return bool(self.private_key)


def _int_env(name: str, default: str) -> int:
    raw = os.getenv(name, default).strip()
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got '{raw}'.") from None
    if value < 0:
        raise ConfigError(f"{name} must be non-negative.")
    return value


def _float_env(name: str, default: str) -> float:
    raw = os.getenv(name, default).strip()
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got '{raw}'.") from None


def _optional_env(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def load_config() -> Config:
    """Load configuration from environment variables."""
    rpc_endpoint = os.getenv("API3_RPC_ENDPOINT")
    if not rpc_endpoint or not rpc_endpoint.strip():
        raise ConfigError("API3_RPC_ENDPOINT is required but not set.")

    network = os.getenv("API3_NETWORK", DEFAULT_NETWORK).strip().lower() or DEFAULT_NETWORK

    return Config(
        rpc_endpoint=rpc_endpoint.strip(),
        network=network,
        private_key=_optional_env("API3_PRIVATE_KEY"),
        api3_market_api_key=_optional_env("API3_MARKET_API_KEY"),
        oev_api_key=_optional_env("API3_OEV_API_KEY"),
        request_timeout=_int_env("REQUEST_TIMEOUT", "10"),
        max_retries=_int_env("REQUEST_RETRIES", "3"),
        backoff_seconds=_float_env("REQUEST_BACKOFF_SECONDS", "0.5"),
        log_level=os.getenv("API3_LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )
