"""Settlement Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - Secrets (RPC key, database password) only ever come from the environment or .env
    - get_settings() is cached (lru_cache): one Settings per process
    - database_url always names an async driver (postgresql:// is rewritten to asyncpg)

Design Decisions:
    - rate_limit_backend="memory" holds for a single instance only; multi-instance
      deployments set "database" so counters are shared
    - Per-network RPC_URLS (JSON object) take precedence over the keyed URL template
    - Only networks in networks() are ever put into an RPC URL; the set is fixed by
      the deployment, never by request data
    - trusted_proxy_count=0 keys rate limits on the socket peer; N>0 trusts the last
      N X-Forwarded-For hops
"""

import re
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ASYNC_DRIVERS = {"postgresql://": "postgresql+asyncpg://", "postgres://": "postgresql+asyncpg://"}
_NETWORK_RE = re.compile(r"^[a-z0-9][a-z0-9-]{0,31}$")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # storage
    database_url: str = "postgresql+asyncpg://desynth:desynth@db:5432/desynth"
    database_pool_size: int = Field(20, ge=1)
    database_max_overflow: int = Field(10, ge=0)

    # chain access
    rpc_api_key: str | None = None
    rpc_url_template: str = "https://eth-{network}.g.alchemy.com/v2/{api_key}"
    rpc_urls: dict[str, str] = {}
    rpc_timeout_seconds: float = Field(10.0, gt=0)
    default_network: str = "sepolia"
    supported_networks: list[str] = []
    min_confirmations: int = Field(1, ge=1)

    # request throttling
    rate_limit_backend: Literal["memory", "database"] = "memory"
    rate_limit_max_requests: int = Field(20, ge=1)
    rate_limit_window_seconds: float = Field(60.0, gt=0)
    trusted_proxy_count: int = Field(0, ge=0)

    # pricing
    currency_decimals: int = Field(2, ge=0, le=8)

    cors_origins: list[str] = ["http://localhost:5173"]
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    @field_validator("database_url", mode="before")
    @classmethod
    def use_async_driver(cls, v: str) -> str:
        if isinstance(v, str):
            for prefix, replacement in _ASYNC_DRIVERS.items():
                if v.startswith(prefix):
                    return replacement + v[len(prefix):]
        return v

    @field_validator("default_network", "supported_networks", mode="after")
    @classmethod
    def network_slugs(cls, v):
        for name in [v] if isinstance(v, str) else v:
            if not _NETWORK_RE.match(name):
                raise ValueError(f"invalid network name {name!r}")
        return v

    def networks(self) -> frozenset[str]:
        """Networks escrows may name: default, allowlist and explicit RPC endpoints."""
        return frozenset({self.default_network, *self.supported_networks, *self.rpc_urls})


@lru_cache
def get_settings() -> Settings:
    return Settings()
