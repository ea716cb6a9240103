"""Environment-driven settings shared by chains, guards and the runner.

Values are read from ``GUARD_CHAIN_*`` environment variables (or a
``.env`` file) and validated on construction.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GuardChainSettings(BaseSettings):
    """Settings for the guard chain.

    Attributes:
        environment:            ``production`` redacts internal error messages.
        trace_header:           Inbound/outbound correlation-id header.
        log_level:              Level used by :class:`LoggingObserver`.
        cache_ttl_seconds:      Default response-cache TTL.
        auth_cache_ttl_seconds: Default verification-cache TTL.
        auth_cache_max_entries: Upper bound on cached verifications.
    """

    model_config = SettingsConfigDict(
        env_prefix="GUARD_CHAIN_",
        env_file=".env",
        extra="ignore",
    )

    environment: Literal["development", "production"] = "development"
    trace_header: str = "X-Request-ID"
    log_level: str = "INFO"
    cache_ttl_seconds: float = Field(default=60.0, gt=0)
    auth_cache_ttl_seconds: float = Field(default=30.0, gt=0)
    auth_cache_max_entries: int = Field(default=1024, ge=1)

    @property
    def production(self) -> bool:
        return self.environment == "production"
