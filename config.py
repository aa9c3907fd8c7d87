"""Service configuration.

Typed settings loaded from ``AUTH_*`` environment variables via
pydantic-settings. Token lifetimes are milliseconds.
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rules import ONE_HOUR, TWO_HOURS


class Settings(BaseSettings):
    """
    Attributes:
        role: Role assigned to every new account
        access_token_ttl: Access token lifetime (ms)
        refresh_token_ttl: Refresh token lifetime (ms)
        base_path: Prefix for /signup, /signin and /refresh
        index_html: Static page served for any other GET path
        host: Bind address for ``main()``
        port: Bind port for ``main()``
        log_level: Root logging level
    """

    model_config = SettingsConfigDict(env_prefix="AUTH_")

    role: str = "CUSTOMER"
    access_token_ttl: int = ONE_HOUR
    refresh_token_ttl: int = TWO_HOURS
    base_path: str = ""
    index_html: Path | None = None
    host: str = "localhost"
    port: int = 4190
    log_level: str = "INFO"

    @field_validator("access_token_ttl", "refresh_token_ttl")
    @classmethod
    def ttl_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Token TTL must be positive")
        return v

    @field_validator("base_path")
    @classmethod
    def base_path_format(cls, v: str) -> str:
        v = v.rstrip("/")
        if v and not v.startswith("/"):
            v = "/" + v
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()
