"""Configuration for the OpenAPI adapter."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional, Set

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    service_name: str = Field(default="openapi-adapter")

    # Upstream API the generated tools call.
    service_url: str = Field(default="")
    service_authorization: Optional[str] = Field(default=None)
    client_timeout_seconds: float = Field(default=30)

    adapter_openapi_url: Optional[str] = Field(default=None)

    adapter_transport: str = Field(default="streamable-http")
    adapter_host: str = Field(default="0.0.0.0")
    adapter_port: int = Field(default=8000)
    adapter_auth_token: Optional[str] = Field(default=None)

    adapter_max_concurrency: int = Field(default=20)
    adapter_tool_cache_seconds: int = Field(default=300)
    adapter_openapi_cache_seconds: int = Field(default=3600)

    adapter_tool_allowlist: Optional[str] = Field(default=None)
    adapter_strict_tool_ids: bool = Field(default=False)

    adapter_output_dir: str = Field(default="generated")
    adapter_log_level: str = Field(default="INFO")

    def tool_allowlist(self) -> Set[str]:
        if not self.adapter_tool_allowlist:
            return set()
        return {item.strip() for item in self.adapter_tool_allowlist.split(",") if item.strip()}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
