from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    endpoint: str | None = None
    api_key: str | None = Field(default=None, repr=False)
    config_url: str | None = None
    model_name: str | None = None
    binding_name: str | None = None
    allow_insecure_http: bool = False
    discovery_timeout_seconds: float = 30.0
    vcap_services: str | None = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices("VCAP_SERVICES", "vcap_services"),
    )

    model_config = SettingsConfigDict(
        env_prefix="TANZU_AI_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
        protected_namespaces=(),
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
