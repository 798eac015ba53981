from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from genai_connector.binding_format import DEFAULT_CAPABILITIES, TRANSPORT_SUFFIX
from genai_connector.credentials import CanonicalCredentials, CredentialResolver
from genai_connector.discovery import (
    DEFAULT_DISCOVERY_TIMEOUT_SECONDS,
    DiscoveredModel,
    ModelDiscoveryEngine,
)
from genai_connector.settings import Settings, get_settings

PROVIDER_NAME = "tanzu_ai"
PROVIDER_DISPLAY_NAME = "Tanzu AI Services"
PROVIDER_DESCRIPTION = (
    "LLM access via VMware Tanzu Platform AI Services (OpenAI-compatible)"
)
PROVIDER_DEFAULT_MODEL = "openai/gpt-oss-120b"
PROVIDER_DOC_URL = (
    "https://techdocs.broadcom.com/us/en/vmware-tanzu/platform/ai-services/"
    "10-3/ai/index.html"
)

logger = logging.getLogger("genai_connector")


@dataclass(frozen=True, slots=True)
class ConfigKey:
    name: str
    required: bool
    secret: bool
    default: str | None = None


@dataclass(frozen=True, slots=True)
class ProviderMetadata:
    name: str
    display_name: str
    description: str
    default_model: str
    known_models: tuple[str, ...]
    doc_url: str
    config_keys: tuple[ConfigKey, ...] = field(default_factory=tuple)
    allows_unlisted_models: bool = False

    def config_key(self, name: str) -> ConfigKey | None:
        for key in self.config_keys:
            if key.name == name:
                return key
        return None


def provider_metadata() -> ProviderMetadata:
    return ProviderMetadata(
        name=PROVIDER_NAME,
        display_name=PROVIDER_DISPLAY_NAME,
        description=PROVIDER_DESCRIPTION,
        default_model=PROVIDER_DEFAULT_MODEL,
        known_models=(PROVIDER_DEFAULT_MODEL,),
        doc_url=PROVIDER_DOC_URL,
        config_keys=(
            ConfigKey("TANZU_AI_API_KEY", required=True, secret=True),
            ConfigKey("TANZU_AI_ENDPOINT", required=True, secret=False),
            ConfigKey("TANZU_AI_CONFIG_URL", required=False, secret=False),
            ConfigKey("TANZU_AI_MODEL_NAME", required=False, secret=False),
        ),
        allows_unlisted_models=True,
    )


class GenAIServiceProvider:
    """Resolved connection details for one AI Services binding.

    Credentials are fixed at construction. The model catalog is discovered on
    first use and kept until :meth:`invalidate_models` is called.
    """

    def __init__(
        self,
        credentials: CanonicalCredentials,
        *,
        model_override: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = DEFAULT_DISCOVERY_TIMEOUT_SECONDS,
    ) -> None:
        self.credentials = credentials
        self.model_override = (model_override or "").strip() or None
        self._discovery = ModelDiscoveryEngine(
            credentials, client=client, timeout_seconds=timeout_seconds
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        service_catalog: str | Mapping[str, Any] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> GenAIServiceProvider:
        resolved_settings = settings or get_settings()
        credentials = CredentialResolver.from_settings(
            resolved_settings, service_catalog=service_catalog
        ).resolve()
        return cls(
            credentials,
            model_override=resolved_settings.model_name,
            client=client,
            timeout_seconds=resolved_settings.discovery_timeout_seconds,
        )

    @property
    def metadata(self) -> ProviderMetadata:
        return provider_metadata()

    @property
    def openai_base_url(self) -> str:
        """Base URL handed to the OpenAI wire adapter."""
        return f"{self.credentials.endpoint_base.rstrip('/')}{TRANSPORT_SUFFIX}"

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.credentials.api_key}"}

    @property
    def discovery(self) -> ModelDiscoveryEngine:
        return self._discovery

    async def resolve_model(self) -> str:
        if self.model_override:
            return self.model_override
        if self.credentials.declared_model:
            return self.credentials.declared_model
        model = await self._discovery.default_model()
        logger.info(
            "model_selected source=discovery model=%s endpoint=%s",
            model.name,
            self.credentials.endpoint_base,
        )
        return model.name

    async def list_models(self, *, include_all: bool = False) -> list[DiscoveredModel]:
        if self.credentials.declared_model and not include_all:
            return [
                DiscoveredModel(
                    name=self.credentials.declared_model,
                    capabilities=self.credentials.declared_capabilities,
                    aliases=self.credentials.declared_aliases,
                )
            ]
        catalog = await self._discovery.catalog()
        return list(catalog.models if include_all else catalog.eligible())

    async def model_capabilities(self, name: str) -> frozenset[str]:
        if self.credentials.declared_model and (
            name == self.credentials.declared_model
            or name in self.credentials.declared_aliases
        ):
            return self.credentials.declared_capabilities
        catalog = await self._discovery.catalog()
        model = catalog.get(name)
        if model is None:
            return DEFAULT_CAPABILITIES
        return model.capabilities

    def invalidate_models(self) -> None:
        self._discovery.invalidate()

    async def aclose(self) -> None:
        await self._discovery.aclose()

    async def __aenter__(self) -> GenAIServiceProvider:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
