"""Model discovery for bindings that do not declare a model.

The config endpoint (``config_url``) is tried first because it advertises
per-model capabilities and aliases. Any failure there falls back once to the
OpenAI-style listing endpoint, whose bare identifiers get the default
``{"chat"}`` capability. A catalog is only cached after a successful round
trip.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from genai_connector.binding_format import (
    DEFAULT_CAPABILITIES,
    TRANSPORT_SUFFIX,
    normalize_capabilities,
)
from genai_connector.credentials import CanonicalCredentials
from genai_connector.error_classifier import (
    TransportFailure,
    classify_exception,
    classify_outcome,
    classify_response,
)
from genai_connector.errors import ModelDiscoveryError, NoEligibleModelError
from genai_connector.utils.sequence_utils import (
    dedupe_preserving_order,
    normalize_string_list,
)

CONFIG_SOURCE = "config_url"
LISTING_SOURCE = "listing"
ELIGIBLE_CAPABILITIES: frozenset[str] = frozenset({"chat", "tools"})
DEFAULT_DISCOVERY_TIMEOUT_SECONDS = 30.0

logger = logging.getLogger("genai_connector")


@dataclass(frozen=True, slots=True)
class DiscoveredModel:
    name: str
    capabilities: frozenset[str] = DEFAULT_CAPABILITIES
    aliases: tuple[str, ...] = ()

    @property
    def is_eligible(self) -> bool:
        return bool(self.capabilities & ELIGIBLE_CAPABILITIES)

    def matches(self, name_or_alias: str) -> bool:
        return name_or_alias == self.name or name_or_alias in self.aliases


@dataclass(frozen=True, slots=True)
class ModelCatalog:
    models: tuple[DiscoveredModel, ...]
    source: str

    @classmethod
    def build(cls, models: Iterable[DiscoveredModel], *, source: str) -> ModelCatalog:
        first_by_name: dict[str, DiscoveredModel] = {}
        ordered = list(models)
        for model in ordered:
            first_by_name.setdefault(model.name, model)
        names = dedupe_preserving_order(model.name for model in ordered)
        return cls(
            models=tuple(first_by_name[name] for name in names), source=source
        )

    def eligible(self) -> tuple[DiscoveredModel, ...]:
        return tuple(model for model in self.models if model.is_eligible)

    def names(self, *, eligible_only: bool = True) -> list[str]:
        models = self.eligible() if eligible_only else self.models
        return [model.name for model in models]

    def get(self, name_or_alias: str) -> DiscoveredModel | None:
        for model in self.models:
            if model.name == name_or_alias:
                return model
        for model in self.models:
            if model.matches(name_or_alias):
                return model
        return None

    def default_model(self) -> DiscoveredModel:
        eligible = self.eligible()
        if not eligible:
            raise NoEligibleModelError(
                "No discovered model offers chat or tools capabilities",
                source=self.source,
                discovered=len(self.models),
            )
        return eligible[0]

    def __len__(self) -> int:
        return len(self.models)


def listing_url(endpoint_base: str) -> str:
    return f"{endpoint_base.rstrip('/')}{TRANSPORT_SUFFIX}/v1/models"


def parse_config_payload(payload: Any) -> list[DiscoveredModel]:
    if not isinstance(payload, Mapping):
        raise ValueError("expected a JSON object")
    advertised = payload.get("advertisedModels")
    if not isinstance(advertised, list):
        raise ValueError("missing 'advertisedModels' list")

    models: list[DiscoveredModel] = []
    for item in advertised:
        if not isinstance(item, Mapping):
            continue
        name = item.get("name")
        if not isinstance(name, str) or not name.strip():
            continue
        models.append(
            DiscoveredModel(
                name=name.strip(),
                capabilities=normalize_capabilities(item.get("capabilities")),
                aliases=tuple(normalize_string_list(item.get("aliases"))),
            )
        )
    return models


def parse_listing_payload(payload: Any) -> list[DiscoveredModel]:
    if not isinstance(payload, Mapping):
        raise ValueError("expected a JSON object")
    data = payload.get("data")
    if not isinstance(data, list):
        raise ValueError("missing 'data' list")

    models: list[DiscoveredModel] = []
    for item in data:
        if not isinstance(item, Mapping):
            continue
        model_id = item.get("id")
        if not isinstance(model_id, str) or not model_id.strip():
            continue
        models.append(DiscoveredModel(name=model_id.strip()))
    return models


class ModelDiscoveryEngine:
    def __init__(
        self,
        credentials: CanonicalCredentials,
        *,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = DEFAULT_DISCOVERY_TIMEOUT_SECONDS,
    ) -> None:
        self._credentials = credentials
        self._timeout_seconds = timeout_seconds
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        # Concurrent first calls may both fetch; the last successful write wins.
        self._cached: ModelCatalog | None = None

    @property
    def cached(self) -> ModelCatalog | None:
        return self._cached

    def invalidate(self) -> None:
        self._cached = None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def catalog(self) -> ModelCatalog:
        cached = self._cached
        if cached is not None:
            return cached
        result = await self.discover()
        self._cached = result
        return result

    async def default_model(self) -> DiscoveredModel:
        return (await self.catalog()).default_model()

    async def discover(self) -> ModelCatalog:
        """Fetch a fresh catalog without touching the cache."""
        try:
            async with asyncio.timeout(self._timeout_seconds):
                return await self._discover()
        except TimeoutError as exc:
            logger.warning(
                "model_discovery_timeout endpoint=%s timeout_seconds=%.1f",
                self._credentials.endpoint_base,
                self._timeout_seconds,
            )
            error = classify_outcome(
                TransportFailure.TIMEOUT, endpoint=self._credentials.endpoint_base
            )
            raise error from exc

    async def _discover(self) -> ModelCatalog:
        config_url = self._credentials.config_url
        if config_url:
            try:
                models = await self._fetch(config_url, CONFIG_SOURCE)
            except ModelDiscoveryError as exc:
                logger.info(
                    "model_discovery_fallback source=%s endpoint=%s reason=%s",
                    CONFIG_SOURCE,
                    config_url,
                    exc.cause,
                )
            else:
                return self._finish(models, CONFIG_SOURCE)

        models = await self._fetch(
            listing_url(self._credentials.endpoint_base), LISTING_SOURCE
        )
        return self._finish(models, LISTING_SOURCE)

    def _finish(self, models: list[DiscoveredModel], source: str) -> ModelCatalog:
        catalog = ModelCatalog.build(models, source=source)
        logger.info(
            "model_discovery_complete source=%s endpoint=%s models=%d eligible=%d",
            source,
            self._credentials.endpoint_base,
            len(catalog),
            len(catalog.eligible()),
        )
        return catalog

    async def _fetch(self, url: str, source: str) -> list[DiscoveredModel]:
        headers = {
            "Authorization": f"Bearer {self._credentials.api_key}",
            "Accept": "application/json",
        }
        try:
            response = await self._client.get(
                url, headers=headers, timeout=self._timeout_seconds
            )
        except httpx.RequestError as exc:
            raise ModelDiscoveryError(
                source, classify_exception(exc), endpoint=url
            ) from exc

        if not response.is_success:
            cause: BaseException | str = (
                classify_response(response)
                if response.status_code >= 400
                else f"unexpected status {response.status_code}"
            )
            raise ModelDiscoveryError(source, cause, endpoint=url)

        try:
            payload = response.json()
            parser = (
                parse_config_payload if source == CONFIG_SOURCE else parse_listing_payload
            )
            models = parser(payload)
        except ValueError as exc:
            raise ModelDiscoveryError(
                source, f"unparseable response: {exc}", endpoint=url
            ) from exc

        if not models:
            raise ModelDiscoveryError(source, "no models advertised", endpoint=url)
        return models
