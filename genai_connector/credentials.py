"""Layered credential resolution.

Sources are consulted in a fixed order and each one is a plain function that
either returns canonical credentials or ``None``:

1. an explicit endpoint + bearer token pair,
2. the ``genai`` bindings inside a service-catalog blob (``VCAP_SERVICES``),

and when neither yields anything the resolver raises
:class:`MissingCredentialsError`. Whatever the source, the result is validated
before it is handed out.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any
from urllib.parse import urlparse

from genai_connector.binding_format import (
    DEFAULT_CAPABILITIES,
    BindingClassification,
    BindingFormat,
    classify_binding,
    strip_transport_suffix,
)
from genai_connector.errors import (
    BindingNotFoundError,
    CredentialFormatError,
    CredentialValidationError,
    MissingCredentialsError,
)
from genai_connector.settings import Settings

SERVICE_TYPE_KEY = "genai"
SECURE_SCHEMES = frozenset({"https"})
INSECURE_SCHEMES = frozenset({"http"})

logger = logging.getLogger("genai_connector")


@dataclass(frozen=True, slots=True)
class CanonicalCredentials:
    endpoint_base: str
    api_key: str = field(repr=False)
    config_url: str | None = None
    declared_model: str | None = None
    declared_capabilities: frozenset[str] = DEFAULT_CAPABILITIES
    declared_aliases: tuple[str, ...] = ()
    endpoint_name: str | None = None
    wire_format: str | None = None
    binding_format: str = "explicit"
    source: str = "explicit"

    def redacted(self) -> dict[str, Any]:
        return {
            "endpoint_base": self.endpoint_base,
            "api_key": "<redacted>",
            "config_url": self.config_url,
            "declared_model": self.declared_model,
            "declared_capabilities": sorted(self.declared_capabilities),
            "declared_aliases": list(self.declared_aliases),
            "endpoint_name": self.endpoint_name,
            "wire_format": self.wire_format,
            "binding_format": self.binding_format,
            "source": self.source,
        }


CredentialSource = Callable[[], CanonicalCredentials | None]


def _normalize_optional(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def explicit_source(
    endpoint: str | None,
    api_key: str | None,
    *,
    config_url: str | None = None,
) -> CanonicalCredentials | None:
    normalized_endpoint = _normalize_optional(endpoint)
    normalized_key = _normalize_optional(api_key)
    if not normalized_endpoint or not normalized_key:
        if normalized_endpoint or normalized_key:
            logger.debug(
                "credentials_explicit_incomplete has_endpoint=%s has_api_key=%s",
                bool(normalized_endpoint),
                bool(normalized_key),
            )
        return None
    return CanonicalCredentials(
        endpoint_base=strip_transport_suffix(normalized_endpoint),
        api_key=normalized_key,
        config_url=_normalize_optional(config_url),
    )


def _credentials_from_classification(
    classification: BindingClassification,
    *,
    binding_name: str | None,
) -> CanonicalCredentials:
    extracted = classification.fields
    if not extracted.endpoint_base:
        raise CredentialValidationError(
            _endpoint_field(classification.format), "missing"
        )
    if not extracted.api_key:
        raise CredentialValidationError(_key_field(classification.format), "missing")
    return CanonicalCredentials(
        endpoint_base=extracted.endpoint_base,
        api_key=extracted.api_key,
        config_url=extracted.config_url,
        declared_model=classification.declared_model,
        declared_capabilities=extracted.capabilities,
        declared_aliases=extracted.aliases,
        endpoint_name=extracted.endpoint_name,
        wire_format=extracted.wire_format,
        binding_format=classification.format.value,
        source=f"service_catalog:{binding_name}" if binding_name else "service_catalog",
    )


def _endpoint_field(binding_format: BindingFormat) -> str:
    if binding_format == BindingFormat.SINGLE_MODEL_LEGACY:
        return "api_base"
    return "endpoint.api_base"


def _key_field(binding_format: BindingFormat) -> str:
    if binding_format == BindingFormat.SINGLE_MODEL_LEGACY:
        return "api_key"
    return "endpoint.api_key"


def _decode_service_catalog(blob: str | Mapping[str, Any] | None) -> Mapping[str, Any] | None:
    if blob is None:
        return None
    if isinstance(blob, Mapping):
        return blob
    text = blob.strip()
    if not text:
        return None
    try:
        decoded = json.loads(text)
    except ValueError:
        logger.warning("service_catalog_invalid reason=invalid_json")
        return None
    if not isinstance(decoded, dict):
        logger.warning("service_catalog_invalid reason=not_an_object")
        return None
    return decoded


def _binding_name(binding: Any) -> str | None:
    if not isinstance(binding, Mapping):
        return None
    return _normalize_optional(binding.get("name"))


def service_catalog_source(
    blob: str | Mapping[str, Any] | None,
    *,
    binding_name: str | None = None,
    service_type: str = SERVICE_TYPE_KEY,
) -> CanonicalCredentials | None:
    """Pick a binding of ``service_type`` from a service-catalog blob.

    Without ``binding_name`` the first well-formed binding in array order wins.
    With it, the binding whose ``name`` matches exactly is used.
    """
    catalog = _decode_service_catalog(blob)
    if catalog is None:
        return None
    bindings = catalog.get(service_type)
    if not isinstance(bindings, list) or not bindings:
        return None

    selector = _normalize_optional(binding_name)
    if selector is not None:
        for binding in bindings:
            if _binding_name(binding) == selector:
                credentials = binding.get("credentials")
                return _credentials_from_classification(
                    classify_binding(credentials), binding_name=selector
                )
        available = [name for name in map(_binding_name, bindings) if name]
        raise BindingNotFoundError(selector, available)

    first_error: CredentialFormatError | CredentialValidationError | None = None
    for index, binding in enumerate(bindings):
        name = _binding_name(binding)
        credentials = (
            binding.get("credentials") if isinstance(binding, Mapping) else None
        )
        try:
            return _credentials_from_classification(
                classify_binding(credentials), binding_name=name
            )
        except (CredentialFormatError, CredentialValidationError) as exc:
            logger.warning(
                "service_catalog_binding_skipped index=%d name=%s error_type=%s",
                index,
                name,
                type(exc).__name__,
            )
            exc.context["binding_index"] = index
            if first_error is None:
                first_error = exc

    if first_error is not None:
        raise first_error
    return None


def validate_url(
    value: str,
    *,
    field_name: str,
    allow_insecure_http: bool = False,
) -> None:
    parsed = urlparse(value)
    scheme = parsed.scheme.lower()
    if not scheme or not parsed.netloc:
        raise CredentialValidationError(field_name, "must be an absolute URL")
    if scheme in SECURE_SCHEMES:
        return
    if scheme in INSECURE_SCHEMES:
        if allow_insecure_http:
            return
        raise CredentialValidationError(
            field_name,
            "plain http is not allowed; use https or enable allow_insecure_http",
        )
    raise CredentialValidationError(field_name, f"unsupported scheme '{scheme}'")


def validate_credentials(
    credentials: CanonicalCredentials,
    *,
    allow_insecure_http: bool = False,
) -> CanonicalCredentials:
    validate_url(
        credentials.endpoint_base,
        field_name="endpoint_base",
        allow_insecure_http=allow_insecure_http,
    )
    if credentials.config_url is not None:
        validate_url(
            credentials.config_url,
            field_name="config_url",
            allow_insecure_http=allow_insecure_http,
        )
    if not isinstance(credentials.api_key, str) or not credentials.api_key.strip():
        raise CredentialValidationError("api_key", "must be a non-empty string")
    return credentials


class CredentialResolver:
    def __init__(
        self,
        *,
        endpoint: str | None = None,
        api_key: str | None = None,
        config_url: str | None = None,
        service_catalog: str | Mapping[str, Any] | None = None,
        binding_name: str | None = None,
        allow_insecure_http: bool = False,
    ) -> None:
        self._endpoint = endpoint
        self._api_key = api_key
        self._config_url = _normalize_optional(config_url)
        self._service_catalog = service_catalog
        self._binding_name = binding_name
        self._allow_insecure_http = allow_insecure_http

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        service_catalog: str | Mapping[str, Any] | None = None,
    ) -> CredentialResolver:
        return cls(
            endpoint=settings.endpoint,
            api_key=settings.api_key,
            config_url=settings.config_url,
            service_catalog=(
                service_catalog
                if service_catalog is not None
                else settings.vcap_services
            ),
            binding_name=settings.binding_name,
            allow_insecure_http=settings.allow_insecure_http,
        )

    def sources(self) -> list[tuple[str, CredentialSource]]:
        return [
            (
                "explicit",
                lambda: explicit_source(
                    self._endpoint, self._api_key, config_url=self._config_url
                ),
            ),
            (
                "service_catalog",
                lambda: service_catalog_source(
                    self._service_catalog, binding_name=self._binding_name
                ),
            ),
        ]

    def resolve(self) -> CanonicalCredentials:
        tried: list[str] = []
        for name, source in self.sources():
            tried.append(name)
            credentials = source()
            if credentials is None:
                continue
            if self._config_url and credentials.config_url != self._config_url:
                credentials = replace(credentials, config_url=self._config_url)
            validate_credentials(
                credentials, allow_insecure_http=self._allow_insecure_http
            )
            logger.info(
                "credentials_resolved source=%s format=%s endpoint=%s "
                "declared_model=%s has_config_url=%s",
                credentials.source,
                credentials.binding_format,
                credentials.endpoint_base,
                credentials.declared_model,
                credentials.config_url is not None,
            )
            return credentials

        raise MissingCredentialsError(
            "AI service credentials not found. Set TANZU_AI_ENDPOINT and "
            "TANZU_AI_API_KEY, or bind a genai service instance (VCAP_SERVICES).",
            sources=",".join(tried),
        )
