from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from genai_connector.errors import CredentialFormatError
from genai_connector.utils.sequence_utils import normalize_string_list

TRANSPORT_SUFFIX = "/openai"
DEFAULT_CAPABILITIES: frozenset[str] = frozenset({"chat"})


class BindingFormat(str, Enum):
    SINGLE_MODEL_LEGACY = "single_model_legacy"
    SINGLE_MODEL_V2 = "single_model_v2"
    MULTI_MODEL = "multi_model"
    MALFORMED = "malformed"


@dataclass(frozen=True, slots=True)
class ExtractedBinding:
    endpoint_base: str | None
    api_key: str | None
    config_url: str | None
    endpoint_name: str | None
    capabilities: frozenset[str]
    aliases: tuple[str, ...] = ()
    wire_format: str | None = None


@dataclass(frozen=True, slots=True)
class SingleModelLegacy:
    fields: ExtractedBinding
    model_name: str
    format: BindingFormat = BindingFormat.SINGLE_MODEL_LEGACY

    @property
    def declared_model(self) -> str | None:
        return self.model_name


@dataclass(frozen=True, slots=True)
class SingleModelV2:
    fields: ExtractedBinding
    model_name: str
    format: BindingFormat = BindingFormat.SINGLE_MODEL_V2

    @property
    def declared_model(self) -> str | None:
        return self.model_name


@dataclass(frozen=True, slots=True)
class MultiModel:
    fields: ExtractedBinding
    format: BindingFormat = BindingFormat.MULTI_MODEL

    @property
    def declared_model(self) -> str | None:
        return None


BindingClassification = SingleModelLegacy | SingleModelV2 | MultiModel


def strip_transport_suffix(url: str) -> str:
    """Drop trailing slashes and any trailing ``/openai`` segments."""
    stripped = url.strip()
    while True:
        trimmed = stripped.rstrip("/")
        if trimmed.endswith(TRANSPORT_SUFFIX):
            head = trimmed[: -len(TRANSPORT_SUFFIX)]
            # Never eat the host itself, e.g. "https://openai".
            if head.partition("://")[2]:
                trimmed = head
        if trimmed == stripped:
            return trimmed
        stripped = trimmed


def normalize_capabilities(values: Any) -> frozenset[str]:
    capabilities = normalize_string_list(values, lower=True)
    if not capabilities:
        return DEFAULT_CAPABILITIES
    return frozenset(capabilities)


def _optional_str(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def detect_binding_format(blob: Any) -> BindingFormat:
    if not isinstance(blob, Mapping):
        return BindingFormat.MALFORMED

    has_model_name = "model_name" in blob and blob.get("model_name") is not None
    endpoint = blob.get("endpoint")
    has_endpoint = endpoint is not None

    if has_endpoint and not isinstance(endpoint, Mapping):
        return BindingFormat.MALFORMED
    if has_model_name and _optional_str(blob.get("model_name")) is None:
        return BindingFormat.MALFORMED

    if has_model_name and not has_endpoint:
        return BindingFormat.SINGLE_MODEL_LEGACY
    if has_model_name and has_endpoint:
        return BindingFormat.SINGLE_MODEL_V2
    if has_endpoint:
        return BindingFormat.MULTI_MODEL
    return BindingFormat.MALFORMED


def _extract_legacy(blob: Mapping[str, Any]) -> ExtractedBinding:
    api_base = _optional_str(blob.get("api_base"))
    return ExtractedBinding(
        endpoint_base=strip_transport_suffix(api_base) if api_base else None,
        api_key=_optional_str(blob.get("api_key")),
        config_url=None,
        endpoint_name=None,
        capabilities=normalize_capabilities(blob.get("model_capabilities")),
        aliases=tuple(normalize_string_list(blob.get("model_aliases"))),
        wire_format=_optional_str(blob.get("wire_format")),
    )


def _extract_endpoint(blob: Mapping[str, Any]) -> ExtractedBinding:
    endpoint: Mapping[str, Any] = blob["endpoint"]
    api_base = _optional_str(endpoint.get("api_base"))
    api_key = _optional_str(endpoint.get("api_key")) or _optional_str(
        blob.get("api_key")
    )
    return ExtractedBinding(
        endpoint_base=strip_transport_suffix(api_base) if api_base else None,
        api_key=api_key,
        config_url=_optional_str(endpoint.get("config_url")),
        endpoint_name=_optional_str(endpoint.get("name")),
        capabilities=normalize_capabilities(blob.get("model_capabilities")),
        aliases=tuple(normalize_string_list(blob.get("model_aliases"))),
        wire_format=_optional_str(blob.get("wire_format")),
    )


def classify_binding(blob: Any) -> BindingClassification:
    """Classify a raw binding credentials record and extract its fields.

    Raises:
        CredentialFormatError: the record matches none of the known shapes.
    """
    binding_format = detect_binding_format(blob)
    if binding_format == BindingFormat.SINGLE_MODEL_LEGACY:
        return SingleModelLegacy(
            fields=_extract_legacy(blob),
            model_name=str(blob["model_name"]).strip(),
        )
    if binding_format == BindingFormat.SINGLE_MODEL_V2:
        return SingleModelV2(
            fields=_extract_endpoint(blob),
            model_name=str(blob["model_name"]).strip(),
        )
    if binding_format == BindingFormat.MULTI_MODEL:
        return MultiModel(fields=_extract_endpoint(blob))

    keys = sorted(str(key) for key in blob) if isinstance(blob, Mapping) else []
    raise CredentialFormatError(
        "Unrecognized binding credentials format",
        keys=",".join(keys) or "<none>",
        expected="model_name and/or endpoint",
    )
