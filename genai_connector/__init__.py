from genai_connector.binding_format import (
    BindingFormat,
    classify_binding,
    detect_binding_format,
    strip_transport_suffix,
)
from genai_connector.credentials import CanonicalCredentials, CredentialResolver
from genai_connector.discovery import (
    DiscoveredModel,
    ModelCatalog,
    ModelDiscoveryEngine,
)
from genai_connector.error_classifier import (
    TransportFailure,
    classify_exception,
    classify_outcome,
    classify_response,
)
from genai_connector.provider import GenAIServiceProvider, provider_metadata

__all__ = [
    "BindingFormat",
    "CanonicalCredentials",
    "CredentialResolver",
    "DiscoveredModel",
    "GenAIServiceProvider",
    "ModelCatalog",
    "ModelDiscoveryEngine",
    "TransportFailure",
    "classify_binding",
    "classify_exception",
    "classify_outcome",
    "classify_response",
    "detect_binding_format",
    "provider_metadata",
    "strip_transport_suffix",
]
