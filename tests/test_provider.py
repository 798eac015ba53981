from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import pytest

from genai_connector.credentials import CanonicalCredentials
from genai_connector.errors import MissingCredentialsError
from genai_connector.provider import GenAIServiceProvider, provider_metadata
from genai_connector.settings import Settings

ENDPOINT_BASE = "https://genai-proxy.sys.example.com/tanzu-all-models-1a56b7a"
CONFIG_URL = f"{ENDPOINT_BASE}/config/v1/endpoint"


def _client(calls: list[str]) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        if str(request.url) == CONFIG_URL:
            return httpx.Response(
                200,
                json={
                    "name": "tanzu-all-models-1a56b7a",
                    "advertisedModels": [
                        {"name": "mxbai-embed-large", "capabilities": ["EMBEDDING"]},
                        {"name": "llama3.2:1b", "capabilities": ["CHAT", "TOOLS"]},
                        {"name": "qwen3-30b", "capabilities": ["chat"]},
                    ],
                },
            )
        return httpx.Response(404)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _credentials(**overrides: Any) -> CanonicalCredentials:
    values: dict[str, Any] = {
        "endpoint_base": ENDPOINT_BASE,
        "api_key": "test-jwt-token",
        "config_url": CONFIG_URL,
    }
    values.update(overrides)
    return CanonicalCredentials(**values)


def test_provider_metadata_matches_registered_config_keys() -> None:
    meta = provider_metadata()

    assert meta.name == "tanzu_ai"
    assert meta.display_name == "Tanzu AI Services"
    assert meta.default_model == "openai/gpt-oss-120b"
    assert meta.allows_unlisted_models is True
    assert len(meta.config_keys) == 4

    api_key = meta.config_key("TANZU_AI_API_KEY")
    endpoint = meta.config_key("TANZU_AI_ENDPOINT")
    config_url = meta.config_key("TANZU_AI_CONFIG_URL")
    assert api_key is not None and api_key.required and api_key.secret
    assert endpoint is not None and endpoint.required and not endpoint.secret
    assert config_url is not None and not config_url.required


def test_openai_base_url_and_auth_headers() -> None:
    provider = GenAIServiceProvider(_credentials())

    assert provider.openai_base_url == f"{ENDPOINT_BASE}/openai"
    assert provider.auth_headers() == {"Authorization": "Bearer test-jwt-token"}
    asyncio.run(provider.aclose())


def test_declared_model_skips_discovery() -> None:
    calls: list[str] = []
    provider = GenAIServiceProvider(
        _credentials(
            declared_model="openai/gpt-oss-120b",
            declared_capabilities=frozenset({"chat", "tools"}),
        ),
        client=_client(calls),
    )

    async def _run() -> None:
        assert await provider.resolve_model() == "openai/gpt-oss-120b"
        models = await provider.list_models()
        assert [model.name for model in models] == ["openai/gpt-oss-120b"]
        assert await provider.model_capabilities("openai/gpt-oss-120b") == frozenset(
            {"chat", "tools"}
        )

    asyncio.run(_run())
    assert calls == []


def test_model_override_wins_over_declared_and_discovered() -> None:
    calls: list[str] = []
    provider = GenAIServiceProvider(
        _credentials(declared_model="declared"),
        model_override="custom-model",
        client=_client(calls),
    )

    assert asyncio.run(provider.resolve_model()) == "custom-model"
    assert calls == []


def test_discovery_default_and_filtered_listing() -> None:
    calls: list[str] = []
    provider = GenAIServiceProvider(_credentials(), client=_client(calls))

    async def _run() -> None:
        assert await provider.resolve_model() == "llama3.2:1b"
        eligible = await provider.list_models()
        everything = await provider.list_models(include_all=True)
        assert [model.name for model in eligible] == ["llama3.2:1b", "qwen3-30b"]
        assert [model.name for model in everything] == [
            "mxbai-embed-large",
            "llama3.2:1b",
            "qwen3-30b",
        ]
        assert await provider.model_capabilities("qwen3-30b") == frozenset({"chat"})
        assert await provider.model_capabilities("unlisted") == frozenset({"chat"})

    asyncio.run(_run())
    assert calls == [CONFIG_URL]


def test_invalidate_models_triggers_rediscovery() -> None:
    calls: list[str] = []
    provider = GenAIServiceProvider(_credentials(), client=_client(calls))

    async def _run() -> None:
        await provider.list_models()
        provider.invalidate_models()
        await provider.list_models()

    asyncio.run(_run())
    assert calls == [CONFIG_URL, CONFIG_URL]


def test_from_settings_uses_service_catalog_and_model_override(
    monkeypatch: Any,
) -> None:
    for name in ("TANZU_AI_ENDPOINT", "TANZU_AI_API_KEY", "TANZU_AI_BINDING_NAME"):
        monkeypatch.delenv(name, raising=False)
    vcap = {
        "genai": [
            {
                "name": "all-models",
                "credentials": {
                    "endpoint": {
                        "api_base": ENDPOINT_BASE,
                        "api_key": "vcap-token",
                        "config_url": CONFIG_URL,
                        "name": "tanzu-all-models-1a56b7a",
                    }
                },
            }
        ]
    }
    settings = Settings(
        _env_file=None,
        vcap_services=json.dumps(vcap),
        model_name="qwen3-30b",
        discovery_timeout_seconds=3.0,
    )

    provider = GenAIServiceProvider.from_settings(settings)

    assert provider.credentials.endpoint_base == ENDPOINT_BASE
    assert provider.credentials.api_key == "vcap-token"
    assert provider.model_override == "qwen3-30b"
    assert asyncio.run(provider.resolve_model()) == "qwen3-30b"
    asyncio.run(provider.aclose())


def test_from_settings_without_credentials_fails(monkeypatch: Any) -> None:
    for name in ("TANZU_AI_ENDPOINT", "TANZU_AI_API_KEY", "VCAP_SERVICES"):
        monkeypatch.delenv(name, raising=False)

    with pytest.raises(MissingCredentialsError):
        GenAIServiceProvider.from_settings(Settings(_env_file=None))


def test_declared_model_aliases_are_listed_and_resolved() -> None:
    calls: list[str] = []
    provider = GenAIServiceProvider(
        _credentials(
            declared_model="openai/gpt-oss-120b",
            declared_capabilities=frozenset({"chat", "tools"}),
            declared_aliases=("gpt-oss",),
        ),
        client=_client(calls),
    )

    async def _run() -> None:
        models = await provider.list_models()
        assert models[0].aliases == ("gpt-oss",)
        assert await provider.model_capabilities("gpt-oss") == frozenset(
            {"chat", "tools"}
        )

    asyncio.run(_run())
    assert calls == []
