from __future__ import annotations

from typing import Any

from genai_connector.settings import Settings, get_settings


def test_settings_read_prefixed_environment(monkeypatch: Any) -> None:
    monkeypatch.setenv("TANZU_AI_ENDPOINT", "https://proxy.example.com/plan")
    monkeypatch.setenv("TANZU_AI_API_KEY", "env-token")
    monkeypatch.setenv("TANZU_AI_CONFIG_URL", "https://proxy.example.com/plan/config")
    monkeypatch.setenv("TANZU_AI_MODEL_NAME", "qwen3-30b")
    monkeypatch.setenv("TANZU_AI_BINDING_NAME", "all-models")
    monkeypatch.setenv("TANZU_AI_ALLOW_INSECURE_HTTP", "true")
    monkeypatch.setenv("TANZU_AI_DISCOVERY_TIMEOUT_SECONDS", "12.5")
    monkeypatch.setenv("VCAP_SERVICES", '{"genai": []}')

    settings = Settings(_env_file=None)

    assert settings.endpoint == "https://proxy.example.com/plan"
    assert settings.api_key == "env-token"
    assert settings.config_url == "https://proxy.example.com/plan/config"
    assert settings.model_name == "qwen3-30b"
    assert settings.binding_name == "all-models"
    assert settings.allow_insecure_http is True
    assert settings.discovery_timeout_seconds == 12.5
    assert settings.vcap_services == '{"genai": []}'


def test_settings_repr_hides_secrets(monkeypatch: Any) -> None:
    monkeypatch.setenv("TANZU_AI_API_KEY", "env-token")

    settings = Settings(_env_file=None)

    assert "env-token" not in repr(settings)


def test_get_settings_is_cached(monkeypatch: Any) -> None:
    get_settings.cache_clear()
    monkeypatch.setenv("TANZU_AI_MODEL_NAME", "first")
    first = get_settings()
    monkeypatch.setenv("TANZU_AI_MODEL_NAME", "second")

    assert get_settings() is first
    assert first.model_name == "first"

    get_settings.cache_clear()
    assert get_settings().model_name == "second"
    get_settings.cache_clear()
