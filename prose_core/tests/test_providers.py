import pytest

from prose_core.providers import create_provider
from prose_core.providers.openrouter_client import OpenRouterClient
from prose_core.providers.registry import OPENROUTER_CONFIG, get_provider_config


class DummySettings:
    default_provider = "openrouter"
    openrouter_api_key = "sk-or-test-key"
    openrouter_base_url = "https://openrouter.ai/api/v1"
    http_timeout = 1.0
    app_referer = None
    app_title = None


def test_create_provider_default(monkeypatch):
    monkeypatch.setattr("prose_core.providers.settings", DummySettings())
    provider = create_provider()
    assert isinstance(provider, OpenRouterClient)
    assert provider.name == "openrouter"


def test_create_provider_unknown(monkeypatch):
    monkeypatch.setattr("prose_core.providers.settings", DummySettings())
    with pytest.raises(KeyError):
        create_provider("unknown")


def test_registry_resolves_logical_and_raw_models():
    assert OPENROUTER_CONFIG.resolve_model("assistant").provider_model == "z-ai/glm-4.6"
    raw = OPENROUTER_CONFIG.resolve_model("anthropic/some-model")
    assert raw.provider_model == "anthropic/some-model"
    assert get_provider_config("openrouter") is OPENROUTER_CONFIG
