import pytest

from listening_core.providers import create_provider
from listening_core.providers.completions_client import CompletionsClient
from listening_core.providers.registry import get_provider_config


def test_create_provider_default(monkeypatch):
    class DummySettings:
        default_provider = "glm"
        glm_api_key = "g" * 12
        http_timeout = 1.0
        glm_base_url = "https://open.bigmodel.cn/api/paas/v4"
        kimi_api_key = None

    monkeypatch.setattr("listening_core.providers.settings", DummySettings())
    provider = create_provider()
    assert isinstance(provider, CompletionsClient)
    assert provider.name == "glm"


def test_create_provider_explicit(monkeypatch):
    class DummySettings:
        default_provider = "glm"
        kimi_api_key = "k" * 12
        http_timeout = 1.0
        kimi_base_url = "https://api.moonshot.cn/v1"
        glm_api_key = None

    monkeypatch.setattr("listening_core.providers.settings", DummySettings())
    assert create_provider("KIMI").name == "kimi"


def test_registry_lookup():
    assert get_provider_config("Kimi").models["distill"].logical_name == "distill"
    with pytest.raises(KeyError):
        get_provider_config("nope")
