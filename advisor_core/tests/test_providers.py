import pytest

from advisor_core.domain.exceptions import ValidationError
from advisor_core.providers import create_provider
from advisor_core.providers.glm_client import GlmClient
from advisor_core.providers.kimi_client import KimiClient
from advisor_core.providers.registry import GLM_CONFIG, get_provider_config


def test_create_provider_default(monkeypatch):
    class DummySettings:
        default_provider = "glm"
        glm_api_key = "g"
        http_timeout = 1.0
        glm_base_url = "https://open.bigmodel.cn/api/paas/v4"
        kimi_api_key = None

    monkeypatch.setattr("advisor_core.providers.settings", DummySettings())
    provider = create_provider()
    assert isinstance(provider, GlmClient)


def test_create_provider_explicit(monkeypatch):
    class DummySettings:
        default_provider = "glm"
        kimi_api_key = "k"
        http_timeout = 1.0
        kimi_base_url = "https://api.moonshot.cn/v1"
        glm_api_key = None

    monkeypatch.setattr("advisor_core.providers.settings", DummySettings())
    provider = create_provider("KIMI")
    assert isinstance(provider, KimiClient)


def test_create_provider_unknown():
    with pytest.raises(ValidationError) as exc:
        create_provider("nope")
    assert exc.value.code == "UNKNOWN_PROVIDER"


def test_registry_resolves_logical_and_raw_models():
    assert GLM_CONFIG.resolve("chat").provider_model == "glm-4.6"
    assert GLM_CONFIG.resolve(None).logical_name == "chat"
    # 不在 registry 中的名字原样透传
    assert GLM_CONFIG.resolve("glm-4-plus").provider_model == "glm-4-plus"
    assert get_provider_config("GLM") is GLM_CONFIG
