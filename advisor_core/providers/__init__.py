"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供 OpenAI 兼容协议的通用实现与各厂商子类 (glm_client、kimi_client)。
"""

from typing import Optional

from advisor_core.config.settings import settings
from advisor_core.domain.exceptions import ValidationError
from advisor_core.providers.base import ProviderClient
from advisor_core.providers.glm_client import GlmClient
from advisor_core.providers.kimi_client import KimiClient

_PROVIDERS = {
    "glm": GlmClient,
    "kimi": KimiClient,
}


def create_provider(name: Optional[str] = None, cfg=None) -> ProviderClient:
    """根据名称创建 Provider 实例，默认取配置中的 provider。"""

    cfg = cfg or settings
    provider_name = (name or getattr(cfg, "default_provider", "glm")).lower()
    cls = _PROVIDERS.get(provider_name)
    if cls is None:
        raise ValidationError(code="UNKNOWN_PROVIDER", message=f"unknown provider {provider_name!r}")
    return cls(cfg)


__all__ = ["GlmClient", "KimiClient", "ProviderClient", "create_provider"]
