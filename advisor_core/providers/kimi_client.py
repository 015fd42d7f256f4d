"""Kimi (Moonshot) Provider 适配器。"""

from advisor_core.providers.openai_compat import OpenAICompatibleClient
from advisor_core.providers.registry import KIMI_CONFIG


class KimiClient(OpenAICompatibleClient):
    """Kimi 提供方客户端实现。

    Moonshot 在部分模型上仍会返回旧版 function_call 字段，基类已兼容。
    """

    name = "kimi"
    provider_config = KIMI_CONFIG
    api_key_field = "kimi_api_key"
    base_url_field = "kimi_base_url"
