"""GLM / BigModel Provider 适配器。

接口与 OpenAI 兼容，只依赖公共字段：model/messages/temperature/max_tokens/top_p/stop/stream。
"""

from advisor_core.providers.openai_compat import OpenAICompatibleClient
from advisor_core.providers.registry import GLM_CONFIG


class GlmClient(OpenAICompatibleClient):
    """GLM / BigModel Provider 客户端实现。"""

    name = "glm"
    provider_config = GLM_CONFIG
    api_key_field = "glm_api_key"
    base_url_field = "glm_base_url"
