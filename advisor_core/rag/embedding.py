"""向量模型。

EmbeddingModel 协议只要求 ``embed(texts) -> List[List[float]]``。
GlmEmbeddingClient 调用 BigModel 的 ``/embeddings`` 端点（OpenAI 兼容格式）。
"""

from typing import List, Protocol, Sequence

import httpx

from advisor_core.config.settings import settings
from advisor_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError


class EmbeddingModel(Protocol):
    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        ...


class GlmEmbeddingClient:
    """GLM / BigModel 向量接口客户端。"""

    name = "glm"

    def __init__(self, cfg=settings, model: str | None = None):
        self._settings = cfg
        self._model = model or getattr(cfg, "embedding_model", "embedding-3")

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        if not getattr(self._settings, "glm_api_key", None):
            raise ValidationError(code="MISSING_API_KEY", message="GLM_API_KEY not set")
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(
                    f"{self._settings.glm_base_url}/embeddings",
                    json={"model": self._model, "input": list(texts)},
                    headers={
                        "Authorization": f"Bearer {self._settings.glm_api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="GLM rate limit")
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)
        data = resp.json().get("data") or []
        data = sorted(data, key=lambda item: item.get("index", 0))
        vectors = [list(map(float, item.get("embedding") or [])) for item in data]
        if len(vectors) != len(texts):
            raise ApiError(
                code="API_ERROR",
                message=f"expected {len(texts)} embeddings, got {len(vectors)}",
                http_status=502,
            )
        return vectors
