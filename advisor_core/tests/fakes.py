"""测试共用的假 Provider 与向量模型。"""

import threading
from typing import List

from advisor_core.domain.models import (
    ChatChoice,
    ChatMessage,
    ChatResult,
    ChatStreamChoice,
    ChatStreamChunk,
    ChatUsage,
)

VOCAB = ["spring", "advisor", "python", "memory", "weather", "vector", "cat", "dog"]


class KeywordEmbedding:
    """按关键词出现次数生成向量，足够区分测试文档。"""

    def __init__(self):
        self.calls = 0

    def embed(self, texts) -> List[List[float]]:
        self.calls += 1
        return [[float(t.lower().count(w)) for w in VOCAB] for t in texts]


class FakeProvider:
    """按顺序返回预设回答；回答可以是文本或 ChatMessage（用于工具调用）。"""

    name = "fake"

    def __init__(self, *replies):
        self._replies = list(replies) or ["ok"]
        self.requests = []
        self._lock = threading.Lock()

    def _next_reply(self, req):
        with self._lock:
            self.requests.append(req)
            idx = min(len(self.requests) - 1, len(self._replies) - 1)
            return self._replies[idx]

    def chat(self, req):
        reply = self._next_reply(req)
        msg = reply if isinstance(reply, ChatMessage) else ChatMessage(role="assistant", content=reply)
        return ChatResult(
            choices=[ChatChoice(index=0, message=msg, finish_reason="stop")],
            usage=ChatUsage(prompt_tokens=1, completion_tokens=1, total_tokens=2),
            context=req.context,
            provider=self.name,
            model="fake-model",
        )

    def chat_stream(self, req):
        reply = self._next_reply(req)
        text = reply.content if isinstance(reply, ChatMessage) else reply
        parts = [text[: len(text) // 2], text[len(text) // 2 :]]
        for i, part in enumerate(parts):
            yield ChatStreamChunk(
                choices=[
                    ChatStreamChoice(
                        index=0,
                        delta=ChatMessage(role="assistant", content=part),
                        finish_reason="stop" if i == len(parts) - 1 else None,
                    )
                ],
                context=req.context,
                provider=self.name,
                model="fake-model",
            )
