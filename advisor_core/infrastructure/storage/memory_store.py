"""进程内的消息窗口记忆存储。"""

import threading
from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from advisor_core.config.settings import settings
from advisor_core.domain.memory import ChatMemory
from advisor_core.domain.models import ChatMessage


class InMemoryChatMemory(ChatMemory):
    """每个会话最多保留 ``max_messages`` 条消息。

    超出窗口时从最旧的非 system 消息开始淘汰，system 消息始终保留。
    """

    def __init__(self, max_messages: Optional[int] = None):
        self._max_messages = max_messages or settings.memory_window_size
        self._store: Dict[str, List[ChatMessage]] = defaultdict(list)
        self._lock = threading.Lock()

    def get(self, conversation_id: str, last_n: Optional[int] = None) -> List[ChatMessage]:
        with self._lock:
            msgs = list(self._store.get(conversation_id, ()))
        if last_n is not None:
            msgs = msgs[-last_n:] if last_n > 0 else []
        return msgs

    def add(self, conversation_id: str, messages: Sequence[ChatMessage]) -> None:
        with self._lock:
            merged = self._store[conversation_id] + list(messages)
            self._store[conversation_id] = self._evict(merged)

    def clear(self, conversation_id: str) -> None:
        with self._lock:
            self._store.pop(conversation_id, None)

    def conversation_ids(self) -> List[str]:
        with self._lock:
            return list(self._store.keys())

    def _evict(self, msgs: List[ChatMessage]) -> List[ChatMessage]:
        overflow = len(msgs) - self._max_messages
        if overflow <= 0:
            return msgs
        kept: List[ChatMessage] = []
        for msg in msgs:
            if overflow > 0 and msg.role != "system":
                overflow -= 1
                continue
            kept.append(msg)
        return kept
