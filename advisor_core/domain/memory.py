from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .models import ChatMessage, Role


@dataclass
class Conversation:
    id: str
    created_at: datetime
    updated_at: datetime
    meta: Dict[str, Any]


@dataclass
class MessageRecord:
    id: str
    conversation_id: str
    role: Role
    content: str
    seq: int
    created_at: datetime
    meta: Dict[str, Any]

    def to_message(self) -> ChatMessage:
        return ChatMessage(role=self.role, content=self.content, meta=self.meta)


class ChatMemory(Protocol):
    """按会话标识存取消息的记忆存储。

    实现方自行保证并发安全：同一个存储可能被多个并发调用中的
    记忆 Advisor 同时读写。
    """

    def get(self, conversation_id: str, last_n: Optional[int] = None) -> List[ChatMessage]:
        ...

    def add(self, conversation_id: str, messages: Sequence[ChatMessage]) -> None:
        ...

    def clear(self, conversation_id: str) -> None:
        ...

    def conversation_ids(self) -> List[str]:
        ...
