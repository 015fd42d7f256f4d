"""对话记忆 Advisor。

两种注入方式：

- MessageChatMemoryAdvisor：把历史消息原样插入到 system 消息之后、本轮消息之前。
- PromptChatMemoryAdvisor：把历史渲染成文本，追加到 system 提示词里。

读取的 context 键：CONVERSATION_ID（默认 "default"）、MEMORY_HISTORY_SIZE
（默认取 settings.memory_window_size）。
调用成功后，本轮 user 消息与 assistant 回答一起写回记忆；
下游失败时记忆保持不变。
"""

from typing import List, Optional

from advisor_core.advisors.base import BaseAdvisor
from advisor_core.config.settings import settings
from advisor_core.domain.context import CONVERSATION_ID, MEMORY_HISTORY_SIZE
from advisor_core.domain.memory import ChatMemory
from advisor_core.domain.models import ChatMessage, ChatRequest, ChatResult
from advisor_core.prompts import DEFAULT_MEMORY_TEMPLATE, PromptTemplate

MEMORY_ORDER = -500


class _ChatMemoryAdvisor(BaseAdvisor):
    order = MEMORY_ORDER

    def __init__(
        self,
        chat_memory: ChatMemory,
        conversation_id: Optional[str] = None,
        history_size: Optional[int] = None,
        name: Optional[str] = None,
        order: Optional[int] = None,
    ):
        super().__init__(name=name, order=order)
        self._memory = chat_memory
        self._default_conversation_id = conversation_id or CONVERSATION_ID.default
        self._history_size = history_size or settings.memory_window_size

    def conversation_id(self, request: ChatRequest) -> str:
        return CONVERSATION_ID.get(request.context, self._default_conversation_id)

    def history(self, request: ChatRequest) -> List[ChatMessage]:
        size = MEMORY_HISTORY_SIZE.get(request.context, self._history_size)
        return self._memory.get(self.conversation_id(request), size)

    def after(self, result: ChatResult, request: ChatRequest) -> ChatResult:
        to_store: List[ChatMessage] = []
        user_msg = request.last_user_message
        if user_msg is not None:
            to_store.append(ChatMessage(role="user", content=self._original_user_text(request, user_msg)))
        if result.message is not None and result.message.content:
            to_store.append(ChatMessage(role="assistant", content=result.message.content))
        self._memory.add(self.conversation_id(request), to_store)
        return result

    @staticmethod
    def _original_user_text(request: ChatRequest, user_msg: ChatMessage) -> str:
        # 下游 Advisor（如 RAG）可能改写 user 文本；记忆里保存改写前的原文
        return user_msg.meta.get("original_text", user_msg.content)


class MessageChatMemoryAdvisor(_ChatMemoryAdvisor):
    name = "message_chat_memory"

    def before(self, request: ChatRequest) -> ChatRequest:
        history = [m for m in self.history(request) if m.role != "system"]
        if not history:
            return request
        system = [m for m in request.messages if m.role == "system"]
        rest = [m for m in request.messages if m.role != "system"]
        return request.with_messages(system + history + rest)


class PromptChatMemoryAdvisor(_ChatMemoryAdvisor):
    name = "prompt_chat_memory"

    def __init__(
        self,
        chat_memory: ChatMemory,
        conversation_id: Optional[str] = None,
        history_size: Optional[int] = None,
        template: Optional[PromptTemplate] = None,
        name: Optional[str] = None,
        order: Optional[int] = None,
    ):
        super().__init__(chat_memory, conversation_id, history_size, name=name, order=order)
        self._template = template or DEFAULT_MEMORY_TEMPLATE

    def before(self, request: ChatRequest) -> ChatRequest:
        history = [m for m in self.history(request) if m.role in ("user", "assistant")]
        if not history:
            return request
        memory_text = "\n".join(f"{m.role}: {m.content}" for m in history)
        system_text = self._template.render(instructions=request.system_text, memory=memory_text)
        rest = [m for m in request.messages if m.role != "system"]
        return request.with_messages([ChatMessage(role="system", content=system_text)] + rest)
