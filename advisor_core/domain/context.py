"""请求 context 旁路字典中使用的键。

所有 Advisor 读写的键都在此集中声明，而不是在各处散落字符串：
每个 ContextKey 记录名称、期望类型与默认值，读取时做类型校验。

| 键 | 写入方 | 读取方 |
|----|--------|--------|
| CONVERSATION_ID | 调用方 | 记忆类 Advisor |
| MEMORY_HISTORY_SIZE | 调用方 | 记忆类 Advisor |
| FILTER_EXPRESSION | 调用方 | QuestionAnswerAdvisor |
| TOP_K | 调用方 | QuestionAnswerAdvisor |
| RETRIEVED_DOCUMENTS | QuestionAnswerAdvisor | 下游 Advisor / 调用方 |
| CANCEL_EVENT | 调用方 | ToolCallingTerminal |
| ADVISOR_TRACE | AdvisorChain（可选开启） | 调用方 / 测试 |
"""

import threading
from dataclasses import dataclass
from typing import Any, Generic, Mapping, Optional, Tuple, Type, TypeVar, Union

from advisor_core.domain.exceptions import ValidationError

T = TypeVar("T")


@dataclass(frozen=True)
class ContextKey(Generic[T]):
    """一个带类型的 context 键。"""

    name: str
    types: Union[Type[Any], Tuple[Type[Any], ...]]
    default: Optional[T] = None
    description: str = ""

    def get(self, context: Mapping[str, Any], default: Optional[T] = None) -> Optional[T]:
        if self.name not in context or context[self.name] is None:
            return default if default is not None else self.default
        value = context[self.name]
        if not isinstance(value, self.types):
            raise ValidationError(
                code="INVALID_CONTEXT_VALUE",
                message=f"context key {self.name!r} expects {self.types}, got {type(value).__name__}",
            )
        return value

    def __str__(self) -> str:
        return self.name


CONVERSATION_ID: ContextKey[str] = ContextKey(
    "chat_memory_conversation_id", str, "default", "记忆存储中的会话标识"
)
MEMORY_HISTORY_SIZE: ContextKey[int] = ContextKey(
    "chat_memory_history_size", int, None, "覆盖记忆 Advisor 读取的历史消息条数"
)
FILTER_EXPRESSION: ContextKey[str] = ContextKey(
    "qa_filter_expression", str, None, "向量检索的元数据过滤表达式"
)
TOP_K: ContextKey[int] = ContextKey("qa_top_k", int, None, "覆盖向量检索返回的文档数")
RETRIEVED_DOCUMENTS: ContextKey[list] = ContextKey(
    "qa_retrieved_documents", list, None, "QuestionAnswerAdvisor 检索到的文档"
)
CANCEL_EVENT: ContextKey[threading.Event] = ContextKey(
    "cancel_event", threading.Event, None, "协作式取消信号"
)
ADVISOR_TRACE: ContextKey[tuple] = ContextKey(
    "advisor_trace", tuple, (), "已执行 before 阶段的 Advisor 名称序列"
)
