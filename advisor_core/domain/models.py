"""统一的对话与结果数据模型。

本模块定义了 Advisor 链、ChatClient 与各 Provider 之间共享的标准数据结构：

- ChatMessage: 一条对话消息（system/user/assistant/tool），构造后不可变。
- ChatOptions: 生成参数（模型、温度、max_tokens、stop、top_k/top_p）。
- ChatRequest: 一次调用的完整请求，附带 context 旁路字典。
- ChatResult: 终端调用（或短路的 Advisor）产生的统一响应结果。

ChatRequest / ChatResult 都是冻结的 dataclass：Advisor 通过 ``mutate``、
``with_context`` 等方法得到新对象，而不是原地修改，因此共享同一条链的
并发调用之间不会互相看到对方的中间状态。构造时 context 会被复制为只读映射。
"""

from dataclasses import dataclass, field, fields, replace
from types import MappingProxyType
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Iterable,
    List,
    Literal,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

if TYPE_CHECKING:
    # 仅在类型检查时导入，避免运行时循环依赖
    from advisor_core.tools.definitions import ToolCall, ToolDef


# 消息角色；"tool" 即工具执行结果（ToolResult）
Role = Literal["system", "user", "assistant", "tool"]


@dataclass(frozen=True)
class ChatMessage:
    """一条对话消息，既可用于请求，也可用于响应。

    - role: 消息角色，如 system/user/assistant/tool。
    - content: 纯文本内容。
    - meta: 附加元数据（只读映射），不直接发给 Provider，
      主要用于日志、记忆存储与上层展示。
    - tool_calls: 当 role 为 "assistant" 且模型触发工具调用时，
      这里保存模型发起的工具调用列表。
    - tool_call_id: 当 role 为 "tool" 时，用于关联某一次工具调用。
    """

    role: Role
    content: str
    meta: Mapping[str, Any] = field(default_factory=dict)
    tool_calls: Optional[Tuple["ToolCall", ...]] = None
    tool_call_id: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "meta", MappingProxyType(dict(self.meta or {})))
        if self.tool_calls is not None:
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

    def with_content(self, content: str) -> "ChatMessage":
        return replace(self, content=content)


@dataclass(frozen=True)
class ChatOptions:
    """生成参数。None 表示“使用下游默认值”。

    top_k 仅作为通用字段保留，OpenAI 兼容的 chat/completions 接口不接受该参数，
    GlmClient / KimiClient 构造请求体时会忽略它。
    """

    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    stop: Tuple[str, ...] = ()
    top_k: Optional[int] = None
    top_p: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "stop", tuple(self.stop or ()))

    def merge(self, other: Optional["ChatOptions"]) -> "ChatOptions":
        """返回新的 options，other 中非空字段覆盖当前值。"""

        if other is None:
            return self
        changes = {}
        for f in fields(other):
            value = getattr(other, f.name)
            if value is None or value == ():
                continue
            changes[f.name] = value
        return replace(self, **changes)


@dataclass(frozen=True)
class ChatRequest:
    """一次完整的聊天请求。

    - messages: 有序消息序列（tuple）。
    - options: 生成参数。
    - context: 旁路上下文（只读映射），用于 Advisor 之间以及 Advisor 与终端调用之间
      传递数据，不会改变消息序列本身。可用的键见 ``advisor_core.domain.context``。
    - tools: 可供模型调用的工具定义。
    - provider: 逻辑 Provider 名（可选，仅用于日志）。
    """

    messages: Tuple[ChatMessage, ...]
    options: ChatOptions = field(default_factory=ChatOptions)
    context: Mapping[str, Any] = field(default_factory=dict)
    tools: Tuple["ToolDef", ...] = ()
    tool_choice: Literal["auto", "none", "required"] = "auto"
    provider: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "messages", tuple(self.messages))
        object.__setattr__(self, "tools", tuple(self.tools or ()))
        object.__setattr__(self, "context", MappingProxyType(dict(self.context or {})))

    # ---- 拷贝式修改 ----

    def mutate(self, **changes: Any) -> "ChatRequest":
        """浅拷贝当前请求并应用修改，context 总是复制一份。"""

        return replace(self, **changes)

    def with_context(self, key: Any, value: Any) -> "ChatRequest":
        name = getattr(key, "name", key)
        ctx = dict(self.context)
        ctx[name] = value
        return replace(self, context=ctx)

    def with_messages(self, messages: Iterable[ChatMessage]) -> "ChatRequest":
        return replace(self, messages=tuple(messages))

    def augment_user_message(self, content: str) -> "ChatRequest":
        """替换最后一条 user 消息的文本；没有 user 消息时追加一条。"""

        msgs = list(self.messages)
        for idx in range(len(msgs) - 1, -1, -1):
            if msgs[idx].role == "user":
                msgs[idx] = msgs[idx].with_content(content)
                return self.with_messages(msgs)
        msgs.append(ChatMessage(role="user", content=content))
        return self.with_messages(msgs)

    # ---- 只读视图 ----

    @property
    def last_user_message(self) -> Optional[ChatMessage]:
        for msg in reversed(self.messages):
            if msg.role == "user":
                return msg
        return None

    @property
    def user_text(self) -> str:
        msg = self.last_user_message
        return msg.content if msg else ""

    @property
    def system_text(self) -> str:
        return "\n".join(m.content for m in self.messages if m.role == "system")


@dataclass(frozen=True)
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int

    def __add__(self, other: "ChatUsage") -> "ChatUsage":
        return ChatUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


@dataclass(frozen=True)
class ChatChoice:
    """单个候选回答（通常只用 index=0 的一条）。"""

    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None


@dataclass(frozen=True)
class ChatResult:
    """一次调用的最终结果。

    - choices: 一个或多个候选回答。
    - usage: 可选的 token 使用统计。
    - metadata: 响应级元数据（Advisor 可追加，如检索到的文档）。
    - context: 产生该结果时请求 context 的副本。
    - provider / model: 产生结果的 Provider 与模型名；短路结果为 None。
    - raw: 原始响应 JSON，用于调试。
    """

    choices: Tuple[ChatChoice, ...]
    usage: Optional[ChatUsage] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    context: Dict[str, Any] = field(default_factory=dict)
    provider: Optional[str] = None
    model: Optional[str] = None
    raw: Optional[dict] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "choices", tuple(self.choices))
        object.__setattr__(self, "metadata", dict(self.metadata or {}))
        object.__setattr__(self, "context", dict(self.context or {}))

    @classmethod
    def from_text(
        cls,
        text: str,
        request: Optional[ChatRequest] = None,
        finish_reason: str = "stop",
        **metadata: Any,
    ) -> "ChatResult":
        """由 Advisor 合成一个只有一条 assistant 回答的结果（用于短路）。"""

        msg = ChatMessage(role="assistant", content=text)
        return cls(
            choices=(ChatChoice(index=0, message=msg, finish_reason=finish_reason),),
            metadata=metadata,
            context=request.context if request is not None else {},
        )

    @property
    def message(self) -> Optional[ChatMessage]:
        return self.choices[0].message if self.choices else None

    @property
    def content(self) -> Optional[str]:
        msg = self.message
        return msg.content if msg else None

    def mutate(self, **changes: Any) -> "ChatResult":
        return replace(self, **changes)

    def with_metadata(self, key: str, value: Any) -> "ChatResult":
        meta = dict(self.metadata)
        meta[key] = value
        return replace(self, metadata=meta)

    def with_context(self, context: Mapping[str, Any]) -> "ChatResult":
        return replace(self, context=dict(context))


@dataclass(frozen=True)
class ChatStreamChoice:
    """流式返回中的单个候选增量。"""

    index: int
    delta: ChatMessage
    finish_reason: Optional[str] = None


@dataclass(frozen=True)
class ChatStreamChunk:
    """流式对话的增量结果，结构与 ChatResult 类似。

    每次流式回调由若干 choice 组成，choice.delta 代表本次增量内容。
    """

    choices: Tuple[ChatStreamChoice, ...]
    usage: Optional[ChatUsage] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    context: Dict[str, Any] = field(default_factory=dict)
    provider: Optional[str] = None
    model: Optional[str] = None
    raw: Optional[dict] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "choices", tuple(self.choices))
        object.__setattr__(self, "metadata", dict(self.metadata or {}))
        object.__setattr__(self, "context", dict(self.context or {}))

    @property
    def text(self) -> str:
        return "".join(c.delta.content for c in self.choices if c.delta.content)

    @property
    def finished(self) -> bool:
        return any(c.finish_reason for c in self.choices)


def aggregate_stream(
    chunks: Sequence[ChatStreamChunk],
    context: Optional[Mapping[str, Any]] = None,
) -> ChatResult:
    """把一组流式增量折叠为完整的 ChatResult。"""

    texts: Dict[int, List[str]] = {}
    finish: Dict[int, Optional[str]] = {}
    usage: Optional[ChatUsage] = None
    metadata: Dict[str, Any] = {}
    provider = model = None
    for chunk in chunks:
        provider = provider or chunk.provider
        model = model or chunk.model
        if chunk.usage is not None:
            usage = chunk.usage
        metadata.update(chunk.metadata)
        for choice in chunk.choices:
            texts.setdefault(choice.index, []).append(choice.delta.content or "")
            if choice.finish_reason:
                finish[choice.index] = choice.finish_reason
    choices = [
        ChatChoice(
            index=idx,
            message=ChatMessage(role="assistant", content="".join(parts)),
            finish_reason=finish.get(idx),
        )
        for idx, parts in sorted(texts.items())
    ]
    if context is None:
        context = chunks[-1].context if chunks else {}
    return ChatResult(
        choices=choices,
        usage=usage,
        metadata=metadata,
        context=context,
        provider=provider,
        model=model,
    )
