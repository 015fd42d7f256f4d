"""ChatClient：建立在 Advisor 链之上的链式调用入口。

典型用法::

    client = (
        ChatClient.builder(create_provider("glm"))
        .default_system("You are a helpful assistant.")
        .default_advisors(SimpleLoggerAdvisor())
        .build()
    )
    text = client.prompt().user("Hello").call().content()

默认 Advisor 在 build() 时组装成一条不可变的 AdvisorChain；单次调用通过
``PromptSpec.advisors()`` 追加的 Advisor 会得到一条新链，默认链保持不变。
"""

from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Type, Union

from pydantic import BaseModel

from advisor_core.advisors.base import Advisor
from advisor_core.advisors.chain import AdvisorChain
from advisor_core.client.terminal import ToolCallingTerminal
from advisor_core.converters import PydanticOutputConverter
from advisor_core.domain.models import ChatMessage, ChatOptions, ChatRequest, ChatResult, ChatStreamChunk
from advisor_core.prompts import PromptTemplate
from advisor_core.providers.base import ProviderClient
from advisor_core.tools.definitions import ToolCallback
from advisor_core.tools.executor import ToolExecutor


class ChatClient:
    """面向调用方的对话客户端。实例构造后只读，可在线程间共享。"""

    def __init__(
        self,
        provider: ProviderClient,
        advisors: Sequence[Advisor] = (),
        system: Optional[str] = None,
        options: Optional[ChatOptions] = None,
        tools: Sequence[ToolCallback] = (),
        max_tool_rounds: Optional[int] = None,
        trace: bool = False,
    ):
        self._provider = provider
        self._chain = AdvisorChain(advisors, trace=trace)
        self._system = system
        self._options = options or ChatOptions()
        self._tools = tuple(tools)
        self._max_tool_rounds = max_tool_rounds

    @classmethod
    def builder(cls, provider: ProviderClient) -> "ChatClientBuilder":
        return ChatClientBuilder(provider)

    @property
    def chain(self) -> AdvisorChain:
        return self._chain

    def prompt(self, user: Optional[str] = None) -> "PromptSpec":
        spec = PromptSpec(self)
        if user is not None:
            spec.user(user)
        return spec

    # ---- 内部：由 PromptSpec 调用 ----

    def _prepare(self, spec: "PromptSpec", suffix: Optional[str] = None):
        messages: List[ChatMessage] = []
        system = spec._system if spec._system is not None else self._system
        if system:
            messages.append(ChatMessage(role="system", content=system))
        messages.extend(spec._messages)
        if spec._user is not None:
            text = spec._user
            if suffix:
                text = f"{text}\n{suffix}"
            messages.append(ChatMessage(role="user", content=text, meta={"original_text": spec._user}))

        callbacks: Dict[str, ToolCallback] = {cb.name: cb for cb in self._tools}
        callbacks.update({cb.name: cb for cb in spec._tools})
        executor = ToolExecutor(callbacks.values()) if callbacks else None

        request = ChatRequest(
            messages=messages,
            options=self._options.merge(spec._options),
            context=spec._context,
            tools=[cb.definition for cb in callbacks.values()],
            provider=getattr(self._provider, "name", None),
        )
        chain = self._chain.with_advisors(*spec._advisors) if spec._advisors else self._chain
        terminal = ToolCallingTerminal(self._provider, executor, self._max_tool_rounds)
        return chain, request, terminal


class ChatClientBuilder:
    """ChatClient 的默认配置构建器。"""

    def __init__(self, provider: ProviderClient):
        self._provider = provider
        self._advisors: List[Advisor] = []
        self._system: Optional[str] = None
        self._options: Optional[ChatOptions] = None
        self._tools: List[ToolCallback] = []
        self._max_tool_rounds: Optional[int] = None
        self._trace = False

    def default_system(self, text: str, **variables: Any) -> "ChatClientBuilder":
        self._system = PromptTemplate(text).render(variables) if variables else text
        return self

    def default_options(self, options: ChatOptions) -> "ChatClientBuilder":
        self._options = options
        return self

    def default_advisors(self, *advisors: Advisor) -> "ChatClientBuilder":
        self._advisors.extend(advisors)
        return self

    def default_tools(self, *tools: ToolCallback) -> "ChatClientBuilder":
        self._tools.extend(tools)
        return self

    def max_tool_rounds(self, rounds: int) -> "ChatClientBuilder":
        self._max_tool_rounds = rounds
        return self

    def trace(self, enabled: bool = True) -> "ChatClientBuilder":
        self._trace = enabled
        return self

    def build(self) -> ChatClient:
        return ChatClient(
            self._provider,
            advisors=self._advisors,
            system=self._system,
            options=self._options,
            tools=self._tools,
            max_tool_rounds=self._max_tool_rounds,
            trace=self._trace,
        )


class PromptSpec:
    """单次调用的请求描述，链式设置后通过 call() / stream() 执行。"""

    def __init__(self, client: ChatClient):
        self._client = client
        self._system: Optional[str] = None
        self._user: Optional[str] = None
        self._messages: List[ChatMessage] = []
        self._options: Optional[ChatOptions] = None
        self._advisors: List[Advisor] = []
        self._context: Dict[str, Any] = {}
        self._tools: List[ToolCallback] = []

    def system(self, text: str, **variables: Any) -> "PromptSpec":
        self._system = PromptTemplate(text).render(variables) if variables else text
        return self

    def user(self, text: str, **variables: Any) -> "PromptSpec":
        self._user = PromptTemplate(text).render(variables) if variables else text
        return self

    def messages(self, *messages: ChatMessage) -> "PromptSpec":
        self._messages.extend(messages)
        return self

    def options(self, options: ChatOptions) -> "PromptSpec":
        self._options = options
        return self

    def advisors(self, *advisors: Advisor) -> "PromptSpec":
        self._advisors.extend(advisors)
        return self

    def context(self, key: Any, value: Any) -> "PromptSpec":
        self._context[getattr(key, "name", key)] = value
        return self

    def tools(self, *tools: ToolCallback) -> "PromptSpec":
        self._tools.extend(tools)
        return self

    def call(self) -> "CallResponseSpec":
        return CallResponseSpec(self._run)

    def stream(self) -> "StreamResponseSpec":
        chain, request, terminal = self._client._prepare(self)
        return StreamResponseSpec(lambda: chain.stream(request, terminal.stream))

    def _run(self, suffix: Optional[str] = None) -> ChatResult:
        chain, request, terminal = self._client._prepare(self, suffix)
        return chain.execute(request, terminal)


class CallResponseSpec:
    """非流式调用的结果视图。首次取值时才真正执行调用，结果被缓存。"""

    def __init__(self, run: Callable[[Optional[str]], ChatResult]):
        self._run = run
        self._result: Optional[ChatResult] = None

    def chat_result(self) -> ChatResult:
        if self._result is None:
            self._result = self._run(None)
        return self._result

    def content(self) -> Optional[str]:
        return self.chat_result().content

    def entity(self, converter: Union[Type[BaseModel], Any]) -> Any:
        """把格式说明追加到用户消息后执行调用，并把回答转换为结构化对象。

        converter 可以是任意带 format()/convert() 的转换器，或一个 pydantic 模型类。
        """

        if isinstance(converter, type) and issubclass(converter, BaseModel):
            converter = PydanticOutputConverter(converter)
        result = self._run(converter.format())
        self._result = result
        return converter.convert(result.content or "")


class StreamResponseSpec:
    """流式调用的结果视图。"""

    def __init__(self, open_stream: Callable[[], Iterator[ChatStreamChunk]]):
        self._open_stream = open_stream

    def chunks(self) -> Iterator[ChatStreamChunk]:
        return self._open_stream()

    def content(self) -> Iterator[str]:
        for chunk in self._open_stream():
            if chunk.text:
                yield chunk.text
