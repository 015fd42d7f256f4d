"""Advisor 抽象。

Advisor 是围绕一次生成调用的有序拦截器，统一采用“包裹后续调用”的形式：

    around_call(request, next_call) -> ChatResult

- 直接把 request 交给 ``next_call`` 并返回其结果（可对结果做后处理）；
- 构造新的 request（注入上下文文本、写入 context 键）后再交给 ``next_call``；
- 不调用 ``next_call``，自行合成 ChatResult 返回（短路），此时链上后续的
  Advisor 与终端调用都不会执行。只有 ``can_short_circuit=True`` 的 Advisor
  才允许短路。

流式调用对应 ``around_stream(request, next_stream)``，返回 ChatStreamChunk 迭代器。

Advisor 实例会被多个并发调用共享，不应在实例上保存单次调用的状态；
单次调用的数据放在 ChatRequest.context 中。
"""

from typing import Callable, Iterator, List, Optional

from advisor_core.domain.models import ChatRequest, ChatResult, ChatStreamChunk, aggregate_stream


CallNext = Callable[[ChatRequest], ChatResult]
StreamNext = Callable[[ChatRequest], Iterator[ChatStreamChunk]]
AdviseFunc = Callable[[ChatRequest, CallNext], ChatResult]
StreamAdviseFunc = Callable[[ChatRequest, StreamNext], Iterator[ChatStreamChunk]]

# order 越小越先执行 before 阶段（越靠外层）
HIGHEST_PRECEDENCE = -1000
DEFAULT_ORDER = 0
LOWEST_PRECEDENCE = 1000


class Advisor:
    """所有 Advisor 的基类，默认行为是原样透传。"""

    name: str = ""
    order: int = DEFAULT_ORDER
    can_short_circuit: bool = False

    def __init__(self, name: Optional[str] = None, order: Optional[int] = None):
        if name is not None:
            self.name = name
        elif not self.name:
            self.name = type(self).__name__
        if order is not None:
            self.order = order

    def around_call(self, request: ChatRequest, next_call: CallNext) -> ChatResult:
        return next_call(request)

    def around_stream(self, request: ChatRequest, next_stream: StreamNext) -> Iterator[ChatStreamChunk]:
        return next_stream(request)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, order={self.order})"


class BaseAdvisor(Advisor):
    """以 before/after 两个钩子实现包裹形式的 Advisor。

    流式调用时，增量原样向外产出；流结束后把聚合结果交给 ``after``，
    此时 ``after`` 只能产生副作用（例如写入记忆），无法再改写已发出的增量。
    """

    def before(self, request: ChatRequest) -> ChatRequest:
        return request

    def after(self, result: ChatResult, request: ChatRequest) -> ChatResult:
        return result

    def around_call(self, request: ChatRequest, next_call: CallNext) -> ChatResult:
        advised = self.before(request)
        result = next_call(advised)
        return self.after(result, advised)

    def around_stream(self, request: ChatRequest, next_stream: StreamNext) -> Iterator[ChatStreamChunk]:
        advised = self.before(request)
        chunks: List[ChatStreamChunk] = []
        for chunk in next_stream(advised):
            chunks.append(chunk)
            yield chunk
        self.after(aggregate_stream(chunks, advised.context), advised)


class FunctionAdvisor(Advisor):
    """把普通函数 ``(request, next_call) -> ChatResult`` 包装成 Advisor。"""

    def __init__(
        self,
        func: AdviseFunc,
        name: Optional[str] = None,
        order: int = DEFAULT_ORDER,
        can_short_circuit: bool = False,
        stream_func: Optional[StreamAdviseFunc] = None,
    ):
        super().__init__(name=name or getattr(func, "__name__", None), order=order)
        self.can_short_circuit = can_short_circuit
        self._func = func
        self._stream_func = stream_func

    def around_call(self, request: ChatRequest, next_call: CallNext) -> ChatResult:
        return self._func(request, next_call)

    def around_stream(self, request: ChatRequest, next_stream: StreamNext) -> Iterator[ChatStreamChunk]:
        if self._stream_func is None:
            return next_stream(request)
        return self._stream_func(request, next_stream)


def advisor(
    name: Optional[str] = None,
    order: int = DEFAULT_ORDER,
    can_short_circuit: bool = False,
) -> Callable[[AdviseFunc], FunctionAdvisor]:
    """装饰器形式的 FunctionAdvisor 构造。"""

    def decorator(func: AdviseFunc) -> FunctionAdvisor:
        return FunctionAdvisor(func, name=name, order=order, can_short_circuit=can_short_circuit)

    return decorator
