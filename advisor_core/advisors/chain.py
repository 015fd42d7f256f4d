"""Advisor 链执行器。

AdvisorChain 持有一组按 order 稳定排序的 Advisor（order 相同则保持注册顺序）
以及终端调用（真正的模型调用）。链在构造后只读，不保存任何单次调用的状态，
因此同一条链可以被多个线程并发执行。

执行采用续延传递的单次递归遍历：第 i 个 Advisor 拿到的 ``next_call`` 会调用
第 i+1 个 Advisor，最后一个 Advisor 的 ``next_call`` 即终端调用。
before 阶段按 order 升序发生，after 阶段按相反顺序发生；某个 Advisor 短路时，
它之后的 Advisor 与终端调用都不会被调用。

执行器自身不做任何恢复或重试：Advisor 或终端调用抛出的异常原样传给调用方。
"""

import logging
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Tuple
from uuid import uuid4

from advisor_core.advisors.base import Advisor
from advisor_core.domain.context import ADVISOR_TRACE
from advisor_core.domain.exceptions import ChainConfigurationError
from advisor_core.domain.models import ChatRequest, ChatResult, ChatStreamChunk
from advisor_core.infrastructure.logging.logger import log_event


Terminal = Callable[[ChatRequest], ChatResult]
StreamTerminal = Callable[[ChatRequest], Iterator[ChatStreamChunk]]


class _Next:
    """单跳续延：只能被调用一次，并记录是否被调用过。"""

    __slots__ = ("_target", "_owner", "invoked")

    def __init__(self, target: Callable[[ChatRequest], object], owner: str):
        self._target = target
        self._owner = owner
        self.invoked = False

    def __call__(self, request: ChatRequest):
        if self.invoked:
            raise ChainConfigurationError(
                code="NEXT_CALLED_TWICE",
                message=f"advisor {self._owner!r} invoked its continuation more than once",
            )
        if not isinstance(request, ChatRequest):
            raise ChainConfigurationError(
                code="INVALID_REQUEST",
                message=f"advisor {self._owner!r} passed {type(request).__name__} to its continuation",
            )
        self.invoked = True
        return self._target(request)


class AdvisorChain:
    """不可变的有序 Advisor 链。

    Args:
        advisors: Advisor 列表，构造时按 order 稳定排序。
        terminal: 默认终端调用 ``ChatRequest -> ChatResult``。
        stream_terminal: 默认流式终端调用 ``ChatRequest -> Iterator[ChatStreamChunk]``。
        trace: 为 True 时，每个 Advisor 执行前把自己的名字追加到
            context[ADVISOR_TRACE]，便于调试。
    """

    def __init__(
        self,
        advisors: Iterable[Advisor] = (),
        terminal: Optional[Terminal] = None,
        stream_terminal: Optional[StreamTerminal] = None,
        trace: bool = False,
    ):
        registered = list(advisors)
        seen = set()
        for adv in registered:
            if adv.name in seen:
                raise ChainConfigurationError(
                    code="DUPLICATE_ADVISOR",
                    message=f"advisor name {adv.name!r} registered twice",
                )
            seen.add(adv.name)
        # sorted() 是稳定排序，order 相同的 Advisor 保持注册顺序
        self._advisors: Tuple[Advisor, ...] = tuple(sorted(registered, key=lambda a: a.order))
        self._terminal = terminal
        self._stream_terminal = stream_terminal
        self._trace = trace

    @classmethod
    def builder(cls) -> "AdvisorChainBuilder":
        return AdvisorChainBuilder()

    @property
    def advisors(self) -> Tuple[Advisor, ...]:
        return self._advisors

    @property
    def terminal(self) -> Optional[Terminal]:
        return self._terminal

    @property
    def stream_terminal(self) -> Optional[StreamTerminal]:
        return self._stream_terminal

    def with_advisors(self, *extra: Advisor) -> "AdvisorChain":
        """返回追加了 Advisor 的新链，当前链不变。"""

        return AdvisorChain(
            list(self._advisors) + list(extra),
            terminal=self._terminal,
            stream_terminal=self._stream_terminal,
            trace=self._trace,
        )

    def __len__(self) -> int:
        return len(self._advisors)

    # ---- 非流式 ----

    def execute(self, request: ChatRequest, terminal: Optional[Terminal] = None) -> ChatResult:
        """沿链执行一次调用，返回最外层 Advisor（或终端调用）产生的结果。"""

        terminal = terminal or self._terminal
        if terminal is None:
            raise ChainConfigurationError(code="MISSING_TERMINAL", message="no terminal operation configured")
        if not self._advisors:
            return terminal(request)

        log_ctx = {"trace_id": f"ch-{uuid4().hex}", "advisors": [a.name for a in self._advisors]}
        try:
            return self._call_at(0, request, terminal, log_ctx)
        except Exception as exc:
            log_event(logging.WARNING, "Advisor chain failed", log_ctx, error=repr(exc))
            raise

    def _call_at(self, index: int, request: ChatRequest, terminal: Terminal, log_ctx: dict) -> ChatResult:
        if index == len(self._advisors):
            return terminal(request)
        adv = self._advisors[index]
        if self._trace:
            request = request.with_context(ADVISOR_TRACE, ADVISOR_TRACE.get(request.context) + (adv.name,))
        next_call = _Next(lambda req: self._call_at(index + 1, req, terminal, log_ctx), adv.name)
        result = adv.around_call(request, next_call)
        if not isinstance(result, ChatResult):
            raise ChainConfigurationError(
                code="INVALID_RESULT",
                message=f"advisor {adv.name!r} returned {type(result).__name__} instead of ChatResult",
            )
        if not next_call.invoked:
            self._on_short_circuit(adv, log_ctx)
        return result

    # ---- 流式 ----

    def stream(
        self,
        request: ChatRequest,
        stream_terminal: Optional[StreamTerminal] = None,
    ) -> Iterator[ChatStreamChunk]:
        """沿链执行一次流式调用。返回的迭代器被消费时才真正开始执行。"""

        stream_terminal = stream_terminal or self._stream_terminal
        if stream_terminal is None:
            raise ChainConfigurationError(
                code="MISSING_TERMINAL", message="no stream terminal operation configured"
            )
        if not self._advisors:
            return iter(stream_terminal(request))
        log_ctx = {"trace_id": f"ch-{uuid4().hex}", "advisors": [a.name for a in self._advisors]}
        return self._stream_at(0, request, stream_terminal, log_ctx)

    def _stream_at(
        self,
        index: int,
        request: ChatRequest,
        stream_terminal: StreamTerminal,
        log_ctx: dict,
    ) -> Iterator[ChatStreamChunk]:
        if index == len(self._advisors):
            yield from stream_terminal(request)
            return
        adv = self._advisors[index]
        if self._trace:
            request = request.with_context(ADVISOR_TRACE, ADVISOR_TRACE.get(request.context) + (adv.name,))
        next_stream = _Next(lambda req: self._stream_at(index + 1, req, stream_terminal, log_ctx), adv.name)
        yield from adv.around_stream(request, next_stream)
        if not next_stream.invoked:
            self._on_short_circuit(adv, log_ctx)

    def _on_short_circuit(self, adv: Advisor, log_ctx: dict) -> None:
        if not adv.can_short_circuit:
            raise ChainConfigurationError(
                code="UNEXPECTED_SHORT_CIRCUIT",
                message=f"advisor {adv.name!r} did not continue the chain but is not allowed to short-circuit",
            )
        log_event(logging.INFO, "Advisor short-circuited", log_ctx, advisor=adv.name)


class AdvisorChainBuilder:
    """显式组装 AdvisorChain 的构建器。"""

    def __init__(self) -> None:
        self._advisors: List[Advisor] = []
        self._terminal: Optional[Terminal] = None
        self._stream_terminal: Optional[StreamTerminal] = None
        self._trace = False

    def advisor(self, adv: Advisor) -> "AdvisorChainBuilder":
        self._advisors.append(adv)
        return self

    def advisors(self, advisors: Sequence[Advisor]) -> "AdvisorChainBuilder":
        self._advisors.extend(advisors)
        return self

    def terminal(self, terminal: Terminal) -> "AdvisorChainBuilder":
        self._terminal = terminal
        return self

    def stream_terminal(self, stream_terminal: StreamTerminal) -> "AdvisorChainBuilder":
        self._stream_terminal = stream_terminal
        return self

    def trace(self, enabled: bool = True) -> "AdvisorChainBuilder":
        self._trace = enabled
        return self

    def build(self) -> AdvisorChain:
        return AdvisorChain(
            self._advisors,
            terminal=self._terminal,
            stream_terminal=self._stream_terminal,
            trace=self._trace,
        )
