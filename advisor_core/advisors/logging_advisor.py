import logging
from typing import Iterator, Optional

from advisor_core.advisors.base import LOWEST_PRECEDENCE, Advisor, CallNext, StreamNext
from advisor_core.config.settings import settings
from advisor_core.domain.models import ChatRequest, ChatResult, ChatStreamChunk, aggregate_stream
from advisor_core.infrastructure.logging.logger import log_event


class SimpleLoggerAdvisor(Advisor):
    """记录进入终端调用前的最终请求与返回的结果。

    默认 order 为 LOWEST_PRECEDENCE，位于链的最内层，
    因此记录的是其他 Advisor 改写之后的请求。
    """

    name = "simple_logger"
    order = LOWEST_PRECEDENCE

    def __init__(self, level: int = logging.INFO, order: Optional[int] = None):
        super().__init__(order=order)
        self._level = level

    def around_call(self, request: ChatRequest, next_call: CallNext) -> ChatResult:
        self._log_request(request)
        result = next_call(request)
        self._log_result(result)
        return result

    def around_stream(self, request: ChatRequest, next_stream: StreamNext) -> Iterator[ChatStreamChunk]:
        self._log_request(request)
        chunks = []
        for chunk in next_stream(request):
            chunks.append(chunk)
            yield chunk
        self._log_result(aggregate_stream(chunks, request.context))

    def _log_request(self, request: ChatRequest) -> None:
        log_event(
            self._level,
            "Advised request",
            {},
            messages=[{"role": m.role, "content": _redact(m.content)} for m in request.messages],
            options={"model": request.options.model, "temperature": request.options.temperature},
            context_keys=sorted(request.context),
        )

    def _log_result(self, result: ChatResult) -> None:
        usage = None
        if result.usage:
            usage = {
                "prompt_tokens": result.usage.prompt_tokens,
                "completion_tokens": result.usage.completion_tokens,
                "total_tokens": result.usage.total_tokens,
            }
        log_event(
            self._level,
            "Advised result",
            {},
            content=_redact(result.content),
            finish_reason=result.choices[0].finish_reason if result.choices else None,
            usage=usage,
        )


def _redact(text: Optional[str]) -> Optional[str]:
    if text is None or not settings.log_redact_content:
        return text
    return f"<redacted {len(text)} chars>"
