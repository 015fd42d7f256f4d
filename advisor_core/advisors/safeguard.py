from typing import Iterable, Iterator, Optional, Tuple

from advisor_core.advisors.base import HIGHEST_PRECEDENCE, Advisor, CallNext, StreamNext
from advisor_core.config.settings import settings
from advisor_core.domain.models import (
    ChatMessage,
    ChatRequest,
    ChatResult,
    ChatStreamChoice,
    ChatStreamChunk,
)

DEFAULT_FAILURE_RESPONSE = (
    "I'm unable to respond to that due to sensitive content. "
    "Could we rephrase or discuss something else?"
)


class SafeGuardAdvisor(Advisor):
    """敏感词拦截。

    任意消息命中敏感词（大小写不敏感）时不再继续链路，直接返回
    ``failure_response``，结果 metadata 中 ``safeguard_blocked`` 为 True。
    拒绝是正常业务结果，不抛异常。
    """

    name = "safeguard"
    order = HIGHEST_PRECEDENCE
    can_short_circuit = True

    def __init__(
        self,
        sensitive_words: Optional[Iterable[str]] = None,
        failure_response: str = DEFAULT_FAILURE_RESPONSE,
        order: Optional[int] = None,
    ):
        super().__init__(order=order)
        words = settings.safeguard_words if sensitive_words is None else sensitive_words
        self._words: Tuple[str, ...] = tuple(w.lower() for w in words if w)
        self._failure_response = failure_response

    def find_match(self, request: ChatRequest) -> Optional[str]:
        for msg in request.messages:
            text = (msg.content or "").lower()
            for word in self._words:
                if word in text:
                    return word
        return None

    def around_call(self, request: ChatRequest, next_call: CallNext) -> ChatResult:
        matched = self.find_match(request)
        if matched is None:
            return next_call(request)
        return ChatResult.from_text(
            self._failure_response,
            request,
            safeguard_blocked=True,
            safeguard_term=matched,
        )

    def around_stream(self, request: ChatRequest, next_stream: StreamNext) -> Iterator[ChatStreamChunk]:
        matched = self.find_match(request)
        if matched is None:
            return next_stream(request)
        chunk = ChatStreamChunk(
            choices=[
                ChatStreamChoice(
                    index=0,
                    delta=ChatMessage(role="assistant", content=self._failure_response),
                    finish_reason="stop",
                )
            ],
            metadata={"safeguard_blocked": True, "safeguard_term": matched},
            context=request.context,
        )
        return iter([chunk])
