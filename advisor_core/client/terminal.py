"""终端调用：Advisor 链最内层真正访问模型的那一步。

ToolCallingTerminal 包装一个 ProviderClient：

1. 调用 provider。
2. 如果模型返回 tool_calls，通过 ToolExecutor 执行工具并把结果追加到消息列表。
3. 重复 1-2，最多 max_tool_rounds 轮；超过后以 tool_choice="none" 强制模型给出最终回答。

每轮开始前检查 context 中的 CANCEL_EVENT，已置位则抛出 CancelledError。
"""

import logging
from typing import Iterator, List, Optional
from uuid import uuid4

from advisor_core.config.settings import settings
from advisor_core.domain.context import CANCEL_EVENT
from advisor_core.domain.exceptions import CancelledError
from advisor_core.domain.models import (
    ChatMessage,
    ChatRequest,
    ChatResult,
    ChatStreamChoice,
    ChatStreamChunk,
    ChatUsage,
)
from advisor_core.infrastructure.logging.logger import log_event
from advisor_core.providers.base import ProviderClient
from advisor_core.tools.executor import ToolExecutor


def check_cancelled(request: ChatRequest) -> None:
    event = CANCEL_EVENT.get(request.context)
    if event is not None and event.is_set():
        raise CancelledError()


class ToolCallingTerminal:
    """带工具调用循环的终端调用。"""

    def __init__(
        self,
        provider: ProviderClient,
        tool_executor: Optional[ToolExecutor] = None,
        max_tool_rounds: Optional[int] = None,
    ):
        self._provider = provider
        self._executor = tool_executor
        self._max_rounds = max_tool_rounds or settings.max_tool_rounds

    def __call__(self, request: ChatRequest) -> ChatResult:
        check_cancelled(request)
        if not request.tools or self._executor is None:
            return self._provider.chat(request)

        log_ctx = {"trace_id": f"tc-{uuid4().hex}", "provider": getattr(self._provider, "name", None)}
        messages: List[ChatMessage] = list(request.messages)
        usage: Optional[ChatUsage] = None
        for round_num in range(1, self._max_rounds + 1):
            check_cancelled(request)
            result = self._provider.chat(request.with_messages(messages))
            usage = _add_usage(usage, result.usage)
            assistant_msg = result.message
            if assistant_msg is None or not assistant_msg.tool_calls:
                return result.mutate(usage=usage, context=request.context).with_metadata("tool_rounds", round_num)

            log_event(logging.INFO, "Executing tool calls", log_ctx, round=round_num, call_count=len(assistant_msg.tool_calls))
            messages.append(assistant_msg)
            for tool_call in assistant_msg.tool_calls:
                tool_result = self._executor.execute(tool_call)
                messages.append(
                    ChatMessage(role="tool", content=tool_result.content, tool_call_id=tool_call.id)
                )

        log_event(logging.WARNING, "Reached max tool rounds", log_ctx, max_rounds=self._max_rounds)
        check_cancelled(request)
        final = self._provider.chat(request.mutate(messages=tuple(messages), tool_choice="none"))
        usage = _add_usage(usage, final.usage)
        return (
            final.mutate(usage=usage, context=request.context)
            .with_metadata("tool_rounds", self._max_rounds)
            .with_metadata("forced_final", True)
        )

    def stream(self, request: ChatRequest) -> Iterator[ChatStreamChunk]:
        """流式终端调用。

        带工具的请求先完成非流式工具循环，再把最终回答作为单个增量产出。
        """

        check_cancelled(request)
        if request.tools and self._executor is not None:
            result = self(request)
            yield ChatStreamChunk(
                choices=[
                    ChatStreamChoice(index=c.index, delta=c.message, finish_reason=c.finish_reason)
                    for c in result.choices
                ],
                usage=result.usage,
                metadata=result.metadata,
                context=result.context,
                provider=result.provider,
                model=result.model,
            )
            return
        for chunk in self._provider.chat_stream(request):
            check_cancelled(request)
            yield chunk


def _add_usage(total: Optional[ChatUsage], usage: Optional[ChatUsage]) -> Optional[ChatUsage]:
    if usage is None:
        return total
    return usage if total is None else total + usage
