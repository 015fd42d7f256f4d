import json
import logging
from typing import Any, Dict, Iterable, List

from advisor_core.domain.exceptions import BusinessError
from advisor_core.infrastructure.logging.logger import log_event
from .definitions import ToolCall, ToolCallback, ToolDef, ToolResult


class ToolExecutor:
    """按名称分发模型发起的工具调用。

    工具实现抛出的异常会被转成文本结果返回给模型，而不是中断本次调用：
    工具失败对模型来说是可以继续推理的信息。
    """

    def __init__(self, callbacks: Iterable[ToolCallback] = ()):
        self._tools: Dict[str, ToolCallback] = {}
        for cb in callbacks:
            self.register(cb)

    def register(self, callback: ToolCallback) -> None:
        if callback.name in self._tools:
            raise BusinessError(code="DUPLICATE_TOOL", message=f"tool {callback.name!r} already registered")
        self._tools[callback.name] = callback

    def resolve(self, names: Iterable[str]) -> List[ToolDef]:
        defs = []
        for name in names:
            cb = self._tools.get(name)
            if cb is None:
                raise BusinessError(code="TOOL_NOT_FOUND", message=f"tool {name!r} is not registered")
            defs.append(cb.definition)
        return defs

    def execute(self, call: ToolCall) -> ToolResult:
        cb = self._tools.get(call.name)
        if cb is None:
            return ToolResult(call_id=call.id, name=call.name, content="Tool not registered")
        try:
            value = cb(**call.arguments)
        except Exception as exc:
            log_event(logging.WARNING, "Tool execution failed", {}, tool=call.name, error=repr(exc))
            return ToolResult(call_id=call.id, name=call.name, content=f"Tool error: {exc}")
        return ToolResult(call_id=call.id, name=call.name, content=_to_text(value))


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)
