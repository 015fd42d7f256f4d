from .definitions import ToolCall, ToolCallback, ToolDef, ToolParam, ToolResult, tool
from .executor import ToolExecutor

__all__ = ["ToolCall", "ToolCallback", "ToolDef", "ToolParam", "ToolResult", "ToolExecutor", "tool"]
