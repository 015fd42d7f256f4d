"""工具数据结构定义。

这些 dataclass 描述了“工具调用”的 schema，既用于：
- 将可用工具列表暴露给 LLM（ToolDef / ToolParam）。
- 在终端调用中保存和执行模型触发的工具调用（ToolCall / ToolResult）。

``tool`` 装饰器可以直接从函数签名与 docstring 生成 ToolDef。
"""

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, get_type_hints


@dataclass(frozen=True)
class ToolParam:
    """单个工具参数的定义。"""

    name: str
    description: str
    required: bool
    schema: Dict[str, Any]


@dataclass(frozen=True)
class ToolDef:
    """一个可供 LLM 调用的工具定义。"""

    name: str
    description: str
    params: Dict[str, ToolParam] = field(default_factory=dict)

    def __hash__(self) -> int:
        return hash(self.name)


@dataclass(frozen=True)
class ToolCall:
    """模型发起的一次工具调用请求。"""

    id: str
    name: str
    arguments: Dict[str, Any]

    def __hash__(self) -> int:
        return hash(self.id)


@dataclass(frozen=True)
class ToolResult:
    """工具执行结果的封装（文本形式）。"""

    call_id: str
    name: str
    content: str


_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
}


@dataclass(frozen=True)
class ToolCallback:
    """工具定义与其实现函数的绑定。"""

    definition: ToolDef
    func: Callable[..., Any]

    @property
    def name(self) -> str:
        return self.definition.name

    def __call__(self, **kwargs: Any) -> Any:
        return self.func(**kwargs)


def tool(
    name: Optional[str] = None,
    description: Optional[str] = None,
    param_descriptions: Optional[Dict[str, str]] = None,
) -> Callable[[Callable[..., Any]], ToolCallback]:
    """把普通函数声明为工具。

    参数 schema 取自类型注解，缺省值决定是否必填；
    description 缺省取函数 docstring 的第一行。
    """

    def decorator(func: Callable[..., Any]) -> ToolCallback:
        hints = get_type_hints(func)
        sig = inspect.signature(func)
        descs = param_descriptions or {}
        params: Dict[str, ToolParam] = {}
        for pname, p in sig.parameters.items():
            json_type = _JSON_TYPES.get(hints.get(pname, str), "string")
            params[pname] = ToolParam(
                name=pname,
                description=descs.get(pname, ""),
                required=p.default is inspect.Parameter.empty,
                schema={"type": json_type},
            )
        doc = inspect.getdoc(func) or ""
        definition = ToolDef(
            name=name or func.__name__,
            description=description or (doc.splitlines()[0] if doc else func.__name__),
            params=params,
        )
        return ToolCallback(definition=definition, func=func)

    return decorator
