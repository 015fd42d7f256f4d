"""提示词模板。

PromptTemplate 支持自定义占位符分隔符，默认 ``{name}``。
本模块同时提供各 Advisor 使用的默认模板文本。
"""

import re
from typing import Any, List, Mapping, Optional

from advisor_core.domain.exceptions import ValidationError
from advisor_core.domain.models import ChatMessage, Role


class PromptTemplate:
    """简单的占位符模板。

    >>> PromptTemplate("Translate {text}").render({"text": "hi"})
    'Translate hi'

    使用其他分隔符的文本（例如默认分隔符下的 ``<text>``）原样保留。
    """

    _NAME = r"([A-Za-z_][A-Za-z0-9_]*)"

    def __init__(self, template: str, start: str = "{", end: str = "}"):
        if not start or not end:
            raise ValidationError(code="INVALID_TEMPLATE", message="delimiters must not be empty")
        self.template = template
        self.start = start
        self.end = end
        self._pattern = re.compile(re.escape(start) + self._NAME + re.escape(end))

    @property
    def variables(self) -> List[str]:
        seen: List[str] = []
        for name in self._pattern.findall(self.template):
            if name not in seen:
                seen.append(name)
        return seen

    def render(self, variables: Optional[Mapping[str, Any]] = None, /, **kwargs: Any) -> str:
        """variables 与 kwargs 合并后填充占位符，kwargs 优先。占位符可以叫 role 或 variables。"""
        values = dict(variables or {})
        values.update(kwargs)
        missing = [name for name in self.variables if name not in values]
        if missing:
            raise ValidationError(
                code="MISSING_TEMPLATE_VARIABLE",
                message=f"missing template variables: {', '.join(missing)}",
            )
        return self._pattern.sub(lambda m: str(values[m.group(1)]), self.template)

    def create_message(
        self, role: Role = "user", variables: Optional[Mapping[str, Any]] = None, /, **kwargs: Any
    ) -> ChatMessage:
        return ChatMessage(role=role, content=self.render(variables, **kwargs))


DEFAULT_QA_TEMPLATE = PromptTemplate(
    """{query}

Context information is below, surrounded by ---------------------

---------------------
{question_answer_context}
---------------------

Given the context and provided history information and not prior knowledge,
reply to the user comment. If the answer is not in the context, inform
the user that you can't answer the question.
"""
)

DEFAULT_MEMORY_TEMPLATE = PromptTemplate(
    """{instructions}

Use the conversation memory from the MEMORY section to provide accurate answers.

---------------------
MEMORY:
{memory}
---------------------
"""
)
