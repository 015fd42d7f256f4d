"""结构化输出转换器。

转换器负责两件事：

- ``format()``：返回追加到用户提示词末尾的格式说明，要求模型按约定格式作答。
- ``convert(text)``：把模型返回的文本解析为 Python 对象。

模型经常把 JSON 包在 markdown 代码块里，解析前会先去掉 ```json 围栏。
解析失败统一抛出 ValidationError(code="INVALID_OUTPUT")。
"""

import json
import re
from typing import Any, Dict, Generic, List, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from advisor_core.domain.exceptions import ValidationError

M = TypeVar("M", bound=BaseModel)

_FENCE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.S)


def strip_code_fence(text: str) -> str:
    match = _FENCE.search(text or "")
    return (match.group(1) if match else (text or "")).strip()


def _invalid(message: str) -> ValidationError:
    return ValidationError(code="INVALID_OUTPUT", message=message)


class PydanticOutputConverter(Generic[M]):
    """把模型输出解析为指定的 pydantic 模型。"""

    def __init__(self, model: Type[M]):
        self._model = model

    def format(self) -> str:
        schema = json.dumps(self._model.model_json_schema(), ensure_ascii=False, indent=2)
        return (
            "Your response should be in JSON format.\n"
            "Do not include any explanations, only provide a RFC8259 compliant JSON response "
            "following this format without deviation.\n"
            "Do not include markdown code blocks in your response.\n"
            f"Here is the JSON Schema instance your output must adhere to:\n```{schema}```"
        )

    def convert(self, text: str) -> M:
        try:
            return self._model.model_validate_json(strip_code_fence(text))
        except PydanticValidationError as e:
            raise _invalid(f"cannot parse {self._model.__name__}: {e}")


class MapOutputConverter:
    """把模型输出解析为 dict。"""

    def format(self) -> str:
        return (
            "Your response should be in JSON format.\n"
            "The top-level JSON value must be an object with string keys.\n"
            "Do not include any explanations, only provide a RFC8259 compliant JSON response "
            "following this format without deviation.\n"
            "Remove the ```json markdown surrounding the output including the trailing \"```\"."
        )

    def convert(self, text: str) -> Dict[str, Any]:
        try:
            value = json.loads(strip_code_fence(text))
        except json.JSONDecodeError as e:
            raise _invalid(f"output is not valid JSON: {e}")
        if not isinstance(value, dict):
            raise _invalid(f"expected a JSON object, got {type(value).__name__}")
        return value


class ListOutputConverter:
    """把逗号分隔的模型输出解析为字符串列表；JSON 数组同样接受。"""

    def format(self) -> str:
        return (
            "Respond with only a list of comma-separated values, without any leading or trailing text.\n"
            "Example format: foo, bar, baz"
        )

    def convert(self, text: str) -> List[str]:
        body = strip_code_fence(text)
        if body.startswith("["):
            try:
                value = json.loads(body)
            except json.JSONDecodeError as e:
                raise _invalid(f"output is not a valid JSON array: {e}")
            return [str(item) for item in value]
        return [item.strip() for item in body.split(",") if item.strip()]
