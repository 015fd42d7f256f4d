"""元数据过滤表达式。

语法（与常见向量库的文本过滤表达式一致）::

    expr       := or_expr
    or_expr    := and_expr (("||" | "OR") and_expr)*
    and_expr   := not_expr (("&&" | "AND") not_expr)*
    not_expr   := ("!" | "NOT") not_expr | atom
    atom       := "(" expr ")" | comparison
    comparison := key ("==" | "!=" | ">" | ">=" | "<" | "<=") value
                | key ("IN" | "NIN" | "NOT IN") "[" value ("," value)* "]"
    value      := 'string' | "string" | number | true | false

例如 ``type == 'Spring AI' && (year >= 2024 || category IN ['intro', 'concepts'])``。

元数据缺少某个键时，除 ``!=`` 与 ``NIN`` 外的比较均为假。
"""

import re
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Tuple

from advisor_core.domain.exceptions import FilterExpressionError

Predicate = Callable[[Mapping[str, Any]], bool]

_TOKEN_RE = re.compile(
    r"""
    \s*(?:
        (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
      | (?P<number>-?\d+(?:\.\d+)?)
      | (?P<op>==|!=|>=|<=|&&|\|\||>|<|!|\(|\)|\[|\]|,)
      | (?P<word>[A-Za-z_][A-Za-z0-9_.\-]*)
    )
    """,
    re.VERBOSE,
)

_KEYWORDS = {"AND", "OR", "NOT", "IN", "NIN", "TRUE", "FALSE"}
_MISSING = object()


@dataclass(frozen=True)
class _Token:
    kind: str
    value: Any
    pos: int


def _tokenize(text: str) -> List[_Token]:
    tokens: List[_Token] = []
    pos = 0
    while pos < len(text):
        if text[pos:].strip() == "":
            break
        m = _TOKEN_RE.match(text, pos)
        if not m or m.end() == pos:
            raise FilterExpressionError(
                code="INVALID_FILTER", message=f"unexpected character at {pos}: {text[pos:pos + 10]!r}"
            )
        if m.group("string") is not None:
            raw = m.group("string")[1:-1]
            tokens.append(_Token("value", re.sub(r"\\(.)", r"\1", raw), m.start("string")))
        elif m.group("number") is not None:
            raw = m.group("number")
            tokens.append(_Token("value", float(raw) if "." in raw else int(raw), m.start("number")))
        elif m.group("op") is not None:
            tokens.append(_Token("op", m.group("op"), m.start("op")))
        else:
            word = m.group("word")
            upper = word.upper()
            if upper in ("TRUE", "FALSE"):
                tokens.append(_Token("value", upper == "TRUE", m.start("word")))
            elif upper in _KEYWORDS:
                tokens.append(_Token("kw", upper, m.start("word")))
            else:
                tokens.append(_Token("ident", word, m.start("word")))
        pos = m.end()
    return tokens


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = _tokenize(text)
        self.i = 0

    def peek(self) -> Optional[_Token]:
        return self.tokens[self.i] if self.i < len(self.tokens) else None

    def take(self) -> _Token:
        tok = self.peek()
        if tok is None:
            raise FilterExpressionError(code="INVALID_FILTER", message="unexpected end of filter expression")
        self.i += 1
        return tok

    def expect_op(self, op: str) -> None:
        tok = self.take()
        if tok.kind != "op" or tok.value != op:
            raise FilterExpressionError(
                code="INVALID_FILTER", message=f"expected {op!r} at {tok.pos}, got {tok.value!r}"
            )

    def at(self, kind: str, *values: str) -> bool:
        tok = self.peek()
        return tok is not None and tok.kind == kind and (not values or tok.value in values)

    def parse(self) -> Predicate:
        if not self.tokens:
            raise FilterExpressionError(code="INVALID_FILTER", message="empty filter expression")
        pred = self.parse_or()
        if self.peek() is not None:
            tok = self.peek()
            raise FilterExpressionError(
                code="INVALID_FILTER", message=f"unexpected token {tok.value!r} at {tok.pos}"
            )
        return pred

    def parse_or(self) -> Predicate:
        parts = [self.parse_and()]
        while self.at("op", "||") or self.at("kw", "OR"):
            self.take()
            parts.append(self.parse_and())
        if len(parts) == 1:
            return parts[0]
        return lambda meta: any(p(meta) for p in parts)

    def parse_and(self) -> Predicate:
        parts = [self.parse_not()]
        while self.at("op", "&&") or self.at("kw", "AND"):
            self.take()
            parts.append(self.parse_not())
        if len(parts) == 1:
            return parts[0]
        return lambda meta: all(p(meta) for p in parts)

    def parse_not(self) -> Predicate:
        if self.at("op", "!") or (self.at("kw", "NOT") and not self._not_in_ahead()):
            self.take()
            inner = self.parse_not()
            return lambda meta: not inner(meta)
        return self.parse_atom()

    def _not_in_ahead(self) -> bool:
        nxt = self.tokens[self.i + 1] if self.i + 1 < len(self.tokens) else None
        return nxt is not None and nxt.kind == "kw" and nxt.value == "IN"

    def parse_atom(self) -> Predicate:
        if self.at("op", "("):
            self.take()
            inner = self.parse_or()
            self.expect_op(")")
            return inner
        key_tok = self.take()
        if key_tok.kind not in ("ident", "value") or (key_tok.kind == "value" and not isinstance(key_tok.value, str)):
            raise FilterExpressionError(
                code="INVALID_FILTER", message=f"expected metadata key at {key_tok.pos}, got {key_tok.value!r}"
            )
        key = key_tok.value
        tok = self.take()
        if tok.kind == "op" and tok.value in ("==", "!=", ">", ">=", "<", "<="):
            value = self.parse_value()
            return _compare(key, tok.value, value)
        if tok.kind == "kw" and tok.value in ("IN", "NIN"):
            return _membership(key, self.parse_list(), negate=tok.value == "NIN")
        if tok.kind == "kw" and tok.value == "NOT" and self.at("kw", "IN"):
            self.take()
            return _membership(key, self.parse_list(), negate=True)
        raise FilterExpressionError(
            code="INVALID_FILTER", message=f"expected comparison operator at {tok.pos}, got {tok.value!r}"
        )

    def parse_value(self) -> Any:
        tok = self.take()
        if tok.kind != "value":
            raise FilterExpressionError(
                code="INVALID_FILTER", message=f"expected literal at {tok.pos}, got {tok.value!r}"
            )
        return tok.value

    def parse_list(self) -> Tuple[Any, ...]:
        self.expect_op("[")
        values = [self.parse_value()]
        while self.at("op", ","):
            self.take()
            values.append(self.parse_value())
        self.expect_op("]")
        return tuple(values)


def _compare(key: str, op: str, expected: Any) -> Predicate:
    def pred(meta: Mapping[str, Any]) -> bool:
        actual = meta.get(key, _MISSING)
        if actual is _MISSING:
            return op == "!="
        if op == "==":
            return actual == expected
        if op == "!=":
            return actual != expected
        try:
            if op == ">":
                return actual > expected
            if op == ">=":
                return actual >= expected
            if op == "<":
                return actual < expected
            return actual <= expected
        except TypeError:
            return False

    return pred


def _membership(key: str, values: Tuple[Any, ...], negate: bool) -> Predicate:
    def pred(meta: Mapping[str, Any]) -> bool:
        actual = meta.get(key, _MISSING)
        if actual is _MISSING:
            return negate
        found = actual in values
        return not found if negate else found

    return pred


@dataclass(frozen=True)
class FilterExpression:
    """解析后的过滤表达式，可对文档元数据求值。"""

    text: str
    predicate: Predicate

    def matches(self, metadata: Mapping[str, Any]) -> bool:
        return self.predicate(metadata)


def parse(text: str) -> FilterExpression:
    """解析过滤表达式文本，语法错误时抛出 FilterExpressionError。"""

    return FilterExpression(text=text, predicate=_Parser(text or "").parse())
