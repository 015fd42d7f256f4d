"""检索相关的数据结构。"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional
from uuid import uuid4


@dataclass
class Document:
    """一段可被检索的文本及其元数据。

    - id: 文档 ID，未指定时自动生成。
    - text: 文本内容。
    - metadata: 元数据，用于过滤表达式与上下文展示。
    - score: 检索时的相似度得分（仅检索结果中有值）。
    """

    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: f"d-{uuid4().hex}")
    score: Optional[float] = None

    def with_score(self, score: float) -> "Document":
        return replace(self, metadata=dict(self.metadata), score=score)

    def with_metadata(self, extra: Dict[str, Any]) -> "Document":
        merged = dict(self.metadata)
        merged.update(extra)
        return replace(self, metadata=merged)


@dataclass(frozen=True)
class SearchRequest:
    """一次相似度检索的参数。

    - query: 检索文本。
    - top_k: 最多返回的文档数。
    - similarity_threshold: 相似度下限（0~1），低于该值的文档被丢弃。
    - filter_expression: 元数据过滤表达式文本，语法见 ``rag.filter_expression``。
    """

    query: str
    top_k: int = 4
    similarity_threshold: float = 0.0
    filter_expression: Optional[str] = None

    def __post_init__(self) -> None:
        if self.top_k < 1:
            object.__setattr__(self, "top_k", 1)
