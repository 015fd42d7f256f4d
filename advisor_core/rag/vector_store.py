"""向量存储。

VectorStore 协议描述了 Advisor 与 ETL 所依赖的最小能力：
写入文档、相似度检索（top_k + 阈值 + 过滤表达式）、按 ID 或过滤表达式删除。

InMemoryVectorStore 把向量索引与余弦相似度检索交给
``langchain_core.vectorstores.InMemoryVectorStore``，本模块只负责
过滤表达式、相似度阈值与 JSON 持久化。
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence
from uuid import uuid4

from langchain_core.documents import Document as LCDocument
from langchain_core.embeddings import Embeddings
from langchain_core.vectorstores import InMemoryVectorStore as LCInMemoryVectorStore

from advisor_core.domain.exceptions import BusinessError
from advisor_core.infrastructure.logging.logger import log_event
from advisor_core.rag import filter_expression
from advisor_core.rag.documents import Document, SearchRequest
from advisor_core.rag.embedding import EmbeddingModel


class VectorStore(Protocol):
    def add(self, documents: Sequence[Document]) -> None:
        ...

    def similarity_search(self, request: SearchRequest) -> List[Document]:
        ...

    def delete(self, ids: Sequence[str]) -> int:
        ...

    def delete_by_filter(self, expression: str) -> int:
        ...


class EmbeddingAdapter(Embeddings):
    """把 EmbeddingModel 包装成 langchain 的 Embeddings 接口。"""

    def __init__(self, model: EmbeddingModel):
        self.model = model

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        return [list(v) for v in self.model.embed(texts)]

    def embed_query(self, text: str) -> List[float]:
        return list(self.model.embed([text])[0])


class InMemoryVectorStore(VectorStore):
    def __init__(self, embedding_model: EmbeddingModel):
        self._store = LCInMemoryVectorStore(embedding=EmbeddingAdapter(embedding_model))
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store.store)

    def add(self, documents: Sequence[Document]) -> None:
        if not documents:
            return
        with self._lock:
            self._store.add_documents(
                [LCDocument(page_content=d.text, metadata=dict(d.metadata), id=d.id) for d in documents],
                ids=[d.id for d in documents],
            )
        log_event(logging.INFO, "Added documents to vector store", {}, count=len(documents))

    def similarity_search(self, request: SearchRequest) -> List[Document]:
        flt = filter_expression.parse(request.filter_expression) if request.filter_expression else None
        with self._lock:
            hits = self._store.similarity_search_with_score(
                request.query,
                k=request.top_k,
                filter=(lambda doc: flt.matches(doc.metadata)) if flt is not None else None,
            )
        # hits 已按得分降序排列
        return [
            Document(text=doc.page_content, metadata=dict(doc.metadata), id=doc.id, score=float(score))
            for doc, score in hits
            if score >= request.similarity_threshold
        ]

    def delete(self, ids: Sequence[str]) -> int:
        with self._lock:
            present = [doc_id for doc_id in ids if doc_id in self._store.store]
            if present:
                self._store.delete(present)
        return len(present)

    def delete_by_filter(self, expression: str) -> int:
        flt = filter_expression.parse(expression)
        with self._lock:
            ids = [doc_id for doc_id, item in self._store.store.items() if flt.matches(item["metadata"])]
        return self.delete(ids)

    def get(self, doc_id: str) -> Optional[Document]:
        with self._lock:
            item = self._store.store.get(doc_id)
        if item is None:
            return None
        return Document(text=item["text"], metadata=dict(item["metadata"]), id=item["id"])

    # ---- 持久化 ----

    def save(self, path: str | Path) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            payload: List[Dict[str, Any]] = [
                {
                    "id": item["id"],
                    "text": item["text"],
                    "metadata": item["metadata"],
                    "embedding": list(item["vector"]),
                }
                for item in self._store.store.values()
            ]
        tmp_path = target.with_name(f"{target.name}.{uuid4().hex}.tmp")
        try:
            tmp_path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, target)
        except OSError as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))

    def load(self, path: str | Path) -> int:
        """从 save() 写出的文件恢复文档，已保存的向量直接复用，不重新计算。"""
        try:
            payload = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e))
        with self._lock:
            for item in payload:
                self._store.store[item["id"]] = {
                    "id": item["id"],
                    "vector": list(item["embedding"]),
                    "text": item["text"],
                    "metadata": item.get("metadata") or {},
                }
        return len(payload)
