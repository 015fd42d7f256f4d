"""检索增强（RAG）相关组件：文档、过滤表达式、向量存储与 ETL。"""

from advisor_core.rag.documents import Document, SearchRequest
from advisor_core.rag.embedding import EmbeddingModel, GlmEmbeddingClient
from advisor_core.rag.vector_store import InMemoryVectorStore, VectorStore

__all__ = [
    "Document",
    "SearchRequest",
    "EmbeddingModel",
    "GlmEmbeddingClient",
    "InMemoryVectorStore",
    "VectorStore",
]
