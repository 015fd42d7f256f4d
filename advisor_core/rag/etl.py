"""文档 ETL：读取（Extract）→ 切分并补充元数据（Transform）→ 写入向量存储（Load）。"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import fitz  # PyMuPDF
from langchain_text_splitters import RecursiveCharacterTextSplitter

from advisor_core.config.settings import settings
from advisor_core.domain.exceptions import ValidationError
from advisor_core.infrastructure.logging.logger import log_event
from advisor_core.rag.documents import Document, SearchRequest
from advisor_core.rag.vector_store import VectorStore


class TextReader:
    """把整个文本文件读成一个 Document。"""

    def __init__(self, path: str | Path, encoding: str = "utf-8"):
        self.path = Path(path)
        self.encoding = encoding

    def read(self) -> List[Document]:
        text = self.path.read_text(encoding=self.encoding)
        return [Document(text=text, metadata={"source": self.path.name, "charset": self.encoding})]


class PdfReader:
    """每页一个 Document，空白页跳过。"""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def read(self) -> List[Document]:
        docs: List[Document] = []
        with fitz.open(str(self.path)) as pdf:
            total = len(pdf)
            for page_num in range(total):
                text = pdf[page_num].get_text().strip()
                if not text:
                    continue
                docs.append(
                    Document(
                        text=text,
                        metadata={
                            "source": self.path.name,
                            "page_number": page_num + 1,
                            "total_pages": total,
                        },
                    )
                )
        return docs


class TextSplitter:
    """按字符长度切分文档，保留原文档元数据并记录块序号。"""

    def __init__(self, chunk_size: Optional[int] = None, chunk_overlap: Optional[int] = None):
        size = chunk_size or settings.chunk_size
        overlap = settings.chunk_overlap if chunk_overlap is None else chunk_overlap
        if overlap >= size:
            raise ValidationError(
                code="INVALID_CHUNKING", message="chunk_overlap must be smaller than chunk_size"
            )
        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=size,
            chunk_overlap=overlap,
            length_function=len,
        )

    def split(self, documents: Sequence[Document]) -> List[Document]:
        out: List[Document] = []
        for doc in documents:
            chunks = self._splitter.split_text(doc.text)
            for idx, chunk in enumerate(chunks):
                meta = dict(doc.metadata)
                meta["chunk_index"] = idx
                meta["parent_document_id"] = doc.id
                out.append(Document(text=chunk, metadata=meta))
        return out


class EtlService:
    def __init__(self, vector_store: VectorStore):
        self._vector_store = vector_store

    def process_and_store_from_file(
        self,
        file_path: str | Path,
        metadata: Optional[Mapping[str, Any]] = None,
        chunk_size: int = 800,
        chunk_overlap: int = 100,
    ) -> int:
        """读取文件（.pdf 或文本），切分、补充元数据后写入向量存储，返回写入的块数。"""

        path = Path(file_path)
        if not path.exists():
            raise ValidationError(code="FILE_NOT_FOUND", message=f"file not found: {file_path}")
        if path.suffix.lower() == ".pdf":
            documents = PdfReader(path).read()
        else:
            documents = TextReader(path).read()
        return self.process_and_store(documents, metadata, chunk_size, chunk_overlap)

    def process_and_store(
        self,
        documents: Sequence[Document],
        metadata: Optional[Mapping[str, Any]] = None,
        chunk_size: int = 800,
        chunk_overlap: int = 100,
    ) -> int:
        chunks = TextSplitter(chunk_size, chunk_overlap).split(documents)
        if metadata:
            chunks = [c.with_metadata(dict(metadata)) for c in chunks]
        self._vector_store.add(chunks)
        log_event(
            logging.INFO,
            "Stored document chunks",
            {},
            documents=len(documents),
            chunks=len(chunks),
        )
        return len(chunks)

    def initialize_documents(self, sources: Mapping[str, Mapping[str, Any]]) -> Dict[str, int]:
        """批量导入 {文件路径: 元数据}，返回 {文件名: 块数}。"""

        results: Dict[str, int] = {}
        for file_path, metadata in sources.items():
            results[Path(file_path).name] = self.process_and_store_from_file(file_path, metadata)
        return results

    def search_similar_documents(self, query: str, top_k: int = 5) -> List[Document]:
        return self._vector_store.similarity_search(SearchRequest(query=query, top_k=top_k))
