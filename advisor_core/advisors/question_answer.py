"""检索增强 Advisor。

用最后一条 user 消息的文本检索 VectorStore，把检索结果渲染进提示词模板
（占位符 ``{query}`` 与 ``{question_answer_context}``）后替换 user 消息。

读取的 context 键：FILTER_EXPRESSION、TOP_K（覆盖构造参数）。
写入的 context 键：RETRIEVED_DOCUMENTS；结果 metadata 中的
``qa_retrieved_documents`` 为同一份文档列表。
"""

import logging
from dataclasses import replace
from typing import List, Optional

from advisor_core.advisors.base import DEFAULT_ORDER, BaseAdvisor
from advisor_core.config.settings import settings
from advisor_core.domain.context import FILTER_EXPRESSION, RETRIEVED_DOCUMENTS, TOP_K
from advisor_core.domain.exceptions import ValidationError
from advisor_core.domain.models import ChatRequest, ChatResult
from advisor_core.infrastructure.logging.logger import log_event
from advisor_core.prompts import DEFAULT_QA_TEMPLATE, PromptTemplate
from advisor_core.rag.documents import Document, SearchRequest
from advisor_core.rag.vector_store import VectorStore


class QuestionAnswerAdvisor(BaseAdvisor):
    name = "question_answer"
    order = DEFAULT_ORDER

    def __init__(
        self,
        vector_store: VectorStore,
        search_request: Optional[SearchRequest] = None,
        template: Optional[PromptTemplate] = None,
        name: Optional[str] = None,
        order: Optional[int] = None,
    ):
        super().__init__(name=name, order=order)
        self._vector_store = vector_store
        self._search = search_request or SearchRequest(
            query="",
            top_k=settings.rag_top_k,
            similarity_threshold=settings.rag_similarity_threshold,
        )
        self._template = template or DEFAULT_QA_TEMPLATE
        missing = {"query", "question_answer_context"} - set(self._template.variables)
        if missing:
            raise ValidationError(
                code="INVALID_TEMPLATE",
                message=f"question answer template must contain {sorted(missing)} placeholders",
            )

    @classmethod
    def builder(cls, vector_store: VectorStore) -> "QuestionAnswerAdvisorBuilder":
        return QuestionAnswerAdvisorBuilder(vector_store)

    def before(self, request: ChatRequest) -> ChatRequest:
        user_msg = request.last_user_message
        if user_msg is None:
            return request
        query = user_msg.content
        search = replace(
            self._search,
            query=query,
            top_k=TOP_K.get(request.context, self._search.top_k),
            filter_expression=FILTER_EXPRESSION.get(request.context, self._search.filter_expression),
        )
        docs = self._vector_store.similarity_search(search)
        log_event(
            logging.INFO,
            "Retrieved documents",
            {},
            advisor=self.name,
            top_k=search.top_k,
            found=len(docs),
            filtered=bool(search.filter_expression),
        )
        augmented = self._template.render(query=query, question_answer_context=self.format_context(docs))
        meta = dict(user_msg.meta)
        meta.setdefault("original_text", query)
        msgs = list(request.messages)
        idx = max(i for i, m in enumerate(msgs) if m.role == "user")
        msgs[idx] = replace(user_msg, content=augmented, meta=meta)
        return request.with_messages(msgs).with_context(RETRIEVED_DOCUMENTS, docs)

    def after(self, result: ChatResult, request: ChatRequest) -> ChatResult:
        docs = RETRIEVED_DOCUMENTS.get(request.context) or []
        return result.with_metadata("qa_retrieved_documents", docs)

    @staticmethod
    def format_context(docs: List[Document]) -> str:
        return "\n".join(d.text for d in docs)


class QuestionAnswerAdvisorBuilder:
    def __init__(self, vector_store: VectorStore):
        self._vector_store = vector_store
        self._search: Optional[SearchRequest] = None
        self._template: Optional[PromptTemplate] = None
        self._order: Optional[int] = None
        self._name: Optional[str] = None

    def search_request(self, search: SearchRequest) -> "QuestionAnswerAdvisorBuilder":
        self._search = search
        return self

    def prompt_template(self, template: PromptTemplate) -> "QuestionAnswerAdvisorBuilder":
        self._template = template
        return self

    def order(self, order: int) -> "QuestionAnswerAdvisorBuilder":
        self._order = order
        return self

    def name(self, name: str) -> "QuestionAnswerAdvisorBuilder":
        self._name = name
        return self

    def build(self) -> QuestionAnswerAdvisor:
        return QuestionAnswerAdvisor(
            self._vector_store,
            search_request=self._search,
            template=self._template,
            name=self._name,
            order=self._order,
        )
