"""对外 API 服务模块。

提供简化的函数接口供上层应用调用，默认 ChatClient、向量存储与记忆存储
在首次使用时按 settings 懒加载为单例。
"""

import threading
from typing import Any, Dict, Iterator, List, Optional
from uuid import uuid4

from advisor_core.advisors import (
    MessageChatMemoryAdvisor,
    QuestionAnswerAdvisor,
    SafeGuardAdvisor,
    SimpleLoggerAdvisor,
)
from advisor_core.client import ChatClient
from advisor_core.config.settings import settings
from advisor_core.domain.context import CONVERSATION_ID, FILTER_EXPRESSION
from advisor_core.domain.memory import ChatMemory
from advisor_core.domain.models import ChatOptions
from advisor_core.infrastructure.logging.logger import logger
from advisor_core.infrastructure.storage.json_store import JsonChatMemory
from advisor_core.prompts import PromptTemplate
from advisor_core.providers import create_provider
from advisor_core.rag import GlmEmbeddingClient, InMemoryVectorStore, SearchRequest, VectorStore
from advisor_core.tools.datetime_tools import datetime_tools

NO_RESPONSE = "No response generated."

DEFAULT_OPTIONS = ChatOptions(temperature=0.3, max_tokens=1000)

CUSTOM_QA_TEMPLATE = """Answer the question based on the context below:

Context:
{question_answer_context}

Question: {query}

If the context does not contain the information, say "The provided documents do not contain that information."
"""

_lock = threading.Lock()
_client: Optional[ChatClient] = None
_vector_store: Optional[VectorStore] = None
_chat_memory: Optional[ChatMemory] = None


def get_default_client() -> ChatClient:
    """获取默认 ChatClient（单例）：SafeGuard + 日志 Advisor。"""
    global _client
    with _lock:
        if _client is None:
            _client = (
                ChatClient.builder(create_provider())
                .default_system(settings.default_system_prompt)
                .default_options(DEFAULT_OPTIONS)
                .default_advisors(SafeGuardAdvisor(), SimpleLoggerAdvisor())
                .build()
            )
        return _client


def get_vector_store() -> VectorStore:
    global _vector_store
    with _lock:
        if _vector_store is None:
            _vector_store = InMemoryVectorStore(GlmEmbeddingClient(settings))
        return _vector_store


def get_chat_memory() -> ChatMemory:
    global _chat_memory
    with _lock:
        if _chat_memory is None:
            _chat_memory = JsonChatMemory(root=settings.storage_root)
        return _chat_memory


def configure(
    client: Optional[ChatClient] = None,
    vector_store: Optional[VectorStore] = None,
    chat_memory: Optional[ChatMemory] = None,
) -> None:
    """替换默认单例，主要用于测试或自定义部署。传 None 的项保持不变。"""
    global _client, _vector_store, _chat_memory
    with _lock:
        if client is not None:
            _client = client
        if vector_store is not None:
            _vector_store = vector_store
        if chat_memory is not None:
            _chat_memory = chat_memory


def reset() -> None:
    global _client, _vector_store, _chat_memory
    with _lock:
        _client = _vector_store = _chat_memory = None


# ---- 基础对话 ----


def generate_text(question: str) -> str:
    return get_default_client().prompt().user(question).call().content() or NO_RESPONSE


def generate_stream_text(question: str) -> Iterator[str]:
    return get_default_client().prompt().user(question).stream().content()


# ---- RAG ----


def question_answer_with_basic_rag(question: str) -> str:
    advisor = QuestionAnswerAdvisor(get_vector_store())
    return get_default_client().prompt().user(question).advisors(advisor).call().content() or NO_RESPONSE


def question_answer_with_advanced_rag(question: str) -> str:
    """相似度阈值 0.7、top_k=5 的检索。"""
    advisor = (
        QuestionAnswerAdvisor.builder(get_vector_store())
        .search_request(SearchRequest(query="", top_k=5, similarity_threshold=0.7))
        .build()
    )
    return get_default_client().prompt().user(question).advisors(advisor).call().content() or NO_RESPONSE


def question_answer_with_filtered_rag(question: str, filter_expression: Optional[str] = None) -> str:
    """按元数据过滤检索结果；未提供过滤表达式时退化为基础 RAG。"""
    if filter_expression is None:
        return question_answer_with_basic_rag(question)
    return (
        get_default_client()
        .prompt()
        .user(question)
        .advisors(QuestionAnswerAdvisor(get_vector_store()))
        .context(FILTER_EXPRESSION, filter_expression)
        .call()
        .content()
        or NO_RESPONSE
    )


def question_answer_with_custom_prompt(question: str) -> str:
    advisor = (
        QuestionAnswerAdvisor.builder(get_vector_store())
        .prompt_template(PromptTemplate(CUSTOM_QA_TEMPLATE))
        .build()
    )
    return get_default_client().prompt().user(question).advisors(advisor).call().content() or NO_RESPONSE


# ---- 记忆 ----


def chat_with_memory(question: str, conversation_id: Optional[str] = None) -> Dict[str, Any]:
    """带会话记忆的对话。

    Args:
        question: 用户输入内容
        conversation_id: 会话ID（可选，不提供则创建新会话）

    Returns:
        包含会话ID、回答与使用统计的字典
    """
    cid = conversation_id or f"c-{uuid4().hex}"
    try:
        result = (
            get_default_client()
            .prompt()
            .user(question)
            .advisors(MessageChatMemoryAdvisor(get_chat_memory()))
            .context(CONVERSATION_ID, cid)
            .call()
            .chat_result()
        )
    except Exception as e:
        logger.error(f"Chat failed: {e}", extra={"extra": {"conversation_id": cid, "error": str(e)}})
        raise
    usage = result.usage
    return {
        "conversation_id": cid,
        "content": result.content or NO_RESPONSE,
        "usage": (
            {
                "prompt_tokens": usage.prompt_tokens,
                "completion_tokens": usage.completion_tokens,
                "total_tokens": usage.total_tokens,
            }
            if usage
            else None
        ),
    }


def list_conversations() -> List[str]:
    return list(get_chat_memory().conversation_ids())


def get_conversation_messages(conversation_id: str) -> List[Dict[str, Any]]:
    return [
        {"role": m.role, "content": m.content, "meta": dict(m.meta)}
        for m in get_chat_memory().get(conversation_id)
    ]


def clear_conversation(conversation_id: str) -> None:
    get_chat_memory().clear(conversation_id)


# ---- 工具 ----


def use_datetime_tools(location: str) -> str:
    """让模型借助时间工具回答指定时区的当前时间。"""
    return (
        get_default_client()
        .prompt()
        .user(f"What is the current time in {location}?")
        .tools(*datetime_tools())
        .call()
        .content()
        or NO_RESPONSE
    )


def use_alarm_tool(minutes: int) -> str:
    return (
        get_default_client()
        .prompt()
        .user(f"Set an alarm {minutes} minutes from now.")
        .tools(*datetime_tools())
        .call()
        .content()
        or NO_RESPONSE
    )
