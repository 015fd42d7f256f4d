"""Advisor Core 顶层包。

该包提供基于 Advisor 链的 LLM 对话中间层，
包括配置加载、领域模型、Advisor 链执行器与内置 Advisor、
Provider 适配、工具系统、检索增强与会话记忆存储等能力。
"""

from advisor_core.advisors import AdvisorChain
from advisor_core.client import ChatClient
from advisor_core.providers import create_provider

__all__ = ["AdvisorChain", "ChatClient", "create_provider"]
