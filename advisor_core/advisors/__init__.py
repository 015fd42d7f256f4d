"""Advisor 链及内置 Advisor。

- base: Advisor / BaseAdvisor / FunctionAdvisor 抽象与 order 常量。
- chain: AdvisorChain 执行器与构建器。
- safeguard / memory / question_answer / logging_advisor: 内置 Advisor。
"""

from advisor_core.advisors.base import (
    DEFAULT_ORDER,
    HIGHEST_PRECEDENCE,
    LOWEST_PRECEDENCE,
    Advisor,
    BaseAdvisor,
    FunctionAdvisor,
    advisor,
)
from advisor_core.advisors.chain import AdvisorChain, AdvisorChainBuilder
from advisor_core.advisors.logging_advisor import SimpleLoggerAdvisor
from advisor_core.advisors.memory import MessageChatMemoryAdvisor, PromptChatMemoryAdvisor
from advisor_core.advisors.question_answer import QuestionAnswerAdvisor
from advisor_core.advisors.safeguard import SafeGuardAdvisor

__all__ = [
    "DEFAULT_ORDER",
    "HIGHEST_PRECEDENCE",
    "LOWEST_PRECEDENCE",
    "Advisor",
    "BaseAdvisor",
    "FunctionAdvisor",
    "advisor",
    "AdvisorChain",
    "AdvisorChainBuilder",
    "SimpleLoggerAdvisor",
    "MessageChatMemoryAdvisor",
    "PromptChatMemoryAdvisor",
    "QuestionAnswerAdvisor",
    "SafeGuardAdvisor",
]
