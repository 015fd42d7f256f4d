import pytest

from advisor_core.advisors import AdvisorChain, MessageChatMemoryAdvisor, PromptChatMemoryAdvisor
from advisor_core.config.settings import settings
from advisor_core.domain.context import CONVERSATION_ID, MEMORY_HISTORY_SIZE
from advisor_core.domain.exceptions import ApiError
from advisor_core.domain.models import ChatMessage, ChatRequest, ChatResult
from advisor_core.infrastructure.storage.json_store import JsonChatMemory
from advisor_core.infrastructure.storage.memory_store import InMemoryChatMemory


def _request(text, cid="c1", system="be nice"):
    return ChatRequest(
        messages=[ChatMessage(role="system", content=system), ChatMessage(role="user", content=text)],
        context={CONVERSATION_ID.name: cid},
    )


class EchoTerminal:
    def __init__(self):
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return ChatResult.from_text(f"echo:{request.user_text}", request)


@pytest.fixture(params=["memory", "json"])
def chat_memory(request, tmp_path):
    if request.param == "memory":
        return InMemoryChatMemory(max_messages=50)
    return JsonChatMemory(root=tmp_path / ".storage")


def test_message_memory_injects_history_after_system(chat_memory):
    terminal = EchoTerminal()
    chain = AdvisorChain([MessageChatMemoryAdvisor(chat_memory)], terminal=terminal)

    chain.execute(_request("my name is Ann"))
    chain.execute(_request("what is my name?"))

    sent = terminal.requests[1].messages
    assert [m.role for m in sent] == ["system", "user", "assistant", "user"]
    assert sent[1].content == "my name is Ann"
    assert sent[2].content == "echo:my name is Ann"
    assert [m.content for m in chat_memory.get("c1")] == [
        "my name is Ann",
        "echo:my name is Ann",
        "what is my name?",
        "echo:what is my name?",
    ]


def test_memory_is_isolated_per_conversation(chat_memory):
    terminal = EchoTerminal()
    chain = AdvisorChain([MessageChatMemoryAdvisor(chat_memory)], terminal=terminal)
    chain.execute(_request("first", cid="a"))
    chain.execute(_request("second", cid="b"))
    assert len(terminal.requests[1].messages) == 2
    assert set(chat_memory.conversation_ids()) == {"a", "b"}


def test_history_size_from_context():
    memory = InMemoryChatMemory()
    memory.add("c1", [ChatMessage(role="user", content=str(i)) for i in range(6)])
    terminal = EchoTerminal()
    chain = AdvisorChain([MessageChatMemoryAdvisor(memory)], terminal=terminal)
    chain.execute(_request("now").with_context(MEMORY_HISTORY_SIZE, 2))
    assert [m.content for m in terminal.requests[0].messages] == ["be nice", "4", "5", "now"]


def test_memory_untouched_when_downstream_fails():
    memory = InMemoryChatMemory()

    def failing(request):
        raise ApiError(code="API_ERROR", message="boom")

    chain = AdvisorChain([MessageChatMemoryAdvisor(memory)], terminal=failing)
    with pytest.raises(ApiError):
        chain.execute(_request("hello"))
    assert memory.get("c1") == []


def test_prompt_memory_renders_history_into_system():
    memory = InMemoryChatMemory()
    memory.add(
        "c1",
        [ChatMessage(role="user", content="I like cats"), ChatMessage(role="assistant", content="noted")],
    )
    terminal = EchoTerminal()
    AdvisorChain([PromptChatMemoryAdvisor(memory)], terminal=terminal).execute(_request("what do I like?"))

    sent = terminal.requests[0].messages
    assert [m.role for m in sent] == ["system", "user"]
    assert sent[0].content.startswith("be nice")
    assert "user: I like cats" in sent[0].content
    assert "assistant: noted" in sent[0].content


def test_memory_stores_original_user_text():
    memory = InMemoryChatMemory()
    terminal = EchoTerminal()
    req = ChatRequest(
        messages=[ChatMessage(role="user", content="augmented prompt", meta={"original_text": "raw question"})],
        context={CONVERSATION_ID.name: "c1"},
    )
    AdvisorChain([MessageChatMemoryAdvisor(memory)], terminal=terminal).execute(req)
    assert memory.get("c1")[0].content == "raw question"


def test_in_memory_window_keeps_system_messages():
    memory = InMemoryChatMemory(max_messages=3)
    memory.add("c", [ChatMessage(role="system", content="sys")])
    memory.add("c", [ChatMessage(role="user", content=str(i)) for i in range(5)])
    assert [m.content for m in memory.get("c")] == ["sys", "3", "4"]
    memory.clear("c")
    assert memory.get("c") == []


def test_json_memory_history_uses_configured_window(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "memory_window_size", 6)
    memory = JsonChatMemory(root=tmp_path / ".storage")
    terminal = EchoTerminal()
    chain = AdvisorChain([MessageChatMemoryAdvisor(memory)], terminal=terminal)

    for i in range(10):
        chain.execute(_request(f"q{i}"))

    sent = terminal.requests[-1].messages
    assert len(sent) == 1 + 6 + 1
    assert sent[1].content == "q6"
    assert sent[-1].content == "q9"
    assert len(memory.get("c1")) == 20
