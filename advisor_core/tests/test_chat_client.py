import threading

import pytest
from pydantic import BaseModel

from advisor_core.advisors import FunctionAdvisor, MessageChatMemoryAdvisor, SafeGuardAdvisor
from advisor_core.client import ChatClient
from advisor_core.converters import ListOutputConverter
from advisor_core.domain.context import CANCEL_EVENT, CONVERSATION_ID
from advisor_core.domain.exceptions import CancelledError
from advisor_core.domain.models import ChatMessage, ChatOptions
from advisor_core.infrastructure.storage.memory_store import InMemoryChatMemory
from advisor_core.tests.fakes import FakeProvider
from advisor_core.tools import ToolCall, tool


@tool(description="Look up the weather", param_descriptions={"city": "City name"})
def weather(city: str) -> str:
    return f"sunny in {city}"


def test_prompt_builds_request_from_defaults():
    provider = FakeProvider("hello there")
    client = (
        ChatClient.builder(provider)
        .default_system("Answer in {language}.", language="Korean")
        .default_options(ChatOptions(model="chat", temperature=0.3, max_tokens=1000))
        .build()
    )

    content = client.prompt().user("hi").options(ChatOptions(temperature=0.9)).call().content()

    assert content == "hello there"
    req = provider.requests[0]
    assert [(m.role, m.content) for m in req.messages] == [("system", "Answer in Korean."), ("user", "hi")]
    assert req.options == ChatOptions(model="chat", temperature=0.9, max_tokens=1000)
    assert req.provider == "fake"


def test_call_is_lazy_and_cached():
    provider = FakeProvider("x")
    spec = ChatClient.builder(provider).build().prompt("hi").call()
    assert provider.requests == []
    spec.content()
    spec.chat_result()
    assert len(provider.requests) == 1


def test_per_call_advisors_do_not_change_defaults():
    seen = []

    def spy(request, next_call):
        seen.append(request.context.get("who"))
        return next_call(request)

    client = ChatClient.builder(FakeProvider()).default_advisors(SafeGuardAdvisor(["forbidden"])).build()
    client.prompt("hi").advisors(FunctionAdvisor(spy, name="spy")).context("who", "me").call().content()

    assert seen == ["me"]
    assert [a.name for a in client.chain.advisors] == ["safeguard"]
    assert client.prompt("forbidden topic").call().chat_result().metadata["safeguard_blocked"] is True


def test_memory_through_client():
    memory = InMemoryChatMemory()
    provider = FakeProvider("first answer", "second answer")
    client = ChatClient.builder(provider).default_advisors(MessageChatMemoryAdvisor(memory)).build()

    client.prompt("one").context(CONVERSATION_ID, "c9").call().content()
    client.prompt("two").context(CONVERSATION_ID, "c9").call().content()

    assert [m.content for m in provider.requests[1].messages] == ["one", "first answer", "two"]


def test_tool_calling_loop():
    provider = FakeProvider(
        ChatMessage(
            role="assistant",
            content="",
            tool_calls=[ToolCall(id="t1", name="weather", arguments={"city": "Seoul"})],
        ),
        "It is sunny in Seoul.",
    )
    client = ChatClient.builder(provider).default_tools(weather).build()

    result = client.prompt("weather in Seoul?").call().chat_result()

    assert result.content == "It is sunny in Seoul."
    assert result.metadata["tool_rounds"] == 2
    assert result.usage.total_tokens == 4
    second = provider.requests[1]
    assert [m.role for m in second.messages] == ["user", "assistant", "tool"]
    assert second.messages[-1].content == "sunny in Seoul"
    assert second.messages[-1].tool_call_id == "t1"
    assert [t.name for t in second.tools] == ["weather"]


def test_tool_rounds_are_bounded():
    looping = ChatMessage(
        role="assistant",
        content="",
        tool_calls=[ToolCall(id="t", name="weather", arguments={"city": "X"})],
    )
    provider = FakeProvider(looping, looping, "final")
    client = ChatClient.builder(provider).max_tool_rounds(2).build()

    result = client.prompt("loop").tools(weather).call().chat_result()

    assert result.metadata["forced_final"] is True
    assert len(provider.requests) == 3
    assert provider.requests[-1].tool_choice == "none"


def test_cancel_event_stops_the_call():
    event = threading.Event()
    event.set()
    provider = FakeProvider()
    client = ChatClient.builder(provider).build()
    with pytest.raises(CancelledError):
        client.prompt("hi").context(CANCEL_EVENT, event).call().content()
    assert provider.requests == []


def test_stream_content():
    provider = FakeProvider("streamed text")
    client = ChatClient.builder(provider).default_advisors(SafeGuardAdvisor(["bad"])).build()

    assert "".join(client.prompt("hi").stream().content()) == "streamed text"
    assert "".join(client.prompt("bad").stream().content()).startswith("I'm unable to respond")


def test_entity_with_pydantic_model():
    class Actor(BaseModel):
        name: str
        films: list[str]

    provider = FakeProvider('```json\n{"name": "Ann", "films": ["A", "B"]}\n```')
    actor = ChatClient.builder(provider).build().prompt("films of Ann").call().entity(Actor)

    assert actor == Actor(name="Ann", films=["A", "B"])
    sent = provider.requests[0].last_user_message
    assert sent.content.startswith("films of Ann\n")
    assert "JSON Schema" in sent.content
    assert sent.meta["original_text"] == "films of Ann"


def test_entity_with_list_converter():
    provider = FakeProvider("a, b, c")
    values = ChatClient.builder(provider).build().prompt("letters").call().entity(ListOutputConverter())
    assert values == ["a", "b", "c"]
