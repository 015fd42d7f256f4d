import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from advisor_core.advisors import AdvisorChain, BaseAdvisor, FunctionAdvisor, advisor
from advisor_core.advisors.base import Advisor
from advisor_core.domain.context import ADVISOR_TRACE
from advisor_core.domain.exceptions import ApiError, ChainConfigurationError
from advisor_core.domain.models import (
    ChatMessage,
    ChatRequest,
    ChatResult,
    ChatStreamChoice,
    ChatStreamChunk,
)


def _request(text="hi", **context):
    return ChatRequest(messages=[ChatMessage(role="user", content=text)], context=context)


class RecordingAdvisor(BaseAdvisor):
    def __init__(self, name, order, log):
        super().__init__(name=name, order=order)
        self._log = log

    def before(self, request):
        self._log.append(f"before:{self.name}")
        return request

    def after(self, result, request):
        self._log.append(f"after:{self.name}")
        return result


class CountingTerminal:
    def __init__(self, text="answer"):
        self.calls = 0
        self.requests = []
        self._text = text
        self._lock = threading.Lock()

    def __call__(self, request):
        with self._lock:
            self.calls += 1
            self.requests.append(request)
        return ChatResult.from_text(self._text, request)

    def stream(self, request):
        with self._lock:
            self.calls += 1
        for part in ("an", "swer"):
            yield ChatStreamChunk(
                choices=[ChatStreamChoice(index=0, delta=ChatMessage(role="assistant", content=part))],
                context=request.context,
            )


def test_advisors_run_in_order_and_unwind_in_reverse():
    log = []
    chain = AdvisorChain(
        [RecordingAdvisor("c", 3, log), RecordingAdvisor("a", 1, log), RecordingAdvisor("b", 2, log)],
        terminal=CountingTerminal(),
    )
    chain.execute(_request())
    assert log == ["before:a", "before:b", "before:c", "after:c", "after:b", "after:a"]


def test_equal_order_keeps_registration_order():
    log = []
    chain = AdvisorChain(
        [RecordingAdvisor("first", 0, log), RecordingAdvisor("second", 0, log)],
        terminal=CountingTerminal(),
    )
    chain.execute(_request())
    assert log[:2] == ["before:first", "before:second"]


def test_short_circuit_skips_downstream_and_terminal():
    log = []
    terminal = CountingTerminal()

    @advisor(name="blocker", order=1, can_short_circuit=True)
    def blocker(request, next_call):
        return ChatResult.from_text("refused", request, blocked=True)

    chain = AdvisorChain(
        [
            RecordingAdvisor("first", 0, log),
            blocker,
            RecordingAdvisor("third", 2, log),
            RecordingAdvisor("fourth", 3, log),
        ],
        terminal=terminal,
    )
    result = chain.execute(_request())

    assert result.content == "refused"
    assert result.metadata["blocked"] is True
    assert terminal.calls == 0
    assert log == ["before:first", "after:first"]


def test_unexpected_short_circuit_is_rejected():
    rogue = FunctionAdvisor(lambda req, nxt: ChatResult.from_text("bypass", req), name="rogue")
    chain = AdvisorChain([rogue], terminal=CountingTerminal())
    with pytest.raises(ChainConfigurationError) as exc:
        chain.execute(_request())
    assert exc.value.code == "UNEXPECTED_SHORT_CIRCUIT"


def test_context_written_upstream_is_visible_downstream():
    seen = {}

    def writer(request, next_call):
        return next_call(request.with_context("tenant", "acme"))

    def reader(request, next_call):
        seen["tenant"] = request.context.get("tenant")
        return next_call(request)

    terminal = CountingTerminal()
    chain = AdvisorChain(
        [FunctionAdvisor(writer, name="writer", order=1), FunctionAdvisor(reader, name="reader", order=2)],
        terminal=terminal,
    )
    result = chain.execute(_request())
    assert seen["tenant"] == "acme"
    assert terminal.requests[0].context["tenant"] == "acme"
    assert result.context["tenant"] == "acme"


def test_caller_request_is_not_modified():
    def rewrite(request, next_call):
        with pytest.raises(TypeError):
            request.context["leak"] = 1
        return next_call(request.augment_user_message("rewritten").with_context("x", 1))

    original = _request("original", keep="me")
    chain = AdvisorChain([FunctionAdvisor(rewrite, name="rewrite")], terminal=CountingTerminal())
    chain.execute(original)

    assert original.user_text == "original"
    assert original.context == {"keep": "me"}


def test_empty_chain_is_terminal():
    terminal = CountingTerminal()
    req = _request()
    result = AdvisorChain([], terminal=terminal).execute(req)
    assert terminal.calls == 1
    assert terminal.requests[0] is req
    assert result.content == "answer"


def test_concurrent_calls_do_not_leak_context():
    def tag(request, next_call):
        return next_call(request.with_context("seen_by", request.context["caller"]))

    terminal = CountingTerminal()
    chain = AdvisorChain([FunctionAdvisor(tag, name="tag")], terminal=terminal)

    def run(i):
        result = chain.execute(_request(f"q{i}", caller=i))
        return i, result.context["seen_by"], result.context["caller"]

    with ThreadPoolExecutor(max_workers=16) as pool:
        results = list(pool.map(run, range(100)))

    assert terminal.calls == 100
    for i, seen_by, caller in results:
        assert seen_by == i == caller


def test_faults_propagate_unchanged():
    def failing(request):
        raise ApiError(code="API_ERROR", message="boom", http_status=502)

    chain = AdvisorChain([RecordingAdvisor("a", 0, [])], terminal=failing)
    with pytest.raises(ApiError) as exc:
        chain.execute(_request())
    assert exc.value.http_status == 502


def test_duplicate_names_rejected():
    with pytest.raises(ChainConfigurationError) as exc:
        AdvisorChain([Advisor(name="dup"), Advisor(name="dup")])
    assert exc.value.code == "DUPLICATE_ADVISOR"


def test_continuation_can_only_be_called_once():
    def twice(request, next_call):
        next_call(request)
        return next_call(request)

    chain = AdvisorChain([FunctionAdvisor(twice, name="twice")], terminal=CountingTerminal())
    with pytest.raises(ChainConfigurationError) as exc:
        chain.execute(_request())
    assert exc.value.code == "NEXT_CALLED_TWICE"


def test_missing_terminal():
    with pytest.raises(ChainConfigurationError) as exc:
        AdvisorChain([Advisor(name="a")]).execute(_request())
    assert exc.value.code == "MISSING_TERMINAL"


def test_with_advisors_returns_new_chain():
    base = AdvisorChain([Advisor(name="a")], terminal=CountingTerminal())
    extended = base.with_advisors(Advisor(name="b", order=-1))
    assert [a.name for a in base.advisors] == ["a"]
    assert [a.name for a in extended.advisors] == ["b", "a"]


def test_trace_records_advisor_names():
    terminal = CountingTerminal()
    chain = (
        AdvisorChain.builder()
        .advisors([Advisor(name="outer", order=1), Advisor(name="inner", order=2)])
        .terminal(terminal)
        .trace()
        .build()
    )
    result = chain.execute(_request())
    assert ADVISOR_TRACE.get(result.context) == ("outer", "inner")


def test_stream_runs_before_and_after_hooks():
    log = []
    terminal = CountingTerminal()
    chain = AdvisorChain([RecordingAdvisor("a", 0, log)], stream_terminal=terminal.stream)

    chunks = chain.stream(_request())
    assert log == []  # 惰性执行
    text = "".join(c.text for c in chunks)

    assert text == "answer"
    assert log == ["before:a", "after:a"]


def test_stream_short_circuit():
    class Block(Advisor):
        can_short_circuit = True

        def around_stream(self, request, next_stream):
            yield ChatStreamChunk(
                choices=[ChatStreamChoice(index=0, delta=ChatMessage(role="assistant", content="no"))]
            )

    terminal = CountingTerminal()
    chain = AdvisorChain([Block()], stream_terminal=terminal.stream)
    assert [c.text for c in chain.stream(_request())] == ["no"]
    assert terminal.calls == 0
