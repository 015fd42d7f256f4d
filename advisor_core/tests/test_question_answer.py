import pytest

from advisor_core.advisors import AdvisorChain, QuestionAnswerAdvisor
from advisor_core.domain.context import FILTER_EXPRESSION, RETRIEVED_DOCUMENTS, TOP_K
from advisor_core.domain.exceptions import ValidationError
from advisor_core.domain.models import ChatMessage, ChatRequest, ChatResult
from advisor_core.prompts import PromptTemplate
from advisor_core.rag import Document, InMemoryVectorStore, SearchRequest
from advisor_core.tests.fakes import KeywordEmbedding


@pytest.fixture
def store():
    s = InMemoryVectorStore(KeywordEmbedding())
    s.add(
        [
            Document(text="Spring advisors wrap the model call.", metadata={"type": "spring"}, id="a"),
            Document(text="Python memory is garbage collected.", metadata={"type": "python"}, id="b"),
        ]
    )
    return s


class Terminal:
    def __init__(self):
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return ChatResult.from_text("answer", request)


def _request(text="what does a spring advisor do?", **context):
    return ChatRequest(messages=[ChatMessage(role="user", content=text)], context=context)


def test_question_answer_augments_user_message(store):
    terminal = Terminal()
    result = AdvisorChain([QuestionAnswerAdvisor(store)], terminal=terminal).execute(_request())

    sent = terminal.requests[0].last_user_message
    assert "Spring advisors wrap the model call." in sent.content
    assert sent.content.startswith("what does a spring advisor do?")
    assert sent.meta["original_text"] == "what does a spring advisor do?"
    docs = result.metadata["qa_retrieved_documents"]
    assert docs[0].id == "a"
    assert RETRIEVED_DOCUMENTS.get(terminal.requests[0].context)[0].id == "a"


def test_filter_expression_from_context(store):
    terminal = Terminal()
    chain = AdvisorChain([QuestionAnswerAdvisor(store)], terminal=terminal)
    result = chain.execute(_request(**{FILTER_EXPRESSION.name: "type == 'python'"}))
    assert [d.id for d in result.metadata["qa_retrieved_documents"]] == ["b"]


def test_top_k_from_context(store):
    terminal = Terminal()
    chain = AdvisorChain([QuestionAnswerAdvisor(store)], terminal=terminal)
    result = chain.execute(_request(**{TOP_K.name: 1}))
    assert len(result.metadata["qa_retrieved_documents"]) == 1


def test_builder_with_threshold_and_custom_template(store):
    template = PromptTemplate("Context:\n{question_answer_context}\nQuestion: {query}")
    advisor = (
        QuestionAnswerAdvisor.builder(store)
        .search_request(SearchRequest(query="", top_k=5, similarity_threshold=0.7))
        .prompt_template(template)
        .build()
    )
    terminal = Terminal()
    AdvisorChain([advisor], terminal=terminal).execute(_request("python memory"))
    content = terminal.requests[0].user_text
    assert content.startswith("Context:\nPython memory is garbage collected.")
    assert "Spring" not in content
    assert content.endswith("Question: python memory")


def test_template_must_have_placeholders(store):
    with pytest.raises(ValidationError):
        QuestionAnswerAdvisor(store, template=PromptTemplate("no placeholders {query}"))


def test_no_user_message_is_passed_through(store):
    terminal = Terminal()
    req = ChatRequest(messages=[ChatMessage(role="system", content="sys")])
    AdvisorChain([QuestionAnswerAdvisor(store)], terminal=terminal).execute(req)
    assert terminal.requests[0].messages == req.messages
