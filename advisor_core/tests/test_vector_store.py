import pytest

from advisor_core.domain.exceptions import BusinessError
from advisor_core.rag import Document, InMemoryVectorStore, SearchRequest
from advisor_core.rag.vector_store import EmbeddingAdapter
from advisor_core.tests.fakes import KeywordEmbedding


def _store():
    store = InMemoryVectorStore(KeywordEmbedding())
    store.add(
        [
            Document(text="spring advisor chain", metadata={"type": "spring", "year": 2024}, id="d1"),
            Document(text="python vector store", metadata={"type": "python", "year": 2023}, id="d2"),
            Document(text="cat and dog", metadata={"type": "pets", "year": 2020}, id="d3"),
        ]
    )
    return store


def test_embedding_adapter_wraps_model():
    embedding = KeywordEmbedding()
    adapter = EmbeddingAdapter(embedding)
    assert adapter.embed_query("cat cat") == [0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 2.0, 0.0]
    assert len(adapter.embed_documents(["spring", "dog"])) == 2
    assert embedding.calls == 2


def test_zero_score_documents_ranked_last():
    docs = _store().similarity_search(SearchRequest(query="cat", top_k=3))
    assert docs[0].id == "d3"
    assert docs[0].score == pytest.approx(2 ** -0.5)
    assert [d.score for d in docs[1:]] == [pytest.approx(0.0), pytest.approx(0.0)]


def test_similarity_search_orders_by_score():
    docs = _store().similarity_search(SearchRequest(query="spring advisor", top_k=2))
    assert docs[0].id == "d1"
    assert docs[0].score == pytest.approx(1.0)
    assert len(docs) == 2
    assert docs[0].score >= docs[1].score


def test_similarity_threshold_and_filter():
    store = _store()
    assert [d.id for d in store.similarity_search(SearchRequest(query="python", similarity_threshold=0.5))] == ["d2"]
    filtered = store.similarity_search(SearchRequest(query="spring python", filter_expression="year < 2024"))
    assert [d.id for d in filtered if d.score > 0] == ["d2"]


def test_delete_and_delete_by_filter():
    store = _store()
    assert store.delete(["d1", "missing"]) == 1
    assert store.delete_by_filter("type == 'pets'") == 1
    assert len(store) == 1
    assert store.get("d2") is not None


def test_save_and_load(tmp_path):
    store = _store()
    path = tmp_path / "vectors" / "store.json"
    store.save(path)

    embedding = KeywordEmbedding()
    restored = InMemoryVectorStore(embedding)
    assert restored.load(path) == 3
    assert embedding.calls == 0
    assert restored.get("d1").metadata == {"type": "spring", "year": 2024}
    assert restored.similarity_search(SearchRequest(query="cat", top_k=1))[0].id == "d3"


def test_load_missing_file(tmp_path):
    with pytest.raises(BusinessError) as exc:
        InMemoryVectorStore(KeywordEmbedding()).load(tmp_path / "nope.json")
    assert exc.value.code == "STORE_READ_ERROR"
