import json
import tempfile
from pathlib import Path

import pytest

from advisor_core.domain.exceptions import BusinessError
from advisor_core.domain.models import ChatMessage
from advisor_core.infrastructure.storage.json_store import JsonChatMemory


def test_json_store_add_and_get():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / ".storage"
        store = JsonChatMemory(root=root)
        store.add("conv/1", [ChatMessage(role="user", content="hi", meta={"k": "v"})])
        store.add("conv/1", [ChatMessage(role="assistant", content="hello")])

        msgs = store.get("conv/1")
        assert [(m.role, m.content) for m in msgs] == [("user", "hi"), ("assistant", "hello")]
        assert dict(msgs[0].meta) == {"k": "v"}
        assert [m.content for m in store.get("conv/1", last_n=1)] == ["hello"]
        assert store.get("conv/1", last_n=0) == []
        assert store.conversation_ids() == ["conv/1"]

        conv_dir = root / "conversations" / "conv%2F1"
        meta = json.loads((conv_dir / "meta.json").read_text(encoding="utf-8"))
        assert meta["meta"]["message_count"] == 2
        assert [r.seq for r in store.list_records("conv/1")] == [0, 1]


def test_json_store_survives_reopen(tmp_path):
    JsonChatMemory(root=tmp_path).add("c", [ChatMessage(role="user", content="persisted")])
    assert JsonChatMemory(root=tmp_path).get("c")[0].content == "persisted"


def test_json_store_clear(tmp_path):
    store = JsonChatMemory(root=tmp_path)
    store.add("c", [ChatMessage(role="user", content="x")])
    store.clear("c")
    store.clear("never-existed")
    assert store.get("c") == []
    assert "c" not in store.conversation_ids()


def test_json_store_missing_conversation_meta(tmp_path):
    with pytest.raises(BusinessError) as exc:
        JsonChatMemory(root=tmp_path).get_conversation("nope")
    assert exc.value.code == "STORE_READ_ERROR"
