import json
import os
import shutil
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote
from uuid import uuid4

from advisor_core.config.settings import settings
from advisor_core.domain.exceptions import BusinessError
from advisor_core.domain.memory import ChatMemory, Conversation, MessageRecord
from advisor_core.domain.models import ChatMessage


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_iso(raw: str) -> datetime:
    return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))


class JsonChatMemory(ChatMemory):
    """基于文件的记忆存储：每个会话一个目录，包含 meta.json 与 messages.jsonl。"""

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._conv_root = self._root / "conversations"
        self._conv_root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def get(self, conversation_id: str, last_n: Optional[int] = None) -> List[ChatMessage]:
        with self._lock:
            records = self.list_records(conversation_id)
        if last_n is not None:
            records = records[-last_n:] if last_n > 0 else []
        return [r.to_message() for r in records]

    def add(self, conversation_id: str, messages: Sequence[ChatMessage]) -> None:
        if not messages:
            return
        with self._lock:
            cdir = self._conv_dir(conversation_id)
            if not (cdir / "meta.json").exists():
                self._create(conversation_id)
            conv = self.get_conversation(conversation_id)
            seq = int(conv.meta.get("message_count", 0))
            now = datetime.now(timezone.utc)
            lines = []
            for msg in messages:
                record = MessageRecord(
                    id=f"m-{uuid4().hex}",
                    conversation_id=conversation_id,
                    role=msg.role,
                    content=msg.content,
                    seq=seq,
                    created_at=now,
                    meta=dict(msg.meta),
                )
                seq += 1
                lines.append(json.dumps(self._to_payload(record), ensure_ascii=False))
            try:
                with (cdir / "messages.jsonl").open("a", encoding="utf-8") as f:
                    f.write("\n".join(lines) + "\n")
            except OSError as e:
                raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))
            conv.updated_at = now
            conv.meta["message_count"] = seq
            self._write_meta(cdir, conv)

    def clear(self, conversation_id: str) -> None:
        with self._lock:
            cdir = self._conv_dir(conversation_id)
            if not cdir.exists():
                return
            try:
                shutil.rmtree(cdir)
            except OSError as e:
                raise BusinessError(code="STORE_DELETE_ERROR", message=str(e))

    def conversation_ids(self) -> List[str]:
        return [c.id for c in self.list_conversations()]

    def get_conversation(self, conversation_id: str) -> Conversation:
        meta_path = self._conv_dir(conversation_id) / "meta.json"
        try:
            data = json.loads(meta_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e))
        return self._to_conversation(data)

    def list_conversations(self) -> List[Conversation]:
        items: List[Conversation] = []
        for cdir in sorted(self._conv_root.glob("*/")):
            meta_path = cdir / "meta.json"
            if not meta_path.exists():
                continue
            try:
                data = json.loads(meta_path.read_text(encoding="utf-8"))
                items.append(self._to_conversation(data))
            except (OSError, ValueError, KeyError):
                continue
        return items

    def list_records(self, conversation_id: str) -> List[MessageRecord]:
        msgs_path = self._conv_dir(conversation_id) / "messages.jsonl"
        items: List[MessageRecord] = []
        if not msgs_path.exists():
            return items
        try:
            lines = msgs_path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e))
        for line in lines:
            try:
                items.append(self._to_record(json.loads(line)))
            except (ValueError, KeyError):
                continue
        items.sort(key=lambda m: m.seq)
        return items

    def _conv_dir(self, conversation_id: str) -> Path:
        return self._conv_root / quote(conversation_id, safe="")

    def _create(self, conversation_id: str) -> Conversation:
        cdir = self._conv_dir(conversation_id)
        cdir.mkdir(parents=True, exist_ok=True)
        now = datetime.now(timezone.utc)
        conv = Conversation(id=conversation_id, created_at=now, updated_at=now, meta={"message_count": 0})
        self._write_meta(cdir, conv)
        return conv

    def _write_meta(self, cdir: Path, conv: Conversation) -> None:
        meta_path = cdir / "meta.json"
        tmp_path = cdir / f"meta.{uuid4().hex}.json.tmp"
        obj = {
            "id": conv.id,
            "created_at": _iso(conv.created_at),
            "updated_at": _iso(conv.updated_at),
            "meta": conv.meta,
        }
        try:
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, meta_path)
        except OSError as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))

    @staticmethod
    def _to_payload(record: MessageRecord) -> Dict[str, Any]:
        return {
            "id": record.id,
            "conversation_id": record.conversation_id,
            "role": record.role,
            "content": record.content,
            "seq": record.seq,
            "created_at": _iso(record.created_at),
            "meta": record.meta,
        }

    @staticmethod
    def _to_record(data: Dict[str, Any]) -> MessageRecord:
        return MessageRecord(
            id=data["id"],
            conversation_id=data["conversation_id"],
            role=data["role"],
            content=data.get("content") or "",
            seq=int(data.get("seq", 0)),
            created_at=_parse_iso(data["created_at"]),
            meta=data.get("meta") or {},
        )

    @staticmethod
    def _to_conversation(data: Dict[str, Any]) -> Conversation:
        return Conversation(
            id=data["id"],
            created_at=_parse_iso(data["created_at"]),
            updated_at=_parse_iso(data["updated_at"]),
            meta=data.get("meta") or {},
        )
