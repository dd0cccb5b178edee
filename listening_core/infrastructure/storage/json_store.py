import json
import os
from pathlib import Path
from typing import Any, List
from uuid import uuid4

from listening_core.config.settings import settings
from listening_core.domain.exceptions import BusinessError
from listening_core.domain.models import Document, Message, MessageState, message_from_dict, message_to_dict
from listening_core.domain.rules import dump_rule_file, parse_rule_file
from listening_core.domain.session import SessionContext


class JsonSessionStore:
    """把会话快照保存为三个 JSON 文件：documents.json / messages.json / logic.json。

    只保存 SETTLED 消息；流式中的占位消息不落盘。
    """

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    def save(self, session: SessionContext) -> None:
        docs = [{"fileName": d.file_name, "content": d.content} for d in session.documents]
        msgs = [message_to_dict(m) for m in session.messages.list() if m.state == MessageState.SETTLED]
        self._write(self._root / "documents.json", json.dumps(docs, ensure_ascii=False))
        self._write(self._root / "messages.json", json.dumps(msgs, ensure_ascii=False))
        if session.rules.rules:
            self._write(self._root / "logic.json", dump_rule_file(session.rules))
        else:
            (self._root / "logic.json").unlink(missing_ok=True)

    def load(self) -> SessionContext:
        docs_raw = self._read_list("documents.json")
        msgs_raw = self._read_list("messages.json")
        documents = [
            Document(file_name=d["fileName"], content=d.get("content") or "")
            for d in docs_raw
            if isinstance(d, dict) and isinstance(d.get("fileName"), str)
        ]
        try:
            messages: List[Message] = [message_from_dict(m) for m in msgs_raw]
        except (KeyError, TypeError) as e:
            raise BusinessError(code="STORE_READ_ERROR", message=f"messages.json: {e}")

        session = SessionContext(documents=documents, messages=messages)
        logic_path = self._root / "logic.json"
        if logic_path.exists():
            try:
                session.rules = parse_rule_file(logic_path.read_text(encoding="utf-8"))
            except BusinessError as e:
                raise BusinessError(code="STORE_READ_ERROR", message=f"logic.json: {e.message}")
        return session

    def _read_list(self, name: str) -> List[Any]:
        path = self._root / name
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise BusinessError(code="STORE_READ_ERROR", message=f"{name}: {e}")
        if not isinstance(data, list):
            raise BusinessError(code="STORE_READ_ERROR", message=f"{name}: expected a JSON array")
        return data

    def _write(self, path: Path, text: str) -> None:
        tmp_path = path.with_name(f"{path.stem}.{uuid4().hex}.json.tmp")
        try:
            tmp_path.write_text(text, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))
