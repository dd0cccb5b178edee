"""对外 API 服务模块。

提供简化的函数接口供上层应用（UI、脚本）调用。默认会话与引擎按需创建，
会话在每次操作后写回 JsonSessionStore。
"""

from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

from listening_core.config.settings import settings
from listening_core.domain.models import BinaryPart, Document, Message, message_to_dict
from listening_core.domain.rules import dump_rule_file, rule_file_name, upload_rules
from listening_core.domain.session import SessionContext
from listening_core.engine.aggregator import ChatEngine, StreamEvent, make_user_message
from listening_core.engine.distiller import LogicDistiller
from listening_core.infrastructure.logging.logger import logger
from listening_core.infrastructure.storage.json_store import JsonSessionStore
from listening_core.providers import create_provider


_store: Optional[JsonSessionStore] = None
_session: Optional[SessionContext] = None
_engine: Optional[ChatEngine] = None
_distiller: Optional[LogicDistiller] = None


def get_default_session() -> SessionContext:
    """获取默认会话（单例），首次调用时从存储目录恢复。"""
    global _store, _session
    if _store is None:
        _store = JsonSessionStore(root=settings.storage_root)
    if _session is None:
        _session = _store.load()
    return _session


def _get_engine() -> ChatEngine:
    global _engine
    if _engine is None:
        _engine = ChatEngine(create_provider())
    return _engine


def _get_distiller() -> LogicDistiller:
    global _distiller
    if _distiller is None:
        _distiller = LogicDistiller(create_provider())
    return _distiller


def _persist() -> None:
    if _store is not None and _session is not None:
        _store.save(_session)


def send_message(text: str, attachments: Sequence[BinaryPart] = ()) -> Iterator[StreamEvent]:
    """发送消息并流式产出事件；结束（含取消）后持久化会话。"""
    session = get_default_session()
    try:
        yield from _get_engine().send(session, make_user_message(text, attachments))
    except Exception as e:
        logger.error(f"Send failed: {e}", extra={"extra": {"error": str(e)}})
        raise
    finally:
        _persist()


def stop_generation() -> None:
    get_default_session().stop_generation()


def save_logic() -> str:
    """提炼并保存一条新规则。RateLimitError 与 DistillationError 原样抛给调用方。"""
    rule = _get_distiller().distill(get_default_session())
    _persist()
    return rule


def upload_logic(content: str) -> List[str]:
    session = get_default_session()
    upload_rules(session.rules, content)
    _persist()
    return list(session.rules.rules)


def download_logic() -> Optional[Dict[str, str]]:
    """返回 {file_name, content}；没有规则时返回 None。"""
    rules = get_default_session().rules
    if not rules.rules:
        return None
    return {"file_name": rule_file_name(), "content": dump_rule_file(rules)}


def delete_message(message_id: str) -> None:
    get_default_session().delete_message(message_id)
    _persist()


def clear_chat() -> None:
    get_default_session().clear_chat()
    _persist()


def add_documents(documents: Iterable[Document]) -> List[str]:
    added = get_default_session().add_documents(documents)
    _persist()
    return [d.file_name for d in added]


def remove_document(file_name: str) -> None:
    get_default_session().remove_document(file_name)
    _persist()


def get_messages() -> List[Dict[str, Any]]:
    return [message_to_dict(m) for m in get_default_session().messages.list()]


def get_message(message_id: str) -> Message:
    return get_default_session().messages.get(message_id)
