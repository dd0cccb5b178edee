"""会话上下文。

把文档集合、规则序列与消息存储显式地放进一个对象里，在每个操作之间传递，
而不是依赖模块级全局状态。持久化只在会话边界上做序列化/反序列化
（见 infrastructure.storage.json_store）。
"""

from typing import Iterable, List, Optional

from listening_core.config.settings import settings
from listening_core.domain.models import Document, Message, RuleSet
from listening_core.engine.cancellation import CancellationController
from listening_core.infrastructure.logging.logger import logger
from listening_core.store.message_store import MessageStore


class SessionContext:
    def __init__(
        self,
        documents: Optional[Iterable[Document]] = None,
        messages: Optional[Iterable[Message]] = None,
        rules: Optional[RuleSet] = None,
    ):
        self.documents: List[Document] = []
        self.messages = MessageStore(list(messages or []))
        self.rules = rules if rules is not None else RuleSet(version=settings.rules_version)
        self.controller = CancellationController()
        self.streaming_message_id: Optional[str] = None
        self.messages.add_delete_listener(self._on_message_deleted)
        if documents:
            self.add_documents(documents)

    @property
    def busy(self) -> bool:
        return self.controller.busy

    # ---- 文档 ----

    def add_documents(self, new_docs: Iterable[Document]) -> List[Document]:
        """追加文档，已存在的 file_name（包括同一批次内重复的）会被忽略。返回实际新增的文档。"""
        existing = {d.file_name for d in self.documents}
        added: List[Document] = []
        for doc in new_docs:
            if doc.file_name in existing:
                continue
            existing.add(doc.file_name)
            added.append(doc)
        self.documents.extend(added)
        return added

    def remove_document(self, file_name: str) -> None:
        self.documents = [d for d in self.documents if d.file_name != file_name]

    # ---- 消息 ----

    def delete_message(self, message_id: str) -> None:
        self.messages.delete(message_id)

    def clear_chat(self) -> None:
        self.messages.clear()

    def stop_generation(self) -> None:
        self.controller.stop()

    def _on_message_deleted(self, message_id: str) -> None:
        # 删除流式中的消息等同于停止该次生成
        if message_id == self.streaming_message_id:
            logger.info("In-flight message deleted, cancelling stream", extra={"extra": {"message_id": message_id}})
            self.controller.stop()

