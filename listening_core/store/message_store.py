"""内存中的有序消息存储。

消息按追加顺序排列、以 id 为键；流式过程通过 upsert 整体替换快照。
已删除的 id 会被记录下来，既不能再追加，也不会被 upsert 复活。
"""

from typing import Callable, Dict, List, Optional

from listening_core.domain.exceptions import BusinessError, ValidationError
from listening_core.domain.models import Message


DeleteListener = Callable[[str], None]


class MessageStore:
    def __init__(self, messages: Optional[List[Message]] = None):
        self._order: List[str] = []
        self._items: Dict[str, Message] = {}
        self._retired: set[str] = set()
        self._delete_listeners: List[DeleteListener] = []
        for m in messages or []:
            self.append(m)

    def append(self, message: Message) -> None:
        if message.id in self._items or message.id in self._retired:
            raise ValidationError(code="DUPLICATE_MESSAGE_ID", message=message.id)
        self._order.append(message.id)
        self._items[message.id] = message

    def get(self, message_id: str) -> Message:
        try:
            return self._items[message_id]
        except KeyError:
            raise BusinessError(code="MESSAGE_NOT_FOUND", message=message_id)

    def contains(self, message_id: str) -> bool:
        return message_id in self._items

    def upsert(self, message: Message) -> bool:
        """按 id 原位替换消息。

        id 已被删除时返回 False 且不写入；id 从未出现过时追加到末尾。
        """
        if message.id in self._retired:
            return False
        if message.id not in self._items:
            self._order.append(message.id)
        self._items[message.id] = message
        return True

    def delete(self, message_id: str) -> None:
        if message_id not in self._items:
            raise BusinessError(code="MESSAGE_NOT_FOUND", message=message_id)
        self._order.remove(message_id)
        del self._items[message_id]
        self._retired.add(message_id)
        for listener in list(self._delete_listeners):
            listener(message_id)

    def clear(self) -> None:
        for message_id in list(self._order):
            self.delete(message_id)

    def list(self) -> List[Message]:
        return [self._items[i] for i in self._order]

    def add_delete_listener(self, listener: DeleteListener) -> Callable[[], None]:
        """注册删除回调，返回用于注销的函数。"""
        self._delete_listeners.append(listener)

        def remove() -> None:
            if listener in self._delete_listeners:
                self._delete_listeners.remove(listener)

        return remove

    def __len__(self) -> int:
        return len(self._order)
