"""Listening Core 顶层包。

该包提供文档约束型对话助手的核心实现：流式回答聚合、引用块解码、
从对话中提炼规则，以及配置加载、Provider 适配与会话快照存储等能力。
"""

from listening_core.domain.session import SessionContext
from listening_core.engine.aggregator import ChatEngine, StreamEvent, make_user_message
from listening_core.engine.citations import decode_response
from listening_core.engine.distiller import LogicDistiller

__all__ = [
    "ChatEngine",
    "LogicDistiller",
    "SessionContext",
    "StreamEvent",
    "decode_response",
    "make_user_message",
]
