"""上下文组装。

负责两件事：

1. 把参考文档与规则序列渲染成可选的文本块（文档在前、规则在后，
   对应集合为空时整块省略）。
2. 把会话历史 1:1 映射为 Provider 请求中的 ChatMessage 列表。

本模块只生成临时的请求载荷，不修改任何已存储的消息。
"""

from typing import Iterable, List, Optional, Sequence

from listening_core.domain.models import ChatMessage, Document, Message, TextPart
from listening_core.engine.citations import CITATION_SEPARATOR
from listening_core.prompts import load_prompt


DOCUMENT_HEADER = "--- SOURCE DOCUMENTS FOR CITATION ---"
DISTILL_DOCUMENT_HEADER = "--- SOURCE DOCUMENTS ---"
RULE_HEADER = "--- YOUR LOGIC (RULES) ---"
DOCUMENT_SEPARATOR = "\n\n---\n"

NO_DOCUMENTS_TEXT = "No source documents provided."
NO_RULES_TEXT = "You have no logic (rules) defined yet."


def compose_document_block(documents: Sequence[Document], header: str = DOCUMENT_HEADER) -> Optional[str]:
    if not documents:
        return None
    body = DOCUMENT_SEPARATOR.join(
        f"File Name: {doc.file_name}\nContent:\n{doc.content}" for doc in documents
    )
    return f"{header}\n\n{body}"


def compose_rule_block(rules: Sequence[str]) -> Optional[str]:
    if not rules:
        return None
    return f"{RULE_HEADER}\n- " + "\n- ".join(rules)


def compose_system_instruction(documents: Sequence[Document], rules: Sequence[str]) -> str:
    template = load_prompt("chat_system")
    return template.format(
        separator=CITATION_SEPARATOR,
        document_context=compose_document_block(documents) or NO_DOCUMENTS_TEXT,
        logic_context=compose_rule_block(rules) or NO_RULES_TEXT,
    )


def map_history(messages: Iterable[Message]) -> List[ChatMessage]:
    """每条消息映射为一条 ChatMessage，角色与片段顺序保持不变。"""
    mapped: List[ChatMessage] = []
    for m in messages:
        # 空片段归一化为空文本，保持位置对齐
        parts = [p if p is not None else TextPart("") for p in m.parts]
        mapped.append(ChatMessage(role=m.role, parts=parts))
    return mapped
