"""从对话中提炼一条新规则（logic point）。

失败分两类，调用方需要分别提示：

- RateLimitError: Provider 拒绝了请求量（429 / RESOURCE_EXHAUSTED），消息可直接展示。
- DistillationError: 其他任何失败，包括模型返回空文本。
"""

import logging
from typing import Any, Dict, List, Sequence
from uuid import uuid4

from listening_core.domain.exceptions import DistillationError, RateLimitError, ValidationError
from listening_core.domain.models import Document, Message
from listening_core.domain.session import SessionContext
from listening_core.engine.context import DISTILL_DOCUMENT_HEADER, compose_document_block
from listening_core.infrastructure.logging.logger import logger
from listening_core.prompts import load_prompt
from listening_core.providers.base import DistillationSource


RATE_LIMIT_MESSAGE = (
    "You're doing that too fast! Please wait a moment before trying to save another logic point."
)
GENERIC_FAILURE_MESSAGE = "Failed to generate a new logic point."
NO_DOCUMENTS_TEXT = "No source documents were provided."

_RATE_LIMIT_MARKERS = ("429", "RESOURCE_EXHAUSTED")
_QUOTES = ('"', "'")


def render_transcript(messages: Sequence[Message]) -> str:
    """逐轮渲染为 ``User: "..."`` / ``AI: "..."``，二进制片段不出现在纯文本视图中。"""
    lines: List[str] = []
    for m in messages:
        prefix = "AI" if m.role == "model" else "User"
        lines.append(f'{prefix}: "{m.text}"')
    return "\n".join(lines)


def build_distill_prompt(messages: Sequence[Message], documents: Sequence[Document]) -> str:
    document_context = compose_document_block(documents, header=DISTILL_DOCUMENT_HEADER) or NO_DOCUMENTS_TEXT
    return load_prompt("distill").format(
        document_context=document_context,
        transcript=render_transcript(messages),
    ).rstrip()


def clean_rule_text(text: str) -> str:
    """去掉首尾空白，并剥离恰好一对包裹全文的同种引号（不递归）。"""
    rule = (text or "").strip()
    if len(rule) >= 2 and rule[0] in _QUOTES and rule[-1] == rule[0]:
        rule = rule[1:-1]
    return rule


def is_rate_limited(error: BaseException) -> bool:
    if isinstance(error, RateLimitError):
        return True
    if getattr(error, "http_status", None) == 429:
        return True
    text = str(error)
    return any(marker in text for marker in _RATE_LIMIT_MARKERS)


class LogicDistiller:
    def __init__(self, source: DistillationSource):
        self._source = source

    def distill(self, session: SessionContext) -> str:
        """请求一条新规则并追加到 session.rules 末尾，返回该规则。

        Raises:
            ValidationError: 会话为空（在构造任何请求之前）。
            ConcurrencyError: 已有发送或提炼在途。
            RateLimitError / DistillationError: 见模块说明。
        """
        history = session.messages.list()
        if not history:
            raise ValidationError(code="EMPTY_CONVERSATION", message="Cannot create logic from an empty chat.")

        token = session.controller.begin()
        log_ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}", "provider": self._source.name}
        try:
            prompt = build_distill_prompt(history, session.documents)
            self._log(logging.INFO, "Requesting logic distillation", log_ctx, history_len=len(history))
            try:
                raw = self._source.distill(prompt)
            except Exception as e:
                if is_rate_limited(e):
                    self._log(logging.WARNING, "Distillation rate limited", log_ctx, error=str(e))
                    raise RateLimitError(code="RATE_LIMIT", message=RATE_LIMIT_MESSAGE, http_status=429) from e
                self._log(logging.ERROR, "Distillation failed", log_ctx, error=str(e))
                raise DistillationError(code="DISTILLATION_FAILED", message=GENERIC_FAILURE_MESSAGE) from e

            rule = clean_rule_text(raw)
            if not rule:
                self._log(logging.ERROR, "Distillation returned empty text", log_ctx)
                raise DistillationError(code="EMPTY_RULE", message=GENERIC_FAILURE_MESSAGE)

            session.rules.append(rule)
            self._log(logging.INFO, "Appended distilled rule", log_ctx, rule_count=len(session.rules))
            return rule
        finally:
            session.controller.finish(token)

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
