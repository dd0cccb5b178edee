"""流式回答聚合。

ChatEngine.send() 驱动一次完整的发送：

1. 追加用户消息，并立即发布一条 parts 为空的 model 占位消息（STREAMING）。
2. 逐个消费生成源的片段：处理每个片段前先检查取消令牌；未取消时把片段
   追加到首个文本片段，并以 upsert 整体替换存储中的快照（从不发布增量）。
3. 流结束或取消后，用累计的缓冲区与 cancelled 标志调用一次解码，
   写入 SETTLED 消息（附带引用与耗时）。
   调用方中途放弃迭代（break / close）时同样按取消定稿，不残留 STREAMING 消息。

聚合器不会主动终止上游；上游在观察到同一令牌后自行停止。
"""

import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterator, List, Literal, Optional, Sequence
from uuid import uuid4

from listening_core.domain.exceptions import BusinessError
from listening_core.domain.models import BinaryPart, Message, MessageState, Part, TextPart
from listening_core.domain.session import SessionContext
from listening_core.engine.citations import finalize_response
from listening_core.infrastructure.logging.logger import logger
from listening_core.providers.base import FALLBACK_FRAGMENT, GenerationSource


@dataclass
class StreamEvent:
    """ChatEngine 产生的流式事件。

    kind:
        - "placeholder": 占位 model 消息已发布。
        - "delta": 应用了一个片段，message 为最新的完整快照。
        - "final": 消息已定稿（SETTLED）。
    """

    kind: Literal["placeholder", "delta", "final"]
    message: Message
    delta_text: Optional[str] = None
    cancelled: bool = False


def make_user_message(text: str = "", attachments: Sequence[BinaryPart] = ()) -> Message:
    parts: List[Part] = []
    if text:
        parts.append(TextPart(text))
    parts.extend(attachments)
    return Message(id=f"user-{uuid4().hex}", role="user", parts=tuple(parts))


class ChatEngine:
    def __init__(self, source: GenerationSource, clock: Callable[[], float] = time.perf_counter):
        self._source = source
        self._clock = clock

    def send(self, session: SessionContext, user_message: Message) -> Iterator[StreamEvent]:
        """发送一条用户消息并逐步产出 StreamEvent。

        会话中已有请求在途时，首次迭代即抛出 ConcurrencyError。
        """
        return self._run(session, user_message)

    def send_and_wait(self, session: SessionContext, user_message: Message) -> Message:
        final: Optional[Message] = None
        for event in self.send(session, user_message):
            if event.kind == "final":
                final = event.message
        if final is None:
            raise BusinessError(code="STREAM_NOT_SETTLED", message="send finished without a final message")
        return final

    def _run(self, session: SessionContext, user_message: Message) -> Iterator[StreamEvent]:
        token = session.controller.begin()
        started_at = self._clock()
        log_ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}", "provider": self._source.name}
        current: Optional[Message] = None
        pieces: List[str] = []
        done = False
        try:
            session.messages.append(user_message)
            history = session.messages.list()

            current = Message(id=f"model-{uuid4().hex}", role="model", parts=(), state=MessageState.STREAMING)
            session.messages.append(current)
            session.streaming_message_id = current.id
            log_ctx["message_id"] = current.id
            self._log(logging.INFO, "Published placeholder", log_ctx, history_len=len(history))
            yield StreamEvent(kind="placeholder", message=current)

            fragments = self._source.generate_stream(
                history, list(session.documents), list(session.rules.rules), token
            )
            try:
                for fragment in fragments:
                    if token.cancelled:
                        break
                    pieces.append(fragment)
                    current = current.with_appended_text(fragment)
                    session.messages.upsert(current)
                    yield StreamEvent(kind="delta", message=current, delta_text=fragment)
            except Exception as e:
                # 生成源本应自行兜底；这里保证发送流程不会因此中断
                self._log(logging.ERROR, "Generation source raised", log_ctx, error=str(e))
                if not token.cancelled:
                    pieces.append(FALLBACK_FRAGMENT)
            finally:
                close = getattr(fragments, "close", None)
                if close is not None:
                    close()

            cancelled = token.cancelled
            settled = self._settle(session, current, pieces, cancelled, started_at, log_ctx)
            done = True
            yield StreamEvent(kind="final", message=settled, cancelled=cancelled)
        finally:
            if current is not None and not done:
                # 调用方中途放弃迭代（break / close）：按取消定稿，不再产出事件
                token.cancel()
                self._settle(session, current, pieces, True, started_at, log_ctx)
            session.streaming_message_id = None
            session.controller.finish(token)

    def _settle(
        self,
        session: SessionContext,
        current: Message,
        pieces: List[str],
        cancelled: bool,
        started_at: float,
        log_ctx: Dict[str, Any],
    ) -> Message:
        result = finalize_response("".join(pieces), cancelled, started_at, self._clock)
        settled = replace(
            current,
            parts=(TextPart(result.answer),),
            citations=result.citations,
            generation_time_ms=result.generation_time_ms,
            state=MessageState.SETTLED,
        )
        if not session.messages.upsert(settled):
            self._log(logging.INFO, "Message deleted before settle, result dropped", log_ctx)
        self._log(
            logging.INFO,
            "Settled model message",
            log_ctx,
            cancelled=cancelled,
            fragments=len(pieces),
            citations=len(result.citations),
            elapsed_ms=round(result.generation_time_ms, 1),
        )
        return settled

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
