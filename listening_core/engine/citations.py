"""引用块解码。

模型被要求在回答之后追加一行分隔符 ``---CITATIONS---``，并在其下给出
一个 JSON 数组，每项包含 ``fileName`` 与 ``quote``。本模块把最终缓冲区
拆分为回答正文与引用列表；解析失败不会阻断消息定稿，只在正文末尾追加
诊断后缀。

括号扫描是扁平的（第一个 ``[`` 到最后一个 ``]``），不感知嵌套或引号内的括号。
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from listening_core.domain.models import Citation
from listening_core.infrastructure.logging.logger import logger


CITATION_SEPARATOR = "---CITATIONS---"
CITATION_PARSE_SUFFIX = "\n\n(Could not parse citations)"
CANCELLED_SUFFIX = "\n\n(Generation stopped by user)"


@dataclass(frozen=True)
class DecodedResponse:
    answer: str
    citations: Tuple[Citation, ...]
    citations_ok: bool = True


@dataclass(frozen=True)
class FinalizedResponse:
    answer: str
    citations: Tuple[Citation, ...]
    generation_time_ms: float


def decode_response(buffer: str, cancelled: bool) -> DecodedResponse:
    """把最终缓冲区解码为 (answer, citations)。纯函数，重复调用结果一致。"""

    answer = buffer.strip()
    citations: Tuple[Citation, ...] = ()
    ok = True

    if CITATION_SEPARATOR in buffer:
        head, block = buffer.split(CITATION_SEPARATOR, 1)
        answer = head.strip()
        parsed = _parse_citation_block(block.strip())
        if parsed is None:
            ok = False
            answer += CITATION_PARSE_SUFFIX
        else:
            citations = parsed

    if cancelled:
        answer += CANCELLED_SUFFIX

    return DecodedResponse(answer=answer.strip(), citations=citations, citations_ok=ok)


def finalize_response(
    buffer: str,
    cancelled: bool,
    started_at: float,
    clock: Callable[[], float] = time.perf_counter,
) -> FinalizedResponse:
    """解码并计算 generation_time_ms（started_at 与 clock 需来自同一时钟）。"""

    decoded = decode_response(buffer, cancelled)
    elapsed_ms = (clock() - started_at) * 1000.0
    return FinalizedResponse(
        answer=decoded.answer,
        citations=decoded.citations,
        generation_time_ms=max(elapsed_ms, 0.0),
    )


def _parse_citation_block(block: str) -> Optional[Tuple[Citation, ...]]:
    start = block.find("[")
    end = block.rfind("]")
    if start == -1 or end <= start:
        logger.warning(
            "Could not find JSON array in citation block",
            extra={"extra": {"block_len": len(block)}},
        )
        return None

    snippet = block[start : end + 1]
    try:
        data = json.loads(snippet)
    except json.JSONDecodeError as e:
        logger.warning(
            "Failed to parse citation JSON",
            extra={"extra": {"error": str(e), "snippet": snippet[:200]}},
        )
        return None
    if not isinstance(data, list):
        return None

    citations: List[Citation] = []
    for item in data:
        citation = _to_citation(item)
        if citation is None:
            logger.log(logging.INFO, "Dropped malformed citation", extra={"extra": {"item": repr(item)[:200]}})
            continue
        citations.append(citation)
    return tuple(citations)


def _to_citation(item: Any) -> Optional[Citation]:
    if not isinstance(item, dict):
        return None
    file_name = item.get("fileName")
    quote = item.get("quote")
    if not isinstance(file_name, str) or not isinstance(quote, str):
        return None
    return Citation(file_name=file_name, quote=quote)
