"""Provider 抽象接口。

上层 ChatEngine / LogicDistiller 不直接依赖具体厂商的 HTTP 细节，而是依赖这两个协议：

- GenerationSource: 流式生成。自身失败时必须产出且只产出一条兜底片段，
  不向调用方抛出异常；观察到令牌被取消后应尽快停止。
- DistillationSource: 一次性生成；失败时抛出 RateLimitError 或其他 BusinessError。
"""

from typing import Iterator, Protocol, Sequence

from listening_core.domain.models import Document, Message
from listening_core.engine.cancellation import CancellationToken


# 生成源自身失败时产出的唯一兜底片段
FALLBACK_FRAGMENT = (
    "Sorry, I encountered an error while processing your request. "
    "Please check the logs for details."
)


class GenerationSource(Protocol):
    name: str

    def generate_stream(
        self,
        history: Sequence[Message],
        documents: Sequence[Document],
        rules: Sequence[str],
        token: CancellationToken,
    ) -> Iterator[str]:
        ...


class DistillationSource(Protocol):
    name: str

    def distill(self, prompt: str) -> str:
        ...
