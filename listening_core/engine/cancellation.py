"""生成请求的协作式取消。

每次发送对应一个 CancellationToken，显式传给 Provider 与聚合器，
两者在每个挂起点（取下一个片段之前）检查它。stop() 可能来自 UI 线程，
所以令牌内部使用 threading.Event。
"""

import threading
from typing import Optional

from listening_core.domain.exceptions import ConcurrencyError


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class CancellationController:
    """同一时刻最多一个活动令牌；busy 表示有请求在途。"""

    def __init__(self) -> None:
        self._token: Optional[CancellationToken] = None
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def active_token(self) -> Optional[CancellationToken]:
        return self._token

    def begin(self) -> CancellationToken:
        if self._token is not None:
            raise ConcurrencyError(
                code="SEND_IN_PROGRESS",
                message="A response is still being generated.",
                http_status=409,
            )
        self._token = CancellationToken()
        self._busy = True
        return self._token

    def stop(self) -> None:
        # 立即清除 busy，不等待聚合器或上游真正停下
        if self._token is not None:
            self._token.cancel()
        self._busy = False

    def finish(self, token: CancellationToken) -> None:
        if self._token is token:
            self._token = None
            self._busy = False
