"""协作式取消令牌。"""

from __future__ import annotations

import threading


class CancellationToken:
    """由调用方持有、在批次边界轮询的取消标记。

    cancel() 幂等：重复调用或在任务完成后调用都不会产生副作用。
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"
