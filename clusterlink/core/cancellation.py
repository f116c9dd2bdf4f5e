"""取消信号，同时适用于线程和协程调用方"""

from __future__ import annotations

import threading


class CancellationToken:
    """
    请求取消令牌

    Transport 在两次尝试之间检查该令牌；正在进行中的 HTTP 交换不会被打断。
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancellation_requested(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancellation_requested})"
