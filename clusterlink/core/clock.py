"""
时间源抽象

死节点退避和拓扑过期的计算都只通过 Clock 取时间，测试中用 ManualClock 保证可重复。
"""

from __future__ import annotations

import threading
import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float: ...


class SystemClock:
    """基于 time.monotonic 的系统时钟"""

    def now(self) -> float:
        return time.monotonic()


class ManualClock:
    """手动推进的时钟（测试用）"""

    def __init__(self, start: float = 1000.0) -> None:
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> float:
        with self._lock:
            self._now += seconds
            return self._now


def dead_time(
    failed_attempts: int,
    dead_timeout: float,
    max_dead_timeout: float,
    growth: float = 2.0,
) -> float:
    """
    计算死节点的复活等待时间（指数退避）

    timeout = dead_timeout * growth ** ((failed_attempts - 1) / 2)，上限 max_dead_timeout。
    首次失败等待 dead_timeout，之后每两次连续失败乘以 growth。

    Args:
        failed_attempts: 连续失败次数（>= 1）
        dead_timeout: 基础等待时间（秒）
        max_dead_timeout: 上限（秒）
        growth: 增长因子（>= 1）
    """
    exponent = (max(failed_attempts, 1) - 1) / 2
    try:
        timeout = dead_timeout * growth**exponent
    except OverflowError:
        return max_dead_timeout
    return min(timeout, max_dead_timeout)


_default_clock = SystemClock()


def get_default_clock() -> SystemClock:
    return _default_clock


__all__ = ["Clock", "ManualClock", "SystemClock", "dead_time", "get_default_clock"]
