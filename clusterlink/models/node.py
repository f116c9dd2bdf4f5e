"""
节点模型

Node 描述集群中的一个 HTTP 端点及其能力、健康状态。
健康状态只能通过连接池的 mark_dead / mark_alive 修改，这里提供加锁的底层操作。
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit, urlunsplit

# 全局选择序号，单调递增，用于“最近最少使用”的平局判定
_usage_counter = itertools.count(1)
_usage_lock = threading.Lock()


def _next_usage_marker() -> int:
    with _usage_lock:
        return next(_usage_counter)


def normalize_uri(uri: str) -> str:
    """
    规范化节点 URI：小写 scheme/host，去掉末尾斜杠，缺省 scheme 时补 http

    >>> normalize_uri("LOCALHOST:9200/")
    'http://localhost:9200'
    """
    raw = uri.strip()
    if "://" not in raw:
        raw = f"http://{raw}"
    parts = urlsplit(raw)
    if not parts.hostname:
        raise ValueError(f"无效的节点地址: {uri!r}")
    netloc = parts.netloc.lower() if not parts.username else parts.netloc
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower(), netloc, path, "", ""))


@dataclass(eq=False)
class Node:
    """集群节点（相等性仅由 uri 决定）"""

    uri: str
    id: str | None = None
    name: str | None = None

    # 能力
    master_eligible: bool = True
    holds_data: bool = True
    http_enabled: bool = True
    ingest_enabled: bool = True
    settings: dict[str, Any] = field(default_factory=dict)

    # 健康状态
    is_alive: bool = True
    dead_until: float | None = None
    failed_attempts: int = 0
    # 新节点和复活中的节点在使用前需要先 ping
    is_resurrected: bool = True
    last_used: int = 0

    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        self.uri = normalize_uri(self.uri)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Node):
            return NotImplemented
        return self.uri == other.uri

    def __hash__(self) -> int:
        return hash(self.uri)

    @property
    def master_only_node(self) -> bool:
        return self.master_eligible and not self.holds_data and not self.ingest_enabled

    @property
    def using_ssl(self) -> bool:
        return self.uri.startswith("https://")

    @property
    def host(self) -> str:
        return urlsplit(self.uri).hostname or ""

    @property
    def port(self) -> int | None:
        return urlsplit(self.uri).port

    def is_eligible(self, now: float) -> bool:
        """存活，或死亡等待期已过（可尝试复活）"""
        return self.is_alive or (self.dead_until is not None and self.dead_until <= now)

    def mark_dead(self, now: float, backoff: Callable[[int], float]) -> bool:
        """
        标记节点死亡

        连续调用（节点在两次调用之间没有被重新选中尝试）时第二次为空操作。

        Args:
            now: 当前时间
            backoff: 根据连续失败次数计算等待时间（秒）

        Returns:
            是否实际修改了状态
        """
        with self._lock:
            if not self.is_alive and not self.is_resurrected:
                return False
            self.is_alive = False
            self.is_resurrected = False
            self.failed_attempts += 1
            self.dead_until = now + backoff(self.failed_attempts)
            return True

    def mark_alive(self) -> None:
        with self._lock:
            self.is_alive = True
            self.is_resurrected = False
            self.failed_attempts = 0
            self.dead_until = None

    def mark_selected(self, resurrecting: bool = False) -> None:
        with self._lock:
            self.last_used = _next_usage_marker()
            if resurrecting:
                self.is_resurrected = True

    def __repr__(self) -> str:
        state = "alive" if self.is_alive else f"dead(until={self.dead_until})"
        return f"Node({self.uri}, {state}, failed_attempts={self.failed_attempts})"
