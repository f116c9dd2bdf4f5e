"""
连接池基类

持有节点集合的不可变快照（tuple），所有修改都在锁内整体替换（copy-on-write），
正在迭代的视图始终持有创建时的快照，不会看到半更新的集合。

节点选择策略（create_view）：
1. 可用节点 = 存活节点 + 死亡等待期已过的节点，按全局游标轮转（round-robin）
2. 死亡等待期已过的节点标记为复活中（使用前需要 ping），并记录 RESURRECTION 审计
3. 没有任何可用节点时，只返回最早可复活的那个节点（best-effort），并记录 ALL_NODES_DEAD
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import Future
from enum import Enum

from clusterlink.config import TransportSettings, config
from clusterlink.core.clock import Clock, dead_time, get_default_clock
from clusterlink.core.logger import logger
from clusterlink.models.audit import AuditEvent
from clusterlink.models.node import Node

AuditCallback = Callable[[AuditEvent, Node], None]


class PoolStrategy(str, Enum):
    """连接池策略"""

    SINGLE = "single"
    STATIC = "static"
    SNIFFING = "sniffing"


def to_nodes(nodes: Iterable[str | Node]) -> list[Node]:
    """将 URI/Node 混合输入转换为按 uri 去重、保持顺序的 Node 列表"""
    unique: dict[str, Node] = {}
    for item in nodes:
        node = item if isinstance(item, Node) else Node(uri=item)
        unique.setdefault(node.uri, node)
    return list(unique.values())


class ConnectionPool:
    """连接池基类（静态节点集合）"""

    strategy: PoolStrategy = PoolStrategy.STATIC
    supports_pinging: bool = True
    supports_reseeding: bool = False

    def __init__(
        self,
        nodes: Iterable[str | Node],
        *,
        settings: TransportSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        node_list = to_nodes(nodes)
        if not node_list:
            raise ValueError("连接池至少需要一个节点")

        self.settings = settings or config
        self.clock = clock or get_default_clock()

        self._lock = threading.RLock()
        self._nodes: tuple[Node, ...] = tuple(node_list)
        self._cursor = -1
        self._sniff_in_progress = False
        self._bootstrap: Future[bool] | None = None
        self.last_update = self.clock.now()

    # ==================== 快照 ====================

    @property
    def nodes(self) -> tuple[Node, ...]:
        with self._lock:
            return self._nodes

    @property
    def using_ssl(self) -> bool:
        return any(node.using_ssl for node in self.nodes)

    @property
    def max_retries(self) -> int:
        return len(self.nodes) - 1

    def contains(self, node: Node) -> bool:
        return any(member is node for member in self.nodes)

    # ==================== 节点选择 ====================

    def _next_cursor(self) -> tuple[tuple[Node, ...], int]:
        with self._lock:
            self._cursor += 1
            return self._nodes, self._cursor

    def create_view(self, audit: AuditCallback | None = None) -> Iterator[Node]:
        """
        生成本次调用的候选节点序列（有限，长度不超过节点数）

        Args:
            audit: 审计回调，接收 (事件, 节点)
        """
        nodes, cursor = self._next_cursor()
        now = self.clock.now()
        eligible = [node for node in nodes if node.is_eligible(now)]

        if not eligible:
            fallback = min(nodes, key=lambda n: (n.dead_until or 0.0, n.last_used))
            logger.debug("所有节点均处于死亡状态，尝试最早可复活的节点: {}", fallback.uri)
            if audit is not None:
                audit(AuditEvent.ALL_NODES_DEAD, fallback)
            fallback.mark_selected(resurrecting=True)
            yield fallback
            return

        start = cursor % len(eligible)
        for offset in range(len(eligible)):
            node = eligible[(start + offset) % len(eligible)]
            if node.is_alive:
                node.mark_selected()
            else:
                if audit is not None:
                    audit(AuditEvent.RESURRECTION, node)
                node.mark_selected(resurrecting=True)
            yield node

    # ==================== 健康状态 ====================

    def dead_time(self, failed_attempts: int) -> float:
        return dead_time(
            failed_attempts,
            self.settings.dead_timeout,
            self.settings.max_dead_timeout,
            self.settings.dead_timeout_growth,
        )

    def mark_dead(self, node: Node) -> bool:
        changed = node.mark_dead(self.clock.now(), self.dead_time)
        if changed:
            logger.debug(
                "节点 {} 已标记为死亡: 连续失败 {} 次, dead_until={:.1f}",
                node.uri,
                node.failed_attempts,
                node.dead_until,
            )
        return changed

    def mark_alive(self, node: Node) -> None:
        was_dead = not node.is_alive
        node.mark_alive()
        if was_dead:
            logger.debug("节点 {} 已恢复存活", node.uri)

    # ==================== 嗅探协调 ====================

    def begin_sniff(self) -> bool:
        """尝试占用嗅探标记，已有嗅探进行中时返回 False"""
        with self._lock:
            if self._sniff_in_progress:
                return False
            self._sniff_in_progress = True
            return True

    def end_sniff(self) -> None:
        with self._lock:
            self._sniff_in_progress = False

    @property
    def sniff_in_progress(self) -> bool:
        with self._lock:
            return self._sniff_in_progress

    def claim_bootstrap(self) -> tuple[Future[bool], bool]:
        """
        获取启动嗅探令牌

        Returns:
            (令牌, 是否由当前调用方负责执行启动嗅探)
        """
        with self._lock:
            if self._bootstrap is None:
                self._bootstrap = Future()
                return self._bootstrap, True
            return self._bootstrap, False

    @property
    def sniffed_on_startup(self) -> bool:
        with self._lock:
            return self._bootstrap is not None and self._bootstrap.done()

    def reseed(self, nodes: Iterable[Node]) -> None:
        raise NotImplementedError(f"{type(self).__name__} 不支持重新设置节点")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(nodes={len(self.nodes)}, strategy={self.strategy.value})"
