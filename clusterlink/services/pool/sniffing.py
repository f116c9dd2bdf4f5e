"""
嗅探连接池

在静态连接池的基础上支持 reseed：嗅探成功后整体替换节点集合。
替换是写时复制的，已创建的视图继续迭代旧快照，旧的 Node 对象直接丢弃。
"""

from __future__ import annotations

from collections.abc import Iterable

from clusterlink.core.logger import logger
from clusterlink.models.node import Node
from clusterlink.services.pool.base import PoolStrategy, to_nodes
from clusterlink.services.pool.static import StaticNodePool


class SniffingNodePool(StaticNodePool):
    strategy = PoolStrategy.SNIFFING
    supports_pinging = True
    supports_reseeding = True

    def reseed(self, nodes: Iterable[Node]) -> None:
        """
        用嗅探结果替换节点集合

        Raises:
            ValueError: 新节点集合为空（保留原集合）
        """
        discovered = tuple(to_nodes(nodes))
        if not discovered:
            raise ValueError("reseed 需要至少一个节点")

        with self._lock:
            previous = {node.uri for node in self._nodes}
            self._nodes = discovered
            self._cursor = -1
            self.last_update = self.clock.now()

        current = {node.uri for node in discovered}
        logger.info(
            "连接池已重新设置: {} 个节点 (新增 {}, 移除 {})",
            len(discovered),
            len(current - previous),
            len(previous - current),
        )
