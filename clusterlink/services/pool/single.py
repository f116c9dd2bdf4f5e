"""
单节点连接池

只有一个节点，从不 ping、从不嗅探，也不做故障转移：节点即使被标记为死亡也照常返回。
"""

from __future__ import annotations

from collections.abc import Iterator

from clusterlink.config import TransportSettings
from clusterlink.core.clock import Clock
from clusterlink.models.node import Node
from clusterlink.services.pool.base import AuditCallback, ConnectionPool, PoolStrategy


class SingleNodePool(ConnectionPool):
    strategy = PoolStrategy.SINGLE
    supports_pinging = False
    supports_reseeding = False

    def __init__(
        self,
        node: str | Node,
        *,
        settings: TransportSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        super().__init__([node], settings=settings, clock=clock)

    @property
    def node(self) -> Node:
        return self.nodes[0]

    @property
    def max_retries(self) -> int:
        return 0

    def create_view(self, audit: AuditCallback | None = None) -> Iterator[Node]:
        node = self.node
        node.mark_selected()
        yield node
