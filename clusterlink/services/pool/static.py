"""
静态连接池

节点集合在构造后固定不变，支持 ping 与死节点退避，但不支持嗅探。
"""

from __future__ import annotations

import random
from collections.abc import Iterable

from clusterlink.config import TransportSettings
from clusterlink.core.clock import Clock
from clusterlink.models.node import Node
from clusterlink.services.pool.base import ConnectionPool, PoolStrategy


class StaticNodePool(ConnectionPool):
    """
    Args:
        nodes: 节点 URI 或 Node 列表
        randomize: 构造时打乱节点顺序，避免多个客户端同时压在第一个节点上
        random_seed: 打乱顺序使用的随机种子（测试用）
    """

    strategy = PoolStrategy.STATIC
    supports_pinging = True
    supports_reseeding = False

    def __init__(
        self,
        nodes: Iterable[str | Node],
        *,
        randomize: bool = False,
        random_seed: int | None = None,
        settings: TransportSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(nodes, settings=settings, clock=clock)
        if randomize:
            shuffled = list(self._nodes)
            random.Random(random_seed).shuffle(shuffled)
            self._nodes = tuple(shuffled)
