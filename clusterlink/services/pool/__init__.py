"""
连接池

- SingleNodePool: 单节点，不 ping、不嗅探、不重试
- StaticNodePool: 固定节点集合，轮转 + 死节点退避
- SniffingNodePool: 支持嗅探后整体替换节点集合
"""

from clusterlink.services.pool.base import ConnectionPool, PoolStrategy
from clusterlink.services.pool.single import SingleNodePool
from clusterlink.services.pool.sniffing import SniffingNodePool
from clusterlink.services.pool.static import StaticNodePool

__all__ = [
    "ConnectionPool",
    "PoolStrategy",
    "SingleNodePool",
    "SniffingNodePool",
    "StaticNodePool",
]
