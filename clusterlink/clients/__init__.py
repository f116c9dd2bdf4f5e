"""
Transport Connection 实现

- HttpConnection: 基于 httpx 的真实 HTTP 连接（默认）
- InMemoryConnection: 返回固定结果的内存连接
"""

from clusterlink.clients.base import Connection
from clusterlink.clients.http_connection import HttpConnection
from clusterlink.clients.in_memory import InMemoryConnection

__all__ = ["Connection", "HttpConnection", "InMemoryConnection"]
