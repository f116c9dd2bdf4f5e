"""
clusterlink - 面向多节点集群的弹性请求分发核心

节点选择、健康状态维护、拓扑发现（嗅探）和跨节点重试，同步与异步语义一致。
"""

from clusterlink.clients import Connection, HttpConnection, InMemoryConnection
from clusterlink.config import RequestConfiguration, TransportSettings
from clusterlink.core.cancellation import CancellationToken
from clusterlink.core.clock import ManualClock, SystemClock
from clusterlink.core.exceptions import (
    ClusterLinkError,
    PipelineError,
    PipelineFailure,
    SerializationError,
    TransportClientError,
    UnexpectedTransportError,
)
from clusterlink.models.audit import Audit, AuditEvent, AuditTrail
from clusterlink.models.node import Node
from clusterlink.models.response import ApiCallDetails, RequestData, TransportResponse
from clusterlink.services.pool import (
    ConnectionPool,
    PoolStrategy,
    SingleNodePool,
    SniffingNodePool,
    StaticNodePool,
)
from clusterlink.services.transport import Transport

__version__ = "0.1.0"

__all__ = [
    "ApiCallDetails",
    "Audit",
    "AuditEvent",
    "AuditTrail",
    "CancellationToken",
    "ClusterLinkError",
    "Connection",
    "ConnectionPool",
    "HttpConnection",
    "InMemoryConnection",
    "ManualClock",
    "Node",
    "PipelineError",
    "PipelineFailure",
    "PoolStrategy",
    "RequestConfiguration",
    "RequestData",
    "SerializationError",
    "SingleNodePool",
    "SniffingNodePool",
    "StaticNodePool",
    "SystemClock",
    "Transport",
    "TransportClientError",
    "TransportResponse",
    "TransportSettings",
    "UnexpectedTransportError",
]
