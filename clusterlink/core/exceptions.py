"""
异常定义

层级:
- ClusterLinkError: 所有异常的基类
  - PipelineError: 单次尝试失败的描述（作为数据记录在失败历史中，不用于重试控制流）
  - TransportClientError: 请求的终态失败，携带完整审计链路和失败历史
    - UnexpectedTransportError: 未被分类器识别的异常（通常是 bug），总是抛出
  - SerializationError: 请求体序列化失败（调用方误用，立即抛出）
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from clusterlink.models.audit import AuditTrail
    from clusterlink.models.node import Node
    from clusterlink.models.response import ApiCallDetails, RequestData


class PipelineFailure(str, Enum):
    """管道失败原因"""

    BAD_AUTHENTICATION = "bad_authentication"  # 401，换节点也无济于事
    BAD_RESPONSE = "bad_response"  # 网络/超时/网关错误，可换节点重试
    PING_FAILURE = "ping_failure"  # 健康探测失败，可换节点重试
    SNIFF_FAILURE = "sniff_failure"  # 拓扑发现失败（只记录，不上抛）
    MAX_TIMEOUT_REACHED = "max_timeout_reached"
    MAX_RETRIES_REACHED = "max_retries_reached"
    BAD_REQUEST = "bad_request"  # 服务端返回的已知错误
    NO_NODES_ATTEMPTED = "no_nodes_attempted"
    CANCELLED = "cancelled"
    UNEXPECTED = "unexpected"

    @property
    def recoverable(self) -> bool:
        return self in (PipelineFailure.BAD_RESPONSE, PipelineFailure.PING_FAILURE)


class ClusterLinkError(Exception):
    """clusterlink 异常基类"""


class PipelineError(ClusterLinkError):
    """单次尝试（ping / call / sniff）的失败描述"""

    def __init__(
        self,
        failure: PipelineFailure,
        message: str = "",
        *,
        node: Node | None = None,
        api_call: ApiCallDetails | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message or failure.value)
        self.failure = failure
        self.message = message or failure.value
        self.node = node
        self.api_call = api_call
        if cause is not None:
            self.__cause__ = cause

    @property
    def recoverable(self) -> bool:
        return self.failure.recoverable

    def __repr__(self) -> str:
        node = self.node.uri if self.node is not None else None
        return f"PipelineError(failure={self.failure.value}, node={node}, message={self.message!r})"


class TransportClientError(ClusterLinkError):
    """请求终态失败"""

    def __init__(
        self,
        failure: PipelineFailure,
        message: str,
        *,
        request: RequestData | None = None,
        api_call: ApiCallDetails | None = None,
        audit_trail: AuditTrail | None = None,
        failures: Sequence[PipelineError] = (),
    ) -> None:
        super().__init__(message)
        self.failure = failure
        self.message = message
        self.request = request
        self.api_call = api_call
        self.audit_trail = audit_trail
        self.failures: list[PipelineError] = list(failures)

    @property
    def debug_information(self) -> str:
        if self.api_call is not None:
            return self.api_call.debug_information
        lines = [f"# FailureReason: {self.failure.value}", self.message]
        if self.audit_trail is not None:
            lines.append(self.audit_trail.describe())
        return "\n".join(lines)


class UnexpectedTransportError(TransportClientError):
    """分类器无法识别的异常（通常意味着协作方存在 bug）"""

    def __init__(self, error: BaseException, failures: Sequence[PipelineError] = (), **kwargs: Any):
        super().__init__(
            PipelineFailure.UNEXPECTED,
            f"Unexpected error while dispatching request: {error!r}",
            failures=failures,
            **kwargs,
        )
        self.original_exception = error
        self.__cause__ = error


class SerializationError(ClusterLinkError):
    """请求体序列化失败"""


__all__ = [
    "ClusterLinkError",
    "PipelineError",
    "PipelineFailure",
    "SerializationError",
    "TransportClientError",
    "UnexpectedTransportError",
]
