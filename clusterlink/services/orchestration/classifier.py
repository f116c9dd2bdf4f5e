"""
尝试结果分类器

纯逻辑，无副作用：把一次 HTTP 交换的原始结果归类为 AttemptOutcome，
重试循环根据 kind 分支，而不是捕获不同的异常子类。
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from clusterlink.config.constants import StatusCodeDefaults
from clusterlink.core.exceptions import PipelineError, PipelineFailure
from clusterlink.models.node import Node
from clusterlink.models.response import ApiCallDetails


class OutcomeKind(str, Enum):
    """尝试结果类型"""

    SUCCESS = "success"  # 2xx 或调用方允许的状态码
    KNOWN_ERROR = "known_error"  # 服务端返回的已知错误，不重试
    RECOVERABLE = "recoverable"  # 传输层故障，换节点重试
    FATAL = "fatal"  # 换节点也无济于事，立即终止


@dataclass
class AttemptOutcome:
    kind: OutcomeKind
    details: ApiCallDetails | None = None
    error: PipelineError | None = None

    @property
    def stops_retrying(self) -> bool:
        return self.kind is not OutcomeKind.RECOVERABLE

    @property
    def healthy(self) -> bool:
        """节点是否给出了可用的应答（成功或已知错误）"""
        return self.kind in (OutcomeKind.SUCCESS, OutcomeKind.KNOWN_ERROR)


def is_success_status(status_code: int | None, allowed_status_codes: frozenset[int] = frozenset()) -> bool:
    if status_code is None:
        return False
    return 200 <= status_code < 300 or status_code in allowed_status_codes


def is_known_error_status(status_code: int) -> bool:
    return StatusCodeDefaults.KNOWN_ERROR_MIN <= status_code < StatusCodeDefaults.KNOWN_ERROR_MAX


def classify_call(
    details: ApiCallDetails,
    node: Node | None,
    allowed_status_codes: frozenset[int] = frozenset(),
) -> AttemptOutcome:
    """
    对一次调用的结果分类

    规则：
    1. 2xx 或允许的状态码 -> SUCCESS
    2. 401 -> FATAL（BAD_AUTHENTICATION）
    3. 502/503/504、无状态码、传输异常或 400-598 以外的状态码（如 3xx） -> RECOVERABLE（BAD_RESPONSE）
    4. 其余 400-598 -> KNOWN_ERROR（BAD_REQUEST）
    """
    status = details.status_code
    details.success = is_success_status(status, allowed_status_codes)

    if details.success and details.original_exception is None:
        return AttemptOutcome(OutcomeKind.SUCCESS, details)

    if status == StatusCodeDefaults.UNAUTHORIZED:
        error = PipelineError(
            PipelineFailure.BAD_AUTHENTICATION,
            "Could not authenticate with the specified node",
            node=node,
            api_call=details,
            cause=details.original_exception,
        )
        return AttemptOutcome(OutcomeKind.FATAL, details, error)

    if (
        status is None
        or details.original_exception is not None
        or status in StatusCodeDefaults.RETRYABLE
        or not is_known_error_status(status)
    ):
        reason = details.original_exception or f"status code {status}"
        error = PipelineError(
            PipelineFailure.BAD_RESPONSE,
            f"Bad response from node: {reason}",
            node=node,
            api_call=details,
            cause=details.original_exception,
        )
        return AttemptOutcome(OutcomeKind.RECOVERABLE, details, error)

    error = PipelineError(
        PipelineFailure.BAD_REQUEST,
        f"Request failed with status code {status}",
        node=node,
        api_call=details,
    )
    return AttemptOutcome(OutcomeKind.KNOWN_ERROR, details, error)


def classify_ping(details: ApiCallDetails, node: Node | None) -> AttemptOutcome:
    """ping 只区分三种结果：成功、401（FATAL）、其他失败（RECOVERABLE）"""
    status = details.status_code
    details.success = is_success_status(status)

    if details.success and details.original_exception is None:
        return AttemptOutcome(OutcomeKind.SUCCESS, details)

    if status == StatusCodeDefaults.UNAUTHORIZED:
        error = PipelineError(
            PipelineFailure.BAD_AUTHENTICATION,
            "Could not authenticate with the specified node",
            node=node,
            api_call=details,
        )
        return AttemptOutcome(OutcomeKind.FATAL, details, error)

    reason = details.original_exception or f"status code {status}"
    error = PipelineError(
        PipelineFailure.PING_FAILURE,
        f"Failed to ping the specified node: {reason}",
        node=node,
        api_call=details,
        cause=details.original_exception,
    )
    return AttemptOutcome(OutcomeKind.RECOVERABLE, details, error)


__all__ = [
    "AttemptOutcome",
    "OutcomeKind",
    "classify_call",
    "classify_ping",
    "is_known_error_status",
    "is_success_status",
]
