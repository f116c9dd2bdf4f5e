"""
错误消息处理工具函数
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


def extract_error_message(error: BaseException, status_code: int | None = None) -> str:
    """
    从异常中提取错误消息，优先使用 PipelineError/TransportClientError 的 message

    Args:
        error: 异常对象
        status_code: 可选的 HTTP 状态码，用于构建更详细的错误消息

    Returns:
        错误消息字符串
    """
    message = getattr(error, "message", None)
    if message and isinstance(message, str) and message.strip():
        error_str = message
    else:
        # 回退到异常的字符串表示（str 可能为空，如 httpx 超时异常）
        error_str = str(error) or repr(error)
    if status_code is not None:
        return f"HTTP {status_code}: {error_str}"
    return error_str


def describe_failures(failures: Sequence[Any]) -> str:
    """
    将失败历史格式化为多行文本（用于调试信息和终态异常消息）

    Args:
        failures: PipelineError 列表

    Returns:
        每行一个失败，形如 "- [bad_response] http://node:9200: ConnectError(...)"
    """
    lines = []
    for failure in failures:
        node = getattr(failure, "node", None)
        reason = getattr(getattr(failure, "failure", None), "value", "unknown")
        location = node.uri if node is not None else "unknown node"
        cause = failure.__cause__
        detail = extract_error_message(cause) if cause is not None else extract_error_message(failure)
        lines.append(f"- [{reason}] {location}: {detail}")
    return "\n".join(lines)


def extract_server_error_reason(payload: Any) -> str | None:
    """
    从服务端错误响应中提取错误原因

    兼容两种常见格式:
    - {"error": {"type": "...", "reason": "..."}}
    - {"error": "..."}
    """
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, str) and error.strip():
        return error
    if isinstance(error, dict):
        reason = error.get("reason")
        error_type = error.get("type")
        if reason and error_type:
            return f"{error_type}: {reason}"
        if reason or error_type:
            return str(reason or error_type)
    return None
