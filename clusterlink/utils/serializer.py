"""
序列化协作方

Transport 只在两处需要解码：拓扑（sniff）响应，以及调用方按需解码最终响应体。
其余情况下请求/响应体都按不透明字节处理。
"""

from __future__ import annotations

import json
from typing import Any, Protocol

from clusterlink.core.exceptions import SerializationError


class Serializer(Protocol):
    mime_type: str

    def dumps(self, obj: Any) -> bytes: ...

    def loads(self, data: bytes) -> Any: ...


class JsonSerializer:
    """默认 JSON 序列化器"""

    mime_type = "application/json"

    def dumps(self, obj: Any) -> bytes:
        try:
            return json.dumps(obj, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise SerializationError(f"无法序列化请求体: {e}") from e

    def loads(self, data: bytes) -> Any:
        if not data:
            return None
        try:
            return json.loads(data)
        except (UnicodeDecodeError, ValueError) as e:
            raise SerializationError(f"无法解析 JSON 响应: {e}") from e


def to_body_bytes(body: Any, serializer: Serializer) -> bytes | None:
    """
    将调用方传入的请求体转换为字节

    - None -> None
    - bytes/bytearray -> 原样
    - str -> utf-8 编码
    - 其他对象 -> 交给 serializer
    """
    if body is None:
        return None
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    if isinstance(body, str):
        return body.encode("utf-8")
    return serializer.dumps(body)


__all__ = ["JsonSerializer", "Serializer", "to_body_bytes"]
