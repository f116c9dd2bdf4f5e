"""
Transport Connection 协议

一次 HTTP 交换：同步与异步两个版本契约一致。
传输层错误（连接失败、超时、协议错误）记录在 ApiCallDetails.original_exception 中返回，
不以异常形式抛出；其他异常视为未预期错误，由 Transport 统一包装上抛。
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from clusterlink.models.response import ApiCallDetails, RequestData


class Connection(Protocol):
    def request(self, request_data: RequestData) -> ApiCallDetails: ...

    async def request_async(self, request_data: RequestData) -> ApiCallDetails: ...
