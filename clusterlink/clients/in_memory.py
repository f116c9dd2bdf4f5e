"""
内存连接

不发起任何网络请求，按构造参数返回固定结果，并记录收到的请求。
用于测试上层逻辑或在没有集群的环境中演练调用链路。
"""

from __future__ import annotations

import threading

from clusterlink.models.response import ApiCallDetails, RequestData


class InMemoryConnection:
    """
    返回固定响应的连接

    Args:
        response_body: 响应体，默认空
        status_code: 状态码，默认 200
        exception: 设置后模拟传输层失败（不返回状态码）
    """

    def __init__(
        self,
        response_body: bytes = b"",
        status_code: int = 200,
        exception: BaseException | None = None,
    ) -> None:
        self._response_body = response_body
        self._status_code = status_code
        self._exception = exception
        self._lock = threading.Lock()
        self.requests: list[RequestData] = []

    def _respond(self, request_data: RequestData) -> ApiCallDetails:
        with self._lock:
            self.requests.append(request_data)

        details = ApiCallDetails(
            http_method=request_data.method,
            uri=request_data.uri,
            request_body=request_data.body,
            duration=0.0,
        )
        if self._exception is not None:
            details.original_exception = self._exception
            return details

        request_data.made_it_to_response = True
        details.status_code = self._status_code
        details.response_body = self._response_body
        return details

    def request(self, request_data: RequestData) -> ApiCallDetails:
        return self._respond(request_data)

    async def request_async(self, request_data: RequestData) -> ApiCallDetails:
        return self._respond(request_data)
