"""
基于 httpx 的 HTTP 连接

同步调用方复用 httpx.Client，异步调用方复用 httpx.AsyncClient，均为惰性创建。

性能优化说明：
1. 客户端复用：同一个连接对象的所有请求共享连接池，Keep-alive 减少 TCP 握手开销
2. 超时按请求传入：每次尝试使用 RequestData 上的超时，而非客户端级别的固定值
"""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Any

import httpx

from clusterlink.core.logger import logger
from clusterlink.models.response import ApiCallDetails, RequestData

# 默认连接池限制
DEFAULT_MAX_CONNECTIONS = 100
DEFAULT_MAX_KEEPALIVE_CONNECTIONS = 20
DEFAULT_KEEPALIVE_EXPIRY = 30.0


class HttpConnection:
    """
    HTTP 连接（Transport Connection 的默认实现）

    用法:
        connection = HttpConnection()
        details = connection.request(request_data)
        details = await connection.request_async(request_data)
    """

    def __init__(
        self,
        *,
        transport: httpx.BaseTransport | None = None,
        async_transport: httpx.AsyncBaseTransport | None = None,
        verify: Any = True,
        limits: httpx.Limits | None = None,
        headers: dict[str, str] | None = None,
        http2: bool = False,
    ) -> None:
        self._transport = transport
        self._async_transport = async_transport
        self._verify = verify
        self._limits = limits or httpx.Limits(
            max_connections=DEFAULT_MAX_CONNECTIONS,
            max_keepalive_connections=DEFAULT_MAX_KEEPALIVE_CONNECTIONS,
            keepalive_expiry=DEFAULT_KEEPALIVE_EXPIRY,
        )
        self._headers = dict(headers or {})
        self._http2 = http2

        self._client: httpx.Client | None = None
        self._async_client: httpx.AsyncClient | None = None
        self._client_lock = threading.Lock()
        self._async_client_lock = asyncio.Lock()

    # ==================== 客户端管理 ====================

    def _client_config(self) -> dict[str, Any]:
        return {
            "http2": self._http2,
            "verify": self._verify,
            "limits": self._limits,
            "headers": self._headers,
            "follow_redirects": False,
        }

    def _get_client(self) -> httpx.Client:
        if self._client is not None:
            return self._client

        with self._client_lock:
            # 双重检查，避免重复创建
            if self._client is None:
                client_config = self._client_config()
                if self._transport is not None:
                    client_config["transport"] = self._transport
                self._client = httpx.Client(**client_config)
                logger.debug("同步 HTTP 客户端已初始化")
        return self._client

    async def _get_async_client(self) -> httpx.AsyncClient:
        if self._async_client is not None:
            return self._async_client

        async with self._async_client_lock:
            if self._async_client is None:
                client_config = self._client_config()
                if self._async_transport is not None:
                    client_config["transport"] = self._async_transport
                self._async_client = httpx.AsyncClient(**client_config)
                logger.debug("异步 HTTP 客户端已初始化")
        return self._async_client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.debug("同步 HTTP 客户端已关闭")

    async def aclose(self) -> None:
        if self._async_client is not None:
            await self._async_client.aclose()
            self._async_client = None
            logger.debug("异步 HTTP 客户端已关闭")
        self.close()

    # ==================== 请求执行 ====================

    @staticmethod
    def _build_request(client: httpx.Client | httpx.AsyncClient, request_data: RequestData) -> httpx.Request:
        headers = dict(request_data.headers)
        if request_data.body is not None and "content-type" not in {k.lower() for k in headers}:
            headers["Content-Type"] = "application/json"
        return client.build_request(
            request_data.method,
            request_data.uri,
            content=request_data.body,
            headers=headers,
            timeout=httpx.Timeout(request_data.request_timeout),
        )

    @staticmethod
    def _details(request_data: RequestData, started: float) -> ApiCallDetails:
        return ApiCallDetails(
            http_method=request_data.method,
            uri=request_data.uri,
            request_body=request_data.body,
            duration=time.monotonic() - started,
        )

    def request(self, request_data: RequestData) -> ApiCallDetails:
        client = self._get_client()
        started = time.monotonic()
        try:
            response = client.send(self._build_request(client, request_data))
        except httpx.TransportError as e:
            details = self._details(request_data, started)
            details.original_exception = e
            logger.debug("请求 {} {} 传输失败: {!r}", request_data.method, request_data.uri, e)
            return details

        details = self._details(request_data, started)
        details.status_code = response.status_code
        details.response_body = response.content
        details.response_headers = dict(response.headers)
        request_data.made_it_to_response = True
        return details

    async def request_async(self, request_data: RequestData) -> ApiCallDetails:
        client = await self._get_async_client()
        started = time.monotonic()
        try:
            response = await client.send(self._build_request(client, request_data))
        except httpx.TransportError as e:
            details = self._details(request_data, started)
            details.original_exception = e
            logger.debug("请求 {} {} 传输失败: {!r}", request_data.method, request_data.uri, e)
            return details

        details = self._details(request_data, started)
        details.status_code = response.status_code
        details.response_body = response.content
        details.response_headers = dict(response.headers)
        request_data.made_it_to_response = True
        return details


__all__ = ["HttpConnection"]
