"""
Transport - 请求分发入口

负责跨候选节点的重试循环：
1. 首次使用连接池时执行（或等待）启动嗅探
2. 对每个候选节点：检查取消、拓扑过期嗅探、ping、调用
3. 成功或已知错误 -> 标记存活，停止
4. 可恢复失败 -> 记录、标记死亡、连接失败嗅探，继续下一个节点
5. 致命失败 -> 记录，立即停止
6. 结束时构建结果或终态异常，附带完整审计链路和失败历史

同步 request() 与异步 request_async() 驱动同一个 _dispatch 生成器，语义完全一致。
"""

from __future__ import annotations

from typing import Any

from clusterlink.clients.base import Connection
from clusterlink.clients.http_connection import HttpConnection
from clusterlink.config import RequestConfiguration, TransportSettings, config
from clusterlink.core.cancellation import CancellationToken
from clusterlink.core.clock import Clock
from clusterlink.core.error_utils import describe_failures
from clusterlink.core.exceptions import (
    ClusterLinkError,
    PipelineError,
    PipelineFailure,
    TransportClientError,
    UnexpectedTransportError,
)
from clusterlink.core.logger import logger
from clusterlink.models.audit import AuditEvent
from clusterlink.models.response import ApiCallDetails, RequestData, TransportResponse
from clusterlink.services.orchestration.classifier import OutcomeKind
from clusterlink.services.orchestration.executor import StepGenerator, run_steps, run_steps_async
from clusterlink.services.orchestration.request_pipeline import RequestPipeline
from clusterlink.services.pool import ConnectionPool, SingleNodePool
from clusterlink.utils.serializer import JsonSerializer, Serializer, to_body_bytes

DEFAULT_NODE = "http://localhost:9200"


class Transport:
    """
    请求分发入口

    用法:
        transport = Transport(settings, pool=SniffingNodePool([...]))
        response = transport.request("GET", "/_cluster/health")
        response = await transport.request_async("GET", "/_cluster/health")
    """

    def __init__(
        self,
        settings: TransportSettings | None = None,
        pool: ConnectionPool | None = None,
        connection: Connection | None = None,
        serializer: Serializer | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings or config
        self.pool = pool or SingleNodePool(DEFAULT_NODE, settings=self.settings, clock=clock)
        self.connection = connection or HttpConnection(headers=self.settings.headers)
        self.serializer = serializer or JsonSerializer()
        self.clock = clock or self.pool.clock

    # ==================== 公共接口 ====================

    def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        request_config: RequestConfiguration | None = None,
        cancellation: CancellationToken | None = None,
    ) -> TransportResponse:
        """
        同步执行一次逻辑调用

        Raises:
            TransportClientError: 终态失败且配置了 throw_exceptions
            UnexpectedTransportError: 未预期的错误（总是抛出）
            SerializationError: 请求体无法序列化
        """
        return run_steps(
            self._dispatch(method, path, body, request_config, cancellation),
            self.connection,
        )

    async def request_async(
        self,
        method: str,
        path: str,
        body: Any = None,
        request_config: RequestConfiguration | None = None,
        cancellation: CancellationToken | None = None,
    ) -> TransportResponse:
        """异步执行一次逻辑调用，语义与 request() 相同"""
        return await run_steps_async(
            self._dispatch(method, path, body, request_config, cancellation),
            self.connection,
        )

    def close(self) -> None:
        close = getattr(self.connection, "close", None)
        if close is not None:
            close()

    async def aclose(self) -> None:
        aclose = getattr(self.connection, "aclose", None)
        if aclose is not None:
            await aclose()

    # ==================== 重试循环 ====================

    def _dispatch(
        self,
        method: str,
        path: str,
        body: Any,
        request_config: RequestConfiguration | None,
        cancellation: CancellationToken | None,
    ) -> StepGenerator[TransportResponse]:
        request_data = RequestData.create(
            method,
            path,
            to_body_bytes(body, self.serializer),
            self.settings,
            request_config,
            using_ssl=self.pool.using_ssl,
        )
        if self.settings.on_request_data_created is not None:
            self.settings.on_request_data_created(request_data)

        failures: list[PipelineError] = []
        known_error: PipelineError | None = None
        cancelled = False

        with RequestPipeline(
            self.settings, self.pool, request_data, self.serializer, self.clock
        ) as pipeline:
            try:
                yield from pipeline.first_pool_usage()

                for node in pipeline.next_node():
                    if self._cancellation_requested(cancellation, pipeline):
                        cancelled = True
                        break

                    reseeded = yield from pipeline.sniff_on_stale_cluster()
                    if reseeded and not self.pool.contains(node):
                        continue

                    pipeline.start_attempt(node)
                    outcome = yield from pipeline.ping(node)
                    if outcome is None or outcome.kind is OutcomeKind.SUCCESS:
                        outcome = yield from pipeline.call(node)

                    if outcome.healthy:
                        pipeline.mark_alive(node)
                        known_error = outcome.error
                        break

                    failures.append(outcome.error)
                    pipeline.mark_dead(node)
                    if outcome.stops_retrying:
                        logger.warning("节点 {} 返回不可恢复的错误: {}", node.uri, outcome.error.message)
                        break

                    if self._cancellation_requested(cancellation, pipeline):
                        cancelled = True
                        break
                    yield from pipeline.sniff_on_connection_failure()
            except ClusterLinkError:
                raise
            except Exception as e:
                logger.exception("请求 {} {} 出现未预期的错误", request_data.method, request_data.path)
                raise UnexpectedTransportError(
                    e,
                    failures,
                    request=request_data,
                    api_call=pipeline.last_response,
                    audit_trail=pipeline.audit_trail,
                ) from e

            return self._finalize(pipeline, request_data, failures, known_error, cancelled)

    @staticmethod
    def _cancellation_requested(
        cancellation: CancellationToken | None, pipeline: RequestPipeline
    ) -> bool:
        if cancellation is None or not cancellation.is_cancellation_requested:
            return False
        pipeline.audit(AuditEvent.CANCELLATION_REQUESTED)
        return True

    # ==================== 终态 ====================

    def _finalize(
        self,
        pipeline: RequestPipeline,
        request_data: RequestData,
        failures: list[PipelineError],
        known_error: PipelineError | None,
        cancelled: bool,
    ) -> TransportResponse:
        if cancelled:
            details = pipeline.last_response or self._empty_details(request_data, pipeline)
            error = TransportClientError(
                PipelineFailure.CANCELLED,
                "Request was cancelled before it could complete",
                request=request_data,
                api_call=details,
                audit_trail=pipeline.audit_trail,
                failures=failures,
            )
            return self._complete(details, error, pipeline, failures)

        if pipeline.attempts == 0:
            pipeline.audit(AuditEvent.NO_NODES_ATTEMPTED)
            details = self._empty_details(request_data, pipeline)
            error = TransportClientError(
                PipelineFailure.NO_NODES_ATTEMPTED,
                "No nodes were attempted, this can happen when a node predicate does not match any nodes",
                request=request_data,
                api_call=details,
                audit_trail=pipeline.audit_trail,
                failures=failures,
            )
            return self._complete(details, error, pipeline, failures)

        details = pipeline.last_response
        if details is None and failures:
            details = failures[-1].api_call
        if details is None:
            details = self._empty_details(request_data, pipeline)

        error = pipeline.create_client_exception(details, failures, known_error)
        return self._complete(details, error, pipeline, failures)

    def _complete(
        self,
        details: ApiCallDetails,
        error: TransportClientError | None,
        pipeline: RequestPipeline,
        failures: list[PipelineError],
    ) -> TransportResponse:
        details.audit_trail = pipeline.audit_trail
        details.failures = list(failures)
        if error is not None:
            details.original_exception = error
            logger.warning(
                "请求 {} {} 失败 [{}]: {}",
                pipeline.request_data.method,
                pipeline.request_data.path,
                error.failure.value,
                error.message,
            )
            if failures:
                logger.debug("失败历史:\n{}", describe_failures(failures))

        if self.settings.on_request_completed is not None:
            self.settings.on_request_completed(details)

        if error is not None and pipeline.request_data.throw_exceptions:
            raise error
        return TransportResponse(details, self.serializer)

    @staticmethod
    def _empty_details(request_data: RequestData, pipeline: RequestPipeline) -> ApiCallDetails:
        node = pipeline.attempted_nodes[-1] if pipeline.attempted_nodes else None
        uri = f"{node.uri}{request_data.path}" if node is not None else request_data.path
        return ApiCallDetails(http_method=request_data.method, uri=uri, request_body=request_data.body)


__all__ = ["Transport"]
