"""
请求管道

每次逻辑调用创建一个 RequestPipeline，负责：
1. 决定何时嗅探（启动、拓扑过期、连接失败）
2. 从连接池取候选节点（受重试次数和超时预算约束）
3. ping 复活中的节点
4. 调用节点并对结果分类
5. 根据分类修改节点健康状态，并记录审计链路

所有涉及 I/O 的方法都是生成器（yield Step），由 executor 以同步或异步方式驱动。
管道不在调用之间共享；作为上下文管理器退出时封存审计链路并解绑节点。
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from clusterlink.config import TransportSettings
from clusterlink.config.constants import SniffDefaults, TimeoutDefaults
from clusterlink.core.clock import Clock
from clusterlink.core.error_utils import extract_error_message, extract_server_error_reason
from clusterlink.core.exceptions import (
    PipelineError,
    PipelineFailure,
    SerializationError,
    TransportClientError,
)
from clusterlink.core.logger import logger
from clusterlink.models.audit import Audit, AuditEvent, AuditTrail
from clusterlink.models.node import Node
from clusterlink.models.response import ApiCallDetails, RequestData
from clusterlink.services.orchestration.classifier import (
    AttemptOutcome,
    OutcomeKind,
    classify_call,
    classify_ping,
    is_success_status,
)
from clusterlink.services.orchestration.executor import AwaitBootstrap, Exchange, StepGenerator
from clusterlink.services.pool.base import ConnectionPool
from clusterlink.services.sniff import SniffParseError, sniff_order, sniff_path, to_nodes
from clusterlink.utils.serializer import Serializer


class RequestPipeline:
    """单次逻辑调用的编排器"""

    def __init__(
        self,
        settings: TransportSettings,
        pool: ConnectionPool,
        request_data: RequestData,
        serializer: Serializer,
        clock: Clock,
    ) -> None:
        self.settings = settings
        self.pool = pool
        self.request_data = request_data
        self.serializer = serializer
        self.clock = clock

        self.audit_trail = AuditTrail()
        self.started_on = clock.now()
        self.attempts = 0
        self.attempted_nodes: list[Node] = []
        self.last_response: ApiCallDetails | None = None

        # 嗅探成功后置位，下一个候选节点从新快照中选取
        self._refresh = False

    def __enter__(self) -> RequestPipeline:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.audit_trail.seal()
        self.request_data.node = None

    # ==================== 审计 ====================

    def audit(
        self,
        event: AuditEvent,
        node: Node | None = None,
        *,
        started: float | None = None,
        exception: BaseException | None = None,
        path: str | None = None,
    ) -> Audit:
        now = self.clock.now()
        return self.audit_trail.append(
            Audit(
                event=event,
                started=started if started is not None else now,
                ended=now,
                node=node,
                path=path,
                exception=exception,
            )
        )

    def _audit_view(self, event: AuditEvent, node: Node) -> None:
        self.audit(event, node)

    # ==================== 重试预算 ====================

    @property
    def max_retries(self) -> int:
        if self.request_data.force_node:
            return 0
        configured = self.request_data.max_retries
        if configured is None:
            return self.pool.max_retries
        return min(configured, self.pool.max_retries)

    @property
    def depleted_retries(self) -> bool:
        return self.attempts >= self.max_retries + 1 or self.is_taking_too_long

    @property
    def is_taking_too_long(self) -> bool:
        budget = self.settings.max_retry_timeout or self.request_data.request_timeout
        elapsed = self.clock.now() - self.started_on
        return elapsed >= budget * TimeoutDefaults.BUDGET_MARGIN

    # ==================== 节点选择 ====================

    def next_node(self) -> Iterator[Node]:
        """
        生成本次调用的候选节点

        嗅探替换了节点集合后，从新快照重新创建视图（最多 MAX_VIEW_REFRESHES 次）。
        """
        if self.request_data.force_node:
            yield Node(uri=self.request_data.force_node)
            return

        for _ in range(SniffDefaults.MAX_VIEW_REFRESHES):
            if self.depleted_retries:
                return
            self._refresh = False
            for node in self.pool.create_view(self._audit_view):
                if self.depleted_retries:
                    return
                yield node
                if self._refresh:
                    break
            if not self._refresh:
                return
            logger.debug("连接池已重新设置，从新的节点快照继续选择")

    def start_attempt(self, node: Node) -> None:
        self.attempts += 1
        self.attempted_nodes.append(node)
        self.request_data.node = node

    # ==================== 健康状态 ====================

    def mark_dead(self, node: Node) -> None:
        self.pool.mark_dead(node)
        self.audit(AuditEvent.MARKED_DEAD, node)

    def mark_alive(self, node: Node) -> None:
        self.pool.mark_alive(node)
        self.audit(AuditEvent.MARKED_ALIVE, node)

    # ==================== 嗅探 ====================

    @property
    def first_pool_usage_needs_sniff(self) -> bool:
        return (
            not self.request_data.disable_sniff
            and self.pool.supports_reseeding
            and self.settings.sniff_on_startup
            and not self.pool.sniffed_on_startup
        )

    @property
    def stale_cluster_needs_sniff(self) -> bool:
        lifespan = self.settings.sniff_lifespan
        if self.request_data.disable_sniff or not self.pool.supports_reseeding or lifespan is None:
            return False
        return self.clock.now() - self.pool.last_update > lifespan

    @property
    def sniffs_on_connection_failure(self) -> bool:
        return (
            not self.request_data.disable_sniff
            and self.pool.supports_reseeding
            and self.settings.sniff_on_connection_fault
        )

    def first_pool_usage(self) -> StepGenerator[bool]:
        """
        启动嗅探

        同一个连接池只执行一次：第一个调用方负责嗅探，其余调用方等待同一个令牌，
        等待超过请求超时后放弃等待，继续使用当前拓扑。
        """
        if not self.first_pool_usage_needs_sniff:
            return False

        token, owner = self.pool.claim_bootstrap()
        if not owner:
            if token.done():
                return token.result()
            finished = yield AwaitBootstrap(token, self.request_data.request_timeout)
            if not finished:
                logger.warning("等待启动嗅探超时，继续使用当前拓扑")
                return False
            return token.result()

        sniffed = False
        try:
            sniffed = yield from self._sniff_exclusive(AuditEvent.SNIFF_ON_STARTUP)
        finally:
            if not token.done():
                token.set_result(sniffed)
        return sniffed

    def sniff_on_stale_cluster(self) -> StepGenerator[bool]:
        if not self.stale_cluster_needs_sniff:
            return False
        return (yield from self._sniff_exclusive(AuditEvent.SNIFF_ON_STALE_CLUSTER))

    def sniff_on_connection_failure(self) -> StepGenerator[bool]:
        if not self.sniffs_on_connection_failure:
            return False
        return (yield from self._sniff_exclusive(AuditEvent.SNIFF_ON_FAIL))

    def _sniff_exclusive(self, trigger: AuditEvent) -> StepGenerator[bool]:
        if not self.pool.begin_sniff():
            logger.debug("已有嗅探在进行中，跳过 {}", trigger.value)
            return False
        try:
            return (yield from self.sniff(trigger))
        finally:
            self.pool.end_sniff()

    def sniff(self, trigger: AuditEvent) -> StepGenerator[bool]:
        """
        依次向节点请求拓扑，第一个给出有效结果的节点胜出

        失败不会中断请求：每个失败节点记录一条 SNIFF_FAILURE 审计，保留原有拓扑。

        Returns:
            是否成功替换了节点集合
        """
        trigger_audit = self.audit(trigger)
        path = sniff_path(self.settings.sniff_timeout)

        for node in sniff_order(self.pool.nodes):
            started = self.clock.now()
            request = RequestData.for_node(
                "GET", path, node, self.settings.sniff_timeout, headers=self.request_data.headers
            )
            details = yield Exchange(request)
            try:
                nodes = self._parse_sniff_response(details, node)
            except PipelineError as e:
                logger.debug("节点 {} 嗅探失败: {}", node.uri, e.message)
                self.audit(AuditEvent.SNIFF_FAILURE, node, started=started, exception=e, path=path)
                continue

            self.pool.reseed(nodes)
            self.audit(AuditEvent.SNIFF_SUCCESS, node, started=started, path=path)
            trigger_audit.ended = self.clock.now()
            self._refresh = True
            return True

        trigger_audit.ended = self.clock.now()
        logger.warning("嗅探失败（{}），继续使用已知的 {} 个节点", trigger.value, len(self.pool.nodes))
        return False

    def _parse_sniff_response(self, details: ApiCallDetails, node: Node) -> list[Node]:
        if details.original_exception is not None or not is_success_status(details.status_code):
            reason = details.original_exception or f"status code {details.status_code}"
            raise PipelineError(
                PipelineFailure.SNIFF_FAILURE,
                f"Sniff request failed: {reason}",
                node=node,
                api_call=details,
                cause=details.original_exception,
            )
        try:
            nodes = to_nodes(
                self.serializer.loads(details.response_body),
                using_ssl=self.pool.using_ssl,
                node_predicate=self.settings.node_predicate,
            )
        except (SerializationError, SniffParseError) as e:
            raise PipelineError(
                PipelineFailure.SNIFF_FAILURE,
                f"Could not parse sniff response: {e}",
                node=node,
                api_call=details,
                cause=e,
            ) from e
        if not nodes:
            raise PipelineError(
                PipelineFailure.SNIFF_FAILURE,
                "Sniff response did not contain any usable node",
                node=node,
                api_call=details,
            )
        return nodes

    # ==================== ping / 调用 ====================

    def should_ping(self, node: Node) -> bool:
        return (
            self.pool.supports_pinging
            and not self.settings.disable_pings
            and not self.request_data.disable_ping
            and node.is_resurrected
        )

    def ping(self, node: Node) -> StepGenerator[AttemptOutcome | None]:
        """
        ping 复活中的节点（HEAD /）

        Returns:
            分类后的结果，未执行 ping 时返回 None
        """
        if not self.should_ping(node):
            return None

        started = self.clock.now()
        request = RequestData.for_node(
            "HEAD", "/", node, self.request_data.ping_timeout, headers=self.request_data.headers
        )
        details = yield Exchange(request)
        outcome = classify_ping(details, node)
        if outcome.kind is OutcomeKind.SUCCESS:
            self.audit(AuditEvent.PING_SUCCESS, node, started=started, path="/")
        else:
            self.audit(AuditEvent.PING_FAILURE, node, started=started, exception=outcome.error, path="/")
        return outcome

    def call(self, node: Node) -> StepGenerator[AttemptOutcome]:
        started = self.clock.now()
        self.request_data.node = node
        details = yield Exchange(self.request_data)
        self.last_response = details

        outcome = classify_call(details, node, self.request_data.allowed_status_codes)
        if outcome.kind is OutcomeKind.SUCCESS:
            event = AuditEvent.HEALTHY_RESPONSE
        elif outcome.kind is OutcomeKind.KNOWN_ERROR:
            event = AuditEvent.BAD_REQUEST
        else:
            event = AuditEvent.BAD_RESPONSE
        self.audit(event, node, started=started, exception=outcome.error, path=self.request_data.path)
        return outcome

    # ==================== 终态 ====================

    def create_client_exception(
        self,
        details: ApiCallDetails | None,
        failures: list[PipelineError],
        known_error: PipelineError | None = None,
    ) -> TransportClientError | None:
        """
        根据调用结果和失败历史构建终态异常，成功时返回 None

        会补充 MAX_TIMEOUT_REACHED / MAX_RETRIES_REACHED / FAILED_OVER_ALL_NODES 审计。
        """
        if details is not None and details.success and details.original_exception is None:
            return None

        if failures:
            failure = failures[-1].failure
            cause: BaseException | None = failures[-1]
        elif known_error is not None:
            failure = known_error.failure
            cause = known_error
        else:
            failure = PipelineFailure.BAD_RESPONSE
            cause = details.original_exception if details is not None else None

        message = extract_error_message(cause) if cause is not None else "Request failed to execute"

        if self.is_taking_too_long:
            failure = PipelineFailure.MAX_TIMEOUT_REACHED
            self.audit(AuditEvent.MAX_TIMEOUT_REACHED)
            message = "Maximum timeout reached while retrying request"
        elif self.max_retries > 0 and self.attempts >= self.max_retries + 1:
            failure = PipelineFailure.MAX_RETRIES_REACHED
            self.audit(AuditEvent.MAX_RETRIES_REACHED)
            message = "Maximum number of retries reached"
            now = self.clock.now()
            active_nodes = sum(1 for node in self.pool.nodes if node.is_eligible(now))
            if self.attempts >= active_nodes:
                self.audit(AuditEvent.FAILED_OVER_ALL_NODES)
                message += ", failed over to all the known alive nodes before failing"

        if details is not None:
            status = details.status_code if details.status_code is not None else "unknown"
            message += f". Call: Status code {status} from: {details.http_method} {self.request_data.path}"
            server_error = self._server_error(details)
            if server_error:
                message += f". ServerError: {server_error}"

        error = TransportClientError(
            failure,
            message,
            request=self.request_data,
            api_call=details,
            audit_trail=self.audit_trail,
            failures=failures,
        )
        if cause is not None:
            error.__cause__ = cause
        return error

    def _server_error(self, details: ApiCallDetails) -> str | None:
        if not details.response_body:
            return None
        try:
            return extract_server_error_reason(self.serializer.loads(details.response_body))
        except SerializationError:
            return None


__all__ = ["RequestPipeline"]
