"""
Transport 同步调用测试

基于虚拟集群（httpx.MockTransport）覆盖重试循环的端到端行为：
故障转移、已知错误、致命错误、超时预算、嗅探触发、取消与回调。
"""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from clusterlink.config import RequestConfiguration, TransportSettings
from clusterlink.core.cancellation import CancellationToken
from clusterlink.core.clock import ManualClock
from clusterlink.core.exceptions import (
    PipelineFailure,
    SerializationError,
    TransportClientError,
    UnexpectedTransportError,
)
from clusterlink.models.audit import CALL_FAILURE_EVENTS, CALL_SUCCESS_EVENTS, AuditEvent
from clusterlink.services.pool import StaticNodePool
from clusterlink.services.transport import Transport

A, B, C = "http://a:9200", "http://b:9200", "http://c:9200"


def trail_of(response: Any, *events: AuditEvent) -> list[tuple[AuditEvent, str | None]]:
    return [
        (audit.event, audit.node.uri if audit.node is not None else None)
        for audit in response.audit_trail.of(*events)
    ]


class TestFailover:
    def test_ping_failure_fails_over_to_next_node(self, cluster: Any, make_transport: Callable[..., Transport]) -> None:
        cluster.node("a:9200", ping="fail")
        cluster.node("b:9200")
        cluster.node("c:9200")
        transport = make_transport("static", [A, B, C])

        response = transport.request("GET", "/index/_search")

        assert response.is_valid
        assert response.node_uri == f"{B}/index/_search"
        assert trail_of(
            response, AuditEvent.PING_FAILURE, AuditEvent.MARKED_DEAD, AuditEvent.HEALTHY_RESPONSE
        ) == [
            (AuditEvent.PING_FAILURE, A),
            (AuditEvent.MARKED_DEAD, A),
            (AuditEvent.HEALTHY_RESPONSE, B),
        ]
        a, b, c = transport.pool.nodes
        assert not a.is_alive
        assert b.is_alive and c.is_alive
        assert cluster.calls() == ["b:9200"]
        assert [f.failure for f in response.failures] == [PipelineFailure.PING_FAILURE]

    def test_exhausting_all_nodes(self, cluster: Any, make_transport: Callable[..., Transport]) -> None:
        for address in ("a:9200", "b:9200", "c:9200"):
            cluster.node(address, call=503)
        transport = make_transport("static", [A, B, C])

        response = transport.request("GET", "/index/_search")

        assert not response.is_valid
        assert len(response.audit_trail.of(*CALL_FAILURE_EVENTS)) == 3
        assert response.audit_trail.of(*CALL_SUCCESS_EVENTS) == []
        assert len(response.failures) == 3
        assert all(f.failure is PipelineFailure.BAD_RESPONSE for f in response.failures)
        assert AuditEvent.MAX_RETRIES_REACHED in response.audit_trail.events
        assert AuditEvent.FAILED_OVER_ALL_NODES in response.audit_trail.events
        assert not any(node.is_alive for node in transport.pool.nodes)

        error = response.original_exception
        assert isinstance(error, TransportClientError)
        assert error.failure is PipelineFailure.MAX_RETRIES_REACHED
        assert error.message.startswith("Maximum number of retries reached")
        assert "Status code 503 from: GET /index/_search" in error.message

    def test_transport_errors_are_retried(self, cluster: Any, make_transport: Callable[..., Transport]) -> None:
        cluster.node("a:9200", call="fail")
        cluster.node("b:9200", call={"hits": []})
        transport = make_transport("static", [A, B])

        response = transport.request("POST", "/index/_search", body={"query": {}})

        assert response.is_valid
        assert response.json() == {"hits": []}
        (failure,) = response.failures
        assert isinstance(failure.__cause__, httpx.ConnectError)

    def test_resurrected_node_is_pinged_and_marked_alive(
        self, cluster: Any, make_transport: Callable[..., Transport], clock: ManualClock
    ) -> None:
        cluster.node("a:9200")
        cluster.node("b:9200")
        transport = make_transport("static", [A, B], dead_timeout=60)
        a = transport.pool.nodes[0]
        transport.pool.mark_dead(a)
        clock.advance(60)

        response = transport.request("GET", "/")

        events = trail_of(
            response,
            AuditEvent.RESURRECTION,
            AuditEvent.PING_SUCCESS,
            AuditEvent.HEALTHY_RESPONSE,
            AuditEvent.MARKED_ALIVE,
        )
        assert events == [
            (AuditEvent.RESURRECTION, A),
            (AuditEvent.PING_SUCCESS, A),
            (AuditEvent.HEALTHY_RESPONSE, A),
            (AuditEvent.MARKED_ALIVE, A),
        ]
        assert a.is_alive and a.failed_attempts == 0

    def test_alive_nodes_are_not_pinged_again(self, cluster: Any, make_transport: Callable[..., Transport]) -> None:
        cluster.node("a:9200")
        transport = make_transport("static", [A])

        transport.request("GET", "/")
        transport.request("GET", "/")

        assert cluster.attempted("HEAD") == ["a:9200"]

    def test_disable_ping(self, cluster: Any, make_transport: Callable[..., Transport]) -> None:
        cluster.node("a:9200")
        transport = make_transport("static", [A])

        transport.request("GET", "/", request_config=RequestConfiguration(disable_ping=True))

        assert cluster.attempted("HEAD") == []


class TestTerminalOutcomes:
    def test_fatal_error_stops_immediately(self, cluster: Any, make_transport: Callable[..., Transport]) -> None:
        cluster.node("only:9200", call=401)
        transport = make_transport("single", ["http://only:9200"], max_retries=5)

        response = transport.request("GET", "/")

        assert not response.is_valid
        assert cluster.calls() == ["only:9200"]
        assert [f.failure for f in response.failures] == [PipelineFailure.BAD_AUTHENTICATION]
        assert response.original_exception.failure is PipelineFailure.BAD_AUTHENTICATION

    def test_fatal_error_does_not_fail_over(self, cluster: Any, make_transport: Callable[..., Transport]) -> None:
        cluster.node("a:9200", call=401)
        cluster.node("b:9200")
        transport = make_transport("static", [A, B], max_retries=5)

        response = transport.request("GET", "/")

        assert cluster.calls() == ["a:9200"]
        assert trail_of(response, AuditEvent.MARKED_DEAD) == [(AuditEvent.MARKED_DEAD, A)]
        a, b = transport.pool.nodes
        assert not a.is_alive
        assert b.is_alive

    def test_redirect_fails_over_to_next_node(
        self, cluster: Any, make_transport: Callable[..., Transport]
    ) -> None:
        cluster.node("a:9200", call=lambda request: httpx.Response(302, headers={"location": "http://proxy/"}))
        cluster.node("b:9200")
        transport = make_transport("static", [A, B])

        response = transport.request("GET", "/")

        assert response.is_valid
        assert cluster.calls() == ["a:9200", "b:9200"]
        assert [f.failure for f in response.failures] == [PipelineFailure.BAD_RESPONSE]
        assert not transport.pool.nodes[0].is_alive

    def test_known_error_is_returned_without_retry(
        self, cluster: Any, make_transport: Callable[..., Transport]
    ) -> None:
        error_body = {"error": {"type": "index_not_found_exception", "reason": "no such index"}}
        cluster.node("a:9200", call=lambda request: httpx.Response(404, json=error_body))
        cluster.node("b:9200")
        transport = make_transport("static", [A, B])

        response = transport.request("GET", "/missing/_doc/1")

        assert not response.is_valid
        assert response.status_code == 404
        assert response.failures == []
        assert response.server_error == "index_not_found_exception: no such index"
        assert cluster.calls() == ["a:9200"]
        assert transport.pool.nodes[0].is_alive
        assert trail_of(response, AuditEvent.BAD_REQUEST) == [(AuditEvent.BAD_REQUEST, A)]
        assert "ServerError: index_not_found_exception: no such index" in response.original_exception.message

    def test_allowed_status_code_is_valid(self, cluster: Any, make_transport: Callable[..., Transport]) -> None:
        cluster.node("a:9200", call=404)
        transport = make_transport("static", [A])

        response = transport.request(
            "HEAD", "/index", request_config=RequestConfiguration(allowed_status_codes=frozenset({404}))
        )

        assert response.is_valid
        assert response.status_code == 404

    def test_throw_exceptions(self, cluster: Any, make_transport: Callable[..., Transport]) -> None:
        cluster.node("a:9200", call=503)
        cluster.node("b:9200", call=503)
        transport = make_transport("static", [A, B], throw_exceptions=True)

        with pytest.raises(TransportClientError) as exc_info:
            transport.request("GET", "/")

        error = exc_info.value
        assert error.failure is PipelineFailure.MAX_RETRIES_REACHED
        assert len(error.failures) == 2
        assert error.audit_trail.sealed
        assert error.__cause__ is error.failures[-1]
        assert "# Audit trail of this API call:" in error.debug_information

    def test_request_config_can_disable_throwing(
        self, cluster: Any, make_transport: Callable[..., Transport]
    ) -> None:
        cluster.node("a:9200", call=503)
        transport = make_transport("static", [A], throw_exceptions=True)

        response = transport.request("GET", "/", request_config=RequestConfiguration(throw_exceptions=False))

        assert not response.is_valid

    def test_max_retries_override(self, cluster: Any, make_transport: Callable[..., Transport]) -> None:
        for address in ("a:9200", "b:9200", "c:9200"):
            cluster.node(address, call=503)
        transport = make_transport("static", [A, B, C])

        response = transport.request("GET", "/", request_config=RequestConfiguration(max_retries=1))

        assert cluster.calls() == ["a:9200", "b:9200"]
        assert response.original_exception.failure is PipelineFailure.MAX_RETRIES_REACHED

    def test_timeout_budget(
        self, cluster: Any, make_transport: Callable[..., Transport], clock: ManualClock
    ) -> None:
        def slow(request: httpx.Request) -> httpx.Response:
            clock.advance(10)
            return httpx.Response(503)

        for address in ("a:9200", "b:9200", "c:9200"):
            cluster.node(address, call=slow)
        transport = make_transport("static", [A, B, C], request_timeout=10)

        response = transport.request("GET", "/")

        assert cluster.calls() == ["a:9200"]
        assert response.original_exception.failure is PipelineFailure.MAX_TIMEOUT_REACHED
        assert AuditEvent.MAX_TIMEOUT_REACHED in response.audit_trail.events

    def test_max_retry_timeout_overrides_request_timeout(
        self, cluster: Any, make_transport: Callable[..., Transport], clock: ManualClock
    ) -> None:
        def slow(request: httpx.Request) -> httpx.Response:
            clock.advance(5)
            return httpx.Response(503)

        for address in ("a:9200", "b:9200", "c:9200"):
            cluster.node(address, call=slow)
        transport = make_transport("static", [A, B, C], request_timeout=60, max_retry_timeout=10)

        response = transport.request("GET", "/")

        assert cluster.calls() == ["a:9200", "b:9200"]
        assert response.original_exception.failure is PipelineFailure.MAX_TIMEOUT_REACHED

    def test_no_nodes_attempted(
        self, cluster: Any, make_transport: Callable[..., Transport], clock: ManualClock
    ) -> None:
        def slow_sniff(request: httpx.Request) -> httpx.Response:
            clock.advance(120)
            return httpx.Response(503)

        cluster.node("seed:9200", sniff=slow_sniff)
        transport = make_transport("sniffing", ["http://seed:9200"], sniff_on_startup=True)

        response = transport.request("GET", "/")

        assert not response.is_valid
        assert response.original_exception.failure is PipelineFailure.NO_NODES_ATTEMPTED
        assert AuditEvent.NO_NODES_ATTEMPTED in response.audit_trail.events
        assert cluster.calls() == []

    def test_unexpected_error_is_always_raised(self, clock: ManualClock) -> None:
        class ExplodingConnection:
            def request(self, request_data: Any) -> Any:
                raise RuntimeError("boom")

            async def request_async(self, request_data: Any) -> Any:
                raise RuntimeError("boom")

        settings = TransportSettings(disable_pings=True)
        pool = StaticNodePool([A, B], settings=settings, clock=clock)
        transport = Transport(settings, pool=pool, connection=ExplodingConnection(), clock=clock)

        with pytest.raises(UnexpectedTransportError) as exc_info:
            transport.request("GET", "/")

        error = exc_info.value
        assert error.failure is PipelineFailure.UNEXPECTED
        assert isinstance(error.original_exception, RuntimeError)
        assert error.audit_trail.sealed

    def test_serialization_error_before_any_node(
        self, cluster: Any, make_transport: Callable[..., Transport]
    ) -> None:
        cluster.node("a:9200")
        transport = make_transport("static", [A])

        with pytest.raises(SerializationError):
            transport.request("POST", "/", body={"bad": object()})

        assert cluster.requests == []

    def test_debug_information(self, cluster: Any, make_transport: Callable[..., Transport]) -> None:
        cluster.node("a:9200", call=503)
        transport = make_transport("static", [A])

        text = transport.request("GET", "/").debug_information

        assert text.startswith("Invalid response built from a GET on http://a:9200/")
        assert "# Failures:" in text
        assert "# Audit trail of this API call:" in text


class TestSniffing:
    def test_sniff_on_startup(
        self, cluster: Any, make_transport: Callable[..., Transport], topology: Callable[..., dict]
    ) -> None:
        seed = cluster.node("seed:9200", sniff=topology({"address": "a:9200"}, {"address": "b:9200"}))
        cluster.node("a:9200")
        cluster.node("b:9200")
        transport = make_transport("sniffing", ["http://seed:9200"], sniff_on_startup=True)

        first = transport.request("GET", "/")
        second = transport.request("GET", "/")

        assert seed.sniffs == 1
        assert seed.calls == 0
        assert [n.uri for n in transport.pool.nodes] == [A, B]
        assert first.audit_trail.events[:2] == [AuditEvent.SNIFF_ON_STARTUP, AuditEvent.SNIFF_SUCCESS]
        assert AuditEvent.SNIFF_ON_STARTUP not in second.audit_trail.events
        assert first.is_valid and second.is_valid

    def test_sniff_request(
        self, cluster: Any, make_transport: Callable[..., Transport], topology: Callable[..., dict]
    ) -> None:
        seen: list[httpx.Request] = []

        def sniff(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=topology({"address": "a:9200"}))

        cluster.node("seed:9200", sniff=sniff)
        cluster.node("a:9200")
        transport = make_transport("sniffing", ["http://seed:9200"], sniff_on_startup=True, sniff_timeout=3)

        transport.request("GET", "/")

        (request,) = seen
        assert request.method == "GET"
        assert request.url.path == "/_nodes/http,settings"
        assert request.url.query == b"flat_settings&timeout=3s"

    def test_failed_sniff_keeps_topology(self, cluster: Any, make_transport: Callable[..., Transport]) -> None:
        cluster.node("seed:9200", sniff=500)
        transport = make_transport("sniffing", ["http://seed:9200"], sniff_on_startup=True)

        response = transport.request("GET", "/")

        assert response.is_valid
        assert [n.uri for n in transport.pool.nodes] == ["http://seed:9200"]
        assert trail_of(response, AuditEvent.SNIFF_FAILURE) == [(AuditEvent.SNIFF_FAILURE, "http://seed:9200")]
        assert response.failures == []

    def test_out_of_range_port_is_a_sniff_failure(
        self, cluster: Any, make_transport: Callable[..., Transport], topology: Callable[..., dict]
    ) -> None:
        """拓扑中端口越界的节点不会进入连接池，后续嗅探也不会把错误抛给调用方"""
        cluster.node("seed:9200", call=503, sniff=topology({"address": "x:99999"}))
        transport = make_transport(
            "sniffing", ["http://seed:9200"], sniff_on_startup=True, sniff_on_connection_fault=True
        )

        response = transport.request("GET", "/")

        assert not response.is_valid
        assert [n.uri for n in transport.pool.nodes] == ["http://seed:9200"]
        assert trail_of(response, AuditEvent.SNIFF_FAILURE)[0] == (AuditEvent.SNIFF_FAILURE, "http://seed:9200")
        assert [f.failure for f in response.failures] == [PipelineFailure.BAD_RESPONSE]

        response = transport.request("GET", "/")

        assert [f.failure for f in response.failures] == [PipelineFailure.BAD_RESPONSE]

    def test_empty_topology_is_a_sniff_failure(
        self, cluster: Any, make_transport: Callable[..., Transport], topology: Callable[..., dict]
    ) -> None:
        cluster.node("seed:9200", sniff=topology({"address": "m:9200", "roles": ["master"]}))
        transport = make_transport("sniffing", ["http://seed:9200"], sniff_on_startup=True)

        response = transport.request("GET", "/")

        assert AuditEvent.SNIFF_FAILURE in response.audit_trail.events
        assert [n.uri for n in transport.pool.nodes] == ["http://seed:9200"]

    def test_sniff_on_stale_cluster(
        self,
        cluster: Any,
        make_transport: Callable[..., Transport],
        topology: Callable[..., dict],
        clock: ManualClock,
    ) -> None:
        seed = cluster.node("seed:9200", sniff=topology({"address": "a:9200"}))
        cluster.node("a:9200")
        transport = make_transport("sniffing", ["http://seed:9200"], sniff_lifespan=60)

        transport.request("GET", "/")
        assert seed.sniffs == 0

        clock.advance(61)
        response = transport.request("GET", "/")

        assert seed.sniffs == 1
        assert seed.calls == 1
        assert response.node_uri == f"{A}/"
        assert AuditEvent.SNIFF_ON_STALE_CLUSTER in response.audit_trail.events

        transport.request("GET", "/")
        assert seed.sniffs == 1

    def test_sniff_on_connection_failure(
        self, cluster: Any, make_transport: Callable[..., Transport], topology: Callable[..., dict]
    ) -> None:
        cluster.node("a:9200", call=503, sniff="fail")
        cluster.node("b:9200", sniff=topology({"address": "b:9200"}, {"address": "c:9200"}))
        cluster.node("c:9200")
        transport = make_transport("sniffing", [A, B])

        response = transport.request("GET", "/")

        assert response.is_valid
        assert response.node_uri == f"{B}/"
        assert [n.uri for n in transport.pool.nodes] == [B, C]
        assert trail_of(
            response, AuditEvent.SNIFF_ON_FAIL, AuditEvent.SNIFF_FAILURE, AuditEvent.SNIFF_SUCCESS
        ) == [
            (AuditEvent.SNIFF_ON_FAIL, None),
            (AuditEvent.SNIFF_FAILURE, A),
            (AuditEvent.SNIFF_SUCCESS, B),
        ]

    def test_disable_sniff(
        self, cluster: Any, make_transport: Callable[..., Transport], topology: Callable[..., dict]
    ) -> None:
        seed = cluster.node("seed:9200", sniff=topology({"address": "a:9200"}))
        transport = make_transport("sniffing", ["http://seed:9200"], sniff_on_startup=True)

        transport.request("GET", "/", request_config=RequestConfiguration(disable_sniff=True))

        assert seed.sniffs == 0

    def test_static_pool_never_sniffs(self, cluster: Any, make_transport: Callable[..., Transport]) -> None:
        a = cluster.node("a:9200", call=503)
        cluster.node("b:9200")
        transport = make_transport("static", [A, B], sniff_on_startup=True, sniff_lifespan=1)

        transport.request("GET", "/")

        assert a.sniffs == 0
        assert not any(path.startswith("/_nodes") for _, _, path in cluster.requests)


class TestRequestOptions:
    def test_force_node(self, cluster: Any, make_transport: Callable[..., Transport]) -> None:
        cluster.node("a:9200")
        cluster.node("x:9200")
        transport = make_transport("static", [A])

        response = transport.request("GET", "/", request_config=RequestConfiguration(force_node="http://x:9200"))

        assert response.node_uri == "http://x:9200/"
        assert cluster.calls() == ["x:9200"]

    def test_headers_are_sent(self, cluster: Any, make_transport: Callable[..., Transport]) -> None:
        seen: list[httpx.Request] = []

        def call(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        cluster.node("a:9200", call=call)
        transport = make_transport("static", [A], headers={"X-Opaque-Id": "abc"})

        transport.request("PUT", "/doc", body={"a": 1}, request_config=RequestConfiguration(headers={"X-Extra": "1"}))

        (request,) = seen
        assert request.headers["X-Opaque-Id"] == "abc"
        assert request.headers["X-Extra"] == "1"
        assert request.headers["Content-Type"] == "application/json"
        assert request.content == b'{"a":1}'

    def test_callbacks(self, cluster: Any, make_transport: Callable[..., Transport]) -> None:
        created: list[Any] = []
        completed: list[Any] = []
        cluster.node("a:9200")
        transport = make_transport(
            "static", [A], on_request_data_created=created.append, on_request_completed=completed.append
        )

        response = transport.request("GET", "/")

        assert [data.path for data in created] == ["/"]
        assert completed == [response.api_call]


class TestCancellation:
    def test_cancel_between_attempts(self, cluster: Any, make_transport: Callable[..., Transport]) -> None:
        token = CancellationToken()

        def cancel_then_fail(request: httpx.Request) -> httpx.Response:
            token.cancel()
            return httpx.Response(503)

        cluster.node("a:9200", call=cancel_then_fail)
        cluster.node("b:9200")
        transport = make_transport("static", [A, B])

        response = transport.request("GET", "/", cancellation=token)

        assert not response.is_valid
        assert response.original_exception.failure is PipelineFailure.CANCELLED
        assert cluster.calls() == ["a:9200"]
        assert AuditEvent.CANCELLATION_REQUESTED in response.audit_trail.events
        assert trail_of(response, *CALL_FAILURE_EVENTS, *CALL_SUCCESS_EVENTS) == [(AuditEvent.BAD_RESPONSE, A)]

    def test_cancelled_before_start(self, cluster: Any, make_transport: Callable[..., Transport]) -> None:
        cluster.node("a:9200")
        transport = make_transport("static", [A], throw_exceptions=True)
        token = CancellationToken()
        token.cancel()

        with pytest.raises(TransportClientError) as exc_info:
            transport.request("GET", "/", cancellation=token)

        assert exc_info.value.failure is PipelineFailure.CANCELLED
        assert cluster.requests == []
