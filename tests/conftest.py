"""
测试公共夹具

- clock: 手动推进的时钟
- cluster: 基于 httpx.MockTransport 的虚拟集群，按 host:port 路由，可为每个节点编排
  ping / 调用 / 嗅探的行为
- make_transport: 组装 Transport（虚拟集群 + 指定连接池 + 手动时钟）
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest

from clusterlink.clients.http_connection import HttpConnection
from clusterlink.config import TransportSettings
from clusterlink.core.clock import ManualClock
from clusterlink.services.pool import SingleNodePool, SniffingNodePool, StaticNodePool
from clusterlink.services.transport import Transport

# 行为：状态码 / "fail"（连接失败）/ dict（200 + JSON）/ 可调用对象（自定义响应）
Behavior = Any

FAIL = "fail"


@dataclass
class NodeBehavior:
    ping: Behavior = 200
    call: Behavior = 200
    sniff: Behavior = FAIL
    calls: int = 0
    pings: int = 0
    sniffs: int = 0


@dataclass
class VirtualCluster:
    nodes: dict[str, NodeBehavior] = field(default_factory=dict)
    requests: list[tuple[str, str, str]] = field(default_factory=list)

    def node(self, address: str, **behavior: Any) -> NodeBehavior:
        """注册节点，address 形如 a:9200"""
        self.nodes[address] = NodeBehavior(**behavior)
        return self.nodes[address]

    def handler(self, request: httpx.Request) -> httpx.Response:
        address = f"{request.url.host}:{request.url.port}"
        self.requests.append((request.method, address, request.url.path))

        behavior = self.nodes.get(address)
        if behavior is None:
            raise httpx.ConnectError(f"unknown node {address}", request=request)

        if request.method == "HEAD" and request.url.path == "/":
            behavior.pings += 1
            return self._respond(request, behavior.ping)
        if request.url.path.startswith("/_nodes"):
            behavior.sniffs += 1
            return self._respond(request, behavior.sniff)
        behavior.calls += 1
        return self._respond(request, behavior.call)

    @staticmethod
    def _respond(request: httpx.Request, behavior: Behavior) -> httpx.Response:
        if callable(behavior):
            return behavior(request)
        if behavior == FAIL:
            raise httpx.ConnectError("connection refused", request=request)
        if isinstance(behavior, dict):
            return httpx.Response(200, json=behavior)
        return httpx.Response(behavior, json={"status": behavior})

    def attempted(self, method: str | None = None) -> list[str]:
        """按顺序返回收到请求的节点地址（可按方法过滤）"""
        return [address for m, address, _ in self.requests if method is None or m == method]

    def calls(self) -> list[str]:
        return [address for m, address, path in self.requests if m != "HEAD" and not path.startswith("/_nodes")]


def nodes_info(*nodes: dict[str, Any]) -> dict[str, Any]:
    """
    构建 /_nodes/http,settings 响应

    每个节点形如 {"address": "a:9200", "roles": [...], "settings": {...}}
    """
    payload: dict[str, Any] = {"cluster_name": "virtual", "nodes": {}}
    for index, spec in enumerate(nodes):
        info: dict[str, Any] = {
            "name": spec.get("name", f"node-{index}"),
            "settings": spec.get("settings", {}),
        }
        if "roles" in spec:
            info["roles"] = spec["roles"]
        if spec.get("http", True):
            info["http"] = {"publish_address": spec["address"]}
        payload["nodes"][spec.get("id", f"id-{index}")] = info
    return payload


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def cluster() -> VirtualCluster:
    return VirtualCluster()


@pytest.fixture
def connection(cluster: VirtualCluster) -> HttpConnection:
    mock = httpx.MockTransport(cluster.handler)
    return HttpConnection(transport=mock, async_transport=mock)


@pytest.fixture
def make_transport(
    connection: HttpConnection, clock: ManualClock
) -> Callable[..., Transport]:
    pools = {
        "single": lambda uris, settings: SingleNodePool(uris[0], settings=settings, clock=clock),
        "static": lambda uris, settings: StaticNodePool(uris, settings=settings, clock=clock),
        "sniffing": lambda uris, settings: SniffingNodePool(uris, settings=settings, clock=clock),
    }

    def _make(strategy: str, uris: list[str], **overrides: Any) -> Transport:
        values: dict[str, Any] = {"sniff_on_startup": False, "sniff_lifespan": None}
        values.update(overrides)
        settings = TransportSettings(**values)
        pool = pools[strategy](uris, settings)
        return Transport(settings, pool=pool, connection=connection, clock=clock)

    return _make


@pytest.fixture
def topology() -> Callable[..., dict[str, Any]]:
    return nodes_info
