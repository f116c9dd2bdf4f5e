"""
拓扑响应解析

把 GET /_nodes/http,settings?flat_settings 的响应转换为 Node 列表。

publish_address 支持三种形式：
- host:port
- fqdn/ip:port（优先使用 fqdn）
- [ipv6]:port
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from clusterlink.core.logger import logger
from clusterlink.models.node import Node

_ADDRESS_PATTERN = re.compile(r"^(?:(?P<fqdn>[^/]+)/)?(?P<host>\[[^\]]+\]|[^:/\[\]]+):(?P<port>\d+)$")
_MAX_PORT = 65535


class SniffParseError(ValueError):
    """拓扑响应无法解析"""


class NodeHttpInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    publish_address: str | None = None
    bound_address: list[str] = Field(default_factory=list)


class NodeInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    host: str | None = None
    ip: str | None = None
    roles: list[str] | None = None
    http: NodeHttpInfo | None = None
    settings: dict[str, Any] = Field(default_factory=dict)

    def flat_setting(self, key: str) -> Any:
        if key in self.settings:
            return self.settings[key]
        # 未使用 flat_settings 时 settings 为嵌套结构
        current: Any = self.settings
        for part in key.split("."):
            if not isinstance(current, dict) or part not in current:
                return None
            current = current[part]
        return current

    def _setting_enabled(self, key: str, default: bool = True) -> bool:
        value = self.flat_setting(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() != "false"

    def has_role(self, role: str) -> bool:
        if self.roles is not None:
            return role in self.roles
        return self._setting_enabled(f"node.{role}")

    @property
    def http_enabled(self) -> bool:
        return self.http is not None and self._setting_enabled("http.enabled")


class NodesInfoResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    cluster_name: str | None = None
    nodes: dict[str, NodeInfo] = Field(default_factory=dict)


def parse_publish_address(address: str) -> tuple[str, int]:
    """
    解析 publish_address

    >>> parse_publish_address("example.com/10.0.0.1:9200")
    ('example.com', 9200)
    >>> parse_publish_address("[::1]:9200")
    ('[::1]', 9200)

    Raises:
        SniffParseError: 地址格式无法识别或端口越界
    """
    match = _ADDRESS_PATTERN.match(address.strip())
    if match is None:
        raise SniffParseError(f"无法解析 publish_address: {address!r}")
    host = match.group("fqdn") or match.group("host")
    port = int(match.group("port"))
    if not 0 < port <= _MAX_PORT:
        raise SniffParseError(f"publish_address 端口越界: {address!r}")
    return host, port


def to_nodes(
    payload: Any,
    *,
    using_ssl: bool = False,
    node_predicate: Callable[[Node], bool] | None = None,
) -> list[Node]:
    """
    将拓扑响应转换为 Node 列表

    Args:
        payload: 反序列化后的响应
        using_ssl: 为 True 时生成 https 地址
        node_predicate: 节点过滤条件，返回 False 的节点被丢弃

    Raises:
        SniffParseError: 响应结构不合法
    """
    try:
        response = NodesInfoResponse.model_validate(payload)
    except ValidationError as e:
        raise SniffParseError(f"拓扑响应结构不合法: {e.error_count()} 个错误") from e

    scheme = "https" if using_ssl else "http"
    nodes: list[Node] = []
    for node_id, info in response.nodes.items():
        if not info.http_enabled or info.http is None or not info.http.publish_address:
            logger.debug("跳过未开启 HTTP 的节点: {}", info.name or node_id)
            continue

        host, port = parse_publish_address(info.http.publish_address)
        node = Node(
            uri=f"{scheme}://{host}:{port}",
            id=node_id,
            name=info.name,
            master_eligible=info.has_role("master"),
            holds_data=info.has_role("data"),
            ingest_enabled=info.has_role("ingest"),
            http_enabled=True,
            settings=dict(info.settings),
        )
        if node_predicate is not None and not node_predicate(node):
            logger.debug("节点 {} 被过滤条件排除", node.uri)
            continue
        nodes.append(node)

    return nodes


__all__ = [
    "NodeHttpInfo",
    "NodeInfo",
    "NodesInfoResponse",
    "SniffParseError",
    "parse_publish_address",
    "to_nodes",
]
