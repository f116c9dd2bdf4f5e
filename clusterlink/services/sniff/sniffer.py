"""
嗅探请求构建与节点排序

嗅探本身的 I/O 由 RequestPipeline 以步骤的形式执行，这里只负责纯逻辑部分。
"""

from __future__ import annotations

from collections.abc import Iterable

from clusterlink.config.constants import SniffDefaults
from clusterlink.models.node import Node


def _format_timeout(seconds: float) -> str:
    millis = max(int(round(seconds * 1000)), 1)
    if millis % 1000 == 0:
        return f"{millis // 1000}s"
    return f"{millis}ms"


def sniff_path(sniff_timeout: float) -> str:
    """
    >>> sniff_path(2.0)
    '/_nodes/http,settings?flat_settings&timeout=2s'
    """
    return f"{SniffDefaults.PATH}?flat_settings&timeout={_format_timeout(sniff_timeout)}"


def sniff_order(nodes: Iterable[Node]) -> list[Node]:
    """master 候选节点优先，其余节点其次，组内按端口排序"""
    return sorted(nodes, key=lambda n: (not n.master_eligible, n.port or 0))


__all__ = ["sniff_order", "sniff_path"]
