"""
拓扑发现（嗅探）

- sniff_path / sniff_order: 嗅探请求的路径与节点顺序
- to_nodes: 将拓扑响应转换为 Node 列表
"""

from .parser import NodesInfoResponse, SniffParseError, parse_publish_address, to_nodes
from .sniffer import sniff_order, sniff_path

__all__ = [
    "NodesInfoResponse",
    "SniffParseError",
    "parse_publish_address",
    "sniff_order",
    "sniff_path",
    "to_nodes",
]
