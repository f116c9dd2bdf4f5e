"""
审计链路

记录一次逻辑调用中发生的所有事件（嗅探、ping、调用、健康状态变更、取消），
只用于诊断，不参与控制流。调用结束后链路被封存为只读。
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from clusterlink.models.node import Node


class AuditEvent(str, Enum):
    """审计事件类型"""

    SNIFF_ON_STARTUP = "sniff_on_startup"
    SNIFF_ON_FAIL = "sniff_on_fail"
    SNIFF_ON_STALE_CLUSTER = "sniff_on_stale_cluster"
    SNIFF_SUCCESS = "sniff_success"
    SNIFF_FAILURE = "sniff_failure"

    PING_SUCCESS = "ping_success"
    PING_FAILURE = "ping_failure"

    RESURRECTION = "resurrection"
    ALL_NODES_DEAD = "all_nodes_dead"

    HEALTHY_RESPONSE = "healthy_response"
    BAD_RESPONSE = "bad_response"
    BAD_REQUEST = "bad_request"

    MARKED_DEAD = "marked_dead"
    MARKED_ALIVE = "marked_alive"

    MAX_TIMEOUT_REACHED = "max_timeout_reached"
    MAX_RETRIES_REACHED = "max_retries_reached"
    FAILED_OVER_ALL_NODES = "failed_over_all_nodes"
    NO_NODES_ATTEMPTED = "no_nodes_attempted"
    CANCELLATION_REQUESTED = "cancellation_requested"


# 调用层面的失败/成功事件（不含 ping、嗅探和健康状态变更）
CALL_FAILURE_EVENTS = frozenset({AuditEvent.BAD_RESPONSE})
CALL_SUCCESS_EVENTS = frozenset({AuditEvent.HEALTHY_RESPONSE, AuditEvent.BAD_REQUEST})


@dataclass
class Audit:
    event: AuditEvent
    started: float
    node: Node | None = None
    ended: float | None = None
    path: str | None = None
    exception: BaseException | None = None

    def __str__(self) -> str:
        took = ""
        if self.ended is not None:
            took = f" took: {self.ended - self.started:.3f}s"
        node = f" Node: {self.node.uri}" if self.node is not None else ""
        exception = f" Exception: {self.exception!r}" if self.exception is not None else ""
        return f"[{self.event.value}]{node}{took}{exception}"


class AuditTrail:
    """只追加的审计链路"""

    def __init__(self) -> None:
        self._audits: list[Audit] = []
        self._sealed = False

    def append(self, audit: Audit) -> Audit:
        if self._sealed:
            raise RuntimeError("审计链路已封存，不能再追加事件")
        self._audits.append(audit)
        return audit

    def seal(self) -> None:
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def events(self) -> list[AuditEvent]:
        return [audit.event for audit in self._audits]

    def of(self, *events: AuditEvent) -> list[Audit]:
        """按事件类型过滤"""
        wanted = set(events)
        return [audit for audit in self._audits if audit.event in wanted]

    def describe(self) -> str:
        lines = ["# Audit trail of this API call:"]
        for index, audit in enumerate(self._audits, start=1):
            lines.append(f" - [{index}] {audit}")
        return "\n".join(lines)

    def __iter__(self) -> Iterator[Audit]:
        return iter(tuple(self._audits))

    def __len__(self) -> int:
        return len(self._audits)

    def __getitem__(self, index: int | slice) -> Audit | list[Audit]:
        return self._audits[index]

    def __repr__(self) -> str:
        return f"AuditTrail({[e.value for e in self.events]})"
