"""
Transport 配置

- TransportSettings: 全局配置（pydantic 校验），可由环境变量 CLUSTERLINK_* 构建
- RequestConfiguration: 单次请求级别的覆盖项
- config: 基于环境变量的默认配置实例
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from clusterlink.config.constants import DeadNodeDefaults, SniffDefaults, TimeoutDefaults

ENV_PREFIX = "CLUSTERLINK_"


def default_node_predicate(node: Any) -> bool:
    """默认节点过滤：排除仅 master 节点（不存数据、不做 ingest）"""
    return not node.master_only_node


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(ENV_PREFIX + name, str(default)).lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None:
        return default
    # 允许用 "none" 显式关闭某些可选项（如 SNIFF_LIFESPAN）
    if raw.strip().lower() in ("", "none", "null"):
        return None
    return float(raw)


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or raw.strip().lower() in ("", "none", "null"):
        return default
    return int(raw)


class TransportSettings(BaseModel):
    """Transport 全局配置"""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    # === 超时 ===
    request_timeout: float = Field(default=TimeoutDefaults.REQUEST_TIMEOUT, gt=0)
    ping_timeout: float | None = Field(default=None, gt=0)  # None 时按是否 https 选择默认值
    sniff_timeout: float = Field(default=TimeoutDefaults.SNIFF_TIMEOUT, gt=0)
    max_retry_timeout: float | None = Field(default=None, gt=0)  # None 时使用 request_timeout

    # === 重试 ===
    max_retries: int | None = Field(default=None, ge=0)  # None 时由连接池决定

    # === 死节点退避 ===
    dead_timeout: float = Field(default=DeadNodeDefaults.DEAD_TIMEOUT_SECONDS, gt=0)
    max_dead_timeout: float = Field(default=DeadNodeDefaults.MAX_DEAD_TIMEOUT_SECONDS, gt=0)
    dead_timeout_growth: float = Field(default=DeadNodeDefaults.GROWTH_FACTOR, ge=1.0)

    # === 嗅探 ===
    sniff_on_startup: bool = SniffDefaults.ON_STARTUP
    sniff_on_connection_fault: bool = SniffDefaults.ON_CONNECTION_FAULT
    sniff_lifespan: float | None = Field(default=SniffDefaults.LIFESPAN_SECONDS, gt=0)

    # === 行为开关 ===
    disable_pings: bool = False
    throw_exceptions: bool = False
    headers: dict[str, str] = Field(default_factory=dict)

    # === 回调 ===
    node_predicate: Callable[[Any], bool] = default_node_predicate
    on_request_completed: Callable[[Any], Any] | None = None
    on_request_data_created: Callable[[Any], Any] | None = None

    @model_validator(mode="after")
    def _check_dead_timeouts(self) -> TransportSettings:
        if self.max_dead_timeout < self.dead_timeout:
            raise ValueError("max_dead_timeout 不能小于 dead_timeout")
        return self

    def effective_ping_timeout(self, using_ssl: bool) -> float:
        if self.ping_timeout is not None:
            return self.ping_timeout
        return TimeoutDefaults.PING_TIMEOUT_SSL if using_ssl else TimeoutDefaults.PING_TIMEOUT

    @classmethod
    def from_env(cls, **overrides: Any) -> TransportSettings:
        """
        从环境变量构建配置

        支持的环境变量（均带 CLUSTERLINK_ 前缀）:
            REQUEST_TIMEOUT, PING_TIMEOUT, SNIFF_TIMEOUT, MAX_RETRY_TIMEOUT,
            MAX_RETRIES, DEAD_TIMEOUT, MAX_DEAD_TIMEOUT, DEAD_TIMEOUT_GROWTH,
            SNIFF_ON_STARTUP, SNIFF_ON_CONNECTION_FAULT, SNIFF_LIFESPAN,
            DISABLE_PINGS, THROW_EXCEPTIONS

        Args:
            **overrides: 显式传入的字段，优先级高于环境变量
        """
        values: dict[str, Any] = {
            "request_timeout": _env_float("REQUEST_TIMEOUT", TimeoutDefaults.REQUEST_TIMEOUT),
            "ping_timeout": _env_float("PING_TIMEOUT", None),
            "sniff_timeout": _env_float("SNIFF_TIMEOUT", TimeoutDefaults.SNIFF_TIMEOUT),
            "max_retry_timeout": _env_float("MAX_RETRY_TIMEOUT", None),
            "max_retries": _env_int("MAX_RETRIES", None),
            "dead_timeout": _env_float("DEAD_TIMEOUT", DeadNodeDefaults.DEAD_TIMEOUT_SECONDS),
            "max_dead_timeout": _env_float(
                "MAX_DEAD_TIMEOUT", DeadNodeDefaults.MAX_DEAD_TIMEOUT_SECONDS
            ),
            "dead_timeout_growth": _env_float("DEAD_TIMEOUT_GROWTH", DeadNodeDefaults.GROWTH_FACTOR),
            "sniff_on_startup": _env_bool("SNIFF_ON_STARTUP", SniffDefaults.ON_STARTUP),
            "sniff_on_connection_fault": _env_bool(
                "SNIFF_ON_CONNECTION_FAULT", SniffDefaults.ON_CONNECTION_FAULT
            ),
            "sniff_lifespan": _env_float("SNIFF_LIFESPAN", SniffDefaults.LIFESPAN_SECONDS),
            "disable_pings": _env_bool("DISABLE_PINGS", False),
            "throw_exceptions": _env_bool("THROW_EXCEPTIONS", False),
        }
        values.update(overrides)
        return cls(**values)


@dataclass(frozen=True)
class RequestConfiguration:
    """单次请求的配置覆盖（None 表示沿用 TransportSettings）"""

    request_timeout: float | None = None
    ping_timeout: float | None = None
    max_retries: int | None = None
    allowed_status_codes: frozenset[int] = frozenset()
    throw_exceptions: bool | None = None
    disable_ping: bool = False
    disable_sniff: bool = False
    force_node: str | None = None  # 直接指定节点 URI，绕过连接池
    headers: dict[str, str] | None = None

    def __post_init__(self) -> None:
        if self.max_retries is not None and self.max_retries < 0:
            raise ValueError(f"max_retries 不能为负数: {self.max_retries}")
        for name in ("request_timeout", "ping_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} 必须大于 0: {value}")


config = TransportSettings.from_env()

__all__ = [
    "RequestConfiguration",
    "TransportSettings",
    "config",
    "default_node_predicate",
]
