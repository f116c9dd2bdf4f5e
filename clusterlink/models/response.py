"""
请求上下文与调用结果

- RequestData: 单次逻辑调用的上下文（方法、路径、请求体、超时预算、重试上限、当前绑定节点）
- ApiCallDetails: 一次 HTTP 交换的原始结果及最终诊断信息
- TransportResponse: 返回给调用方的结果对象
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from clusterlink.core.error_utils import describe_failures, extract_server_error_reason
from clusterlink.core.exceptions import SerializationError

if TYPE_CHECKING:
    from clusterlink.config import RequestConfiguration, TransportSettings
    from clusterlink.core.exceptions import PipelineError
    from clusterlink.models.audit import AuditTrail
    from clusterlink.models.node import Node
    from clusterlink.utils.serializer import Serializer


@dataclass
class RequestData:
    """单次逻辑调用的上下文"""

    method: str
    path: str
    body: bytes | None = None
    headers: dict[str, str] = field(default_factory=dict)
    request_timeout: float = 60.0
    ping_timeout: float = 2.0
    max_retries: int | None = None
    allowed_status_codes: frozenset[int] = frozenset()
    throw_exceptions: bool = False
    disable_ping: bool = False
    disable_sniff: bool = False
    force_node: str | None = None

    # 当前尝试绑定的节点
    node: Node | None = None
    # 是否拿到了 HTTP 响应（无论状态码）
    made_it_to_response: bool = False

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        if not self.path.startswith("/"):
            self.path = f"/{self.path}"

    @property
    def uri(self) -> str:
        if self.node is None:
            raise RuntimeError("RequestData 尚未绑定节点")
        return f"{self.node.uri}{self.path}"

    @classmethod
    def create(
        cls,
        method: str,
        path: str,
        body: bytes | None,
        settings: TransportSettings,
        request_config: RequestConfiguration | None = None,
        *,
        using_ssl: bool = False,
    ) -> RequestData:
        """合并全局配置与请求级覆盖项"""
        rc = request_config
        headers = dict(settings.headers)
        if rc is not None and rc.headers:
            headers.update(rc.headers)

        request_timeout = settings.request_timeout
        if rc is not None and rc.request_timeout is not None:
            request_timeout = rc.request_timeout

        ping_timeout = settings.effective_ping_timeout(using_ssl)
        if rc is not None and rc.ping_timeout is not None:
            ping_timeout = rc.ping_timeout

        max_retries = settings.max_retries
        if rc is not None and rc.max_retries is not None:
            max_retries = rc.max_retries

        throw_exceptions = settings.throw_exceptions
        if rc is not None and rc.throw_exceptions is not None:
            throw_exceptions = rc.throw_exceptions

        return cls(
            method=method,
            path=path,
            body=body,
            headers=headers,
            request_timeout=request_timeout,
            ping_timeout=ping_timeout,
            max_retries=max_retries,
            allowed_status_codes=rc.allowed_status_codes if rc is not None else frozenset(),
            throw_exceptions=throw_exceptions,
            disable_ping=bool(rc and rc.disable_ping),
            disable_sniff=bool(rc and rc.disable_sniff),
            force_node=rc.force_node if rc is not None else None,
        )

    @classmethod
    def for_node(
        cls,
        method: str,
        path: str,
        node: Node,
        timeout: float,
        headers: dict[str, str] | None = None,
    ) -> RequestData:
        """内部请求（ping / sniff）使用的上下文，已绑定节点"""
        return cls(
            method=method,
            path=path,
            headers=dict(headers or {}),
            request_timeout=timeout,
            ping_timeout=timeout,
            node=node,
        )


@dataclass
class ApiCallDetails:
    """一次 HTTP 交换的结果"""

    http_method: str
    uri: str
    status_code: int | None = None
    response_body: bytes = b""
    response_headers: dict[str, str] = field(default_factory=dict)
    request_body: bytes | None = None
    original_exception: BaseException | None = None
    duration: float | None = None
    # 由分类器填写：2xx 或调用方允许的状态码
    success: bool = False

    # 终态诊断信息，由 Transport 在结束时填写
    audit_trail: AuditTrail | None = None
    failures: list[PipelineError] = field(default_factory=list)

    @property
    def made_it_to_response(self) -> bool:
        return self.status_code is not None

    @property
    def debug_information(self) -> str:
        status = self.status_code if self.status_code is not None else "unknown"
        verdict = "Valid" if self.success and self.original_exception is None else "Invalid"
        lines = [f"{verdict} response built from a {self.http_method} on {self.uri} (status: {status})"]
        if self.original_exception is not None:
            lines.append(f"# OriginalException: {self.original_exception!r}")
        if self.failures:
            lines.append("# Failures:")
            lines.append(describe_failures(self.failures))
        if self.audit_trail is not None:
            lines.append(self.audit_trail.describe())
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.debug_information


@dataclass
class TransportResponse:
    """返回给调用方的结果"""

    api_call: ApiCallDetails
    serializer: Serializer = field(repr=False)

    @property
    def is_valid(self) -> bool:
        return self.api_call.success and self.api_call.original_exception is None

    @property
    def status_code(self) -> int | None:
        return self.api_call.status_code

    @property
    def body(self) -> bytes:
        return self.api_call.response_body

    @property
    def node_uri(self) -> str:
        return self.api_call.uri

    @property
    def audit_trail(self) -> AuditTrail | None:
        return self.api_call.audit_trail

    @property
    def failures(self) -> list[PipelineError]:
        return self.api_call.failures

    @property
    def original_exception(self) -> BaseException | None:
        return self.api_call.original_exception

    @property
    def debug_information(self) -> str:
        return self.api_call.debug_information

    def json(self) -> Any:
        return self.serializer.loads(self.body)

    @property
    def server_error(self) -> str | None:
        """服务端已知错误的原因（非 JSON 或无错误时返回 None）"""
        if self.api_call.success or not self.body:
            return None
        try:
            return extract_server_error_reason(self.json())
        except SerializationError:
            return None
