"""
默认配置常量

Transport / 连接池 / 嗅探相关的默认值，均可通过 TransportSettings 或环境变量覆盖。
"""


class TimeoutDefaults:
    """请求超时默认值（秒）"""

    REQUEST_TIMEOUT = 60.0  # 单次逻辑调用的默认超时
    PING_TIMEOUT = 2.0  # 节点健康探测超时
    PING_TIMEOUT_SSL = 5.0  # https 节点的探测超时（TLS 握手更慢）
    SNIFF_TIMEOUT = 2.0  # 拓扑发现请求超时

    # 超时预算耗尽判定比例：已用时间达到预算的 98% 即不再发起新尝试
    BUDGET_MARGIN = 0.98


class DeadNodeDefaults:
    """死节点复活退避默认值"""

    DEAD_TIMEOUT_SECONDS = 60.0  # 首次标记死亡后的等待时间
    MAX_DEAD_TIMEOUT_SECONDS = 1800.0  # 退避上限（30 分钟）
    GROWTH_FACTOR = 2.0  # 每两次连续失败退避翻倍


class SniffDefaults:
    """集群拓扑嗅探默认值"""

    ON_STARTUP = True
    ON_CONNECTION_FAULT = True
    LIFESPAN_SECONDS = 3600.0  # 拓扑信息过期时间，None 表示不做过期嗅探
    PATH = "/_nodes/http,settings"

    # 单次调用内因重新嗅探而刷新节点视图的最大次数
    MAX_VIEW_REFRESHES = 100


class StatusCodeDefaults:
    """状态码分类"""

    # 需要换节点重试的服务端状态码（网关/服务不可用）
    RETRYABLE = frozenset({502, 503, 504})
    UNAUTHORIZED = 401
    # 服务端给出的已知错误区间（左闭右开），区间外的非成功状态码按坏响应处理
    KNOWN_ERROR_MIN = 400
    KNOWN_ERROR_MAX = 599
