"""
统一日志系统 - 基于 loguru

日志级别策略:
- DEBUG: 节点选择、健康状态变更、单次尝试的结果
- INFO:  拓扑刷新（reseed）、启动嗅探
- WARNING: 嗅探失败、请求最终失败、降级处理
- ERROR: 未预期的异常（附带堆栈）

输出策略:
- 控制台: 级别由 LOG_LEVEL 控制（默认 INFO）
- 文件: 仅在设置 LOG_DIR 时启用，保留30天，按大小轮转 (100MB)

使用方式:
    from clusterlink.core.logger import logger

    logger.info("消息")
    logger.debug("节点 {} 已标记为死亡", node.uri)
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from loguru import logger

# ============================================================================
# 环境检测
# ============================================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# 文件日志目录（未设置时不写文件，作为库被嵌入时不应擅自落盘）
LOG_DIR = os.getenv("LOG_DIR")

# 是否由本模块接管 loguru 的 sink 配置（宿主应用自行配置时可关闭）
CONFIGURE_LOGGING = os.getenv("CLUSTERLINK_CONFIGURE_LOGGING", "true").lower() == "true"

# ============================================================================
# 日志格式定义
# ============================================================================

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{message}</cyan>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"

# ============================================================================
# 日志配置
# ============================================================================


def _log_filter(record: dict) -> bool:  # type: ignore[type-arg]
    return "httpcore" not in record["name"]


if CONFIGURE_LOGGING:
    logger.remove()
    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=LOG_LEVEL,
        filter=_log_filter,  # type: ignore[arg-type]
        colorize=None,
    )

    if LOG_DIR:
        log_dir = Path(LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)

        # 注意: enqueue=False 使用同步模式，避免 multiprocessing 信号量泄漏
        file_log_config = {
            "format": FILE_FORMAT,
            "filter": _log_filter,
            "rotation": "100 MB",
            "retention": "30 days",
            "compression": "gz",
            "enqueue": False,
            "encoding": "utf-8",
            "catch": True,
        }

        logger.add(  # type: ignore[call-overload]
            log_dir / "clusterlink.log",
            level="DEBUG",
            **file_log_config,
        )

        error_log_config = file_log_config.copy()
        error_log_config["rotation"] = "50 MB"
        logger.add(  # type: ignore[call-overload]
            log_dir / "clusterlink-error.log",
            level="ERROR",
            **error_log_config,
        )

# ============================================================================
# 禁用第三方库噪音日志
# ============================================================================

logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

# ============================================================================
# 导出
# ============================================================================

__all__ = ["logger"]
