"""
Orchestration 模块

提供请求编排相关的组件：
- RequestPipeline: 请求管道，负责单次逻辑调用的嗅探、ping、调用和健康状态变更
- classify_call / classify_ping: 结果分类器（纯逻辑，无副作用）
- run_steps / run_steps_async: 步骤执行器，以同步或异步方式驱动管道
"""

from .classifier import AttemptOutcome, OutcomeKind, classify_call, classify_ping
from .executor import AwaitBootstrap, Exchange, Step, run_steps, run_steps_async
from .request_pipeline import RequestPipeline

__all__ = [
    "AttemptOutcome",
    "AwaitBootstrap",
    "Exchange",
    "OutcomeKind",
    "RequestPipeline",
    "Step",
    "classify_call",
    "classify_ping",
    "run_steps",
    "run_steps_async",
]
