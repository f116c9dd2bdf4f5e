"""
步骤执行器

重试逻辑只写一次：RequestPipeline / Transport 的方法都是生成器，
遇到 I/O 时 yield 一个 Step，由执行器负责真正执行并把结果 send 回去。

- run_steps: 阻塞执行（同步调用方）
- run_steps_async: 挂起执行（异步调用方）

Step 执行中抛出的异常会通过 gen.throw 抛回生成器，由生成器决定如何处理；
无论以何种方式结束，生成器都会被 close，保证其中的 finally / with 块被执行。
"""

from __future__ import annotations

import asyncio
import concurrent.futures
from collections.abc import Generator
from dataclasses import dataclass
from typing import Any, TypeVar

from clusterlink.clients.base import Connection
from clusterlink.models.response import ApiCallDetails, RequestData

T = TypeVar("T")

StepGenerator = Generator["Step", Any, T]


class Step:
    """一个需要执行器完成的 I/O 步骤"""

    def run(self, connection: Connection) -> Any:
        raise NotImplementedError

    async def run_async(self, connection: Connection) -> Any:
        raise NotImplementedError


@dataclass
class Exchange(Step):
    """通过 Connection 执行一次 HTTP 交换"""

    request_data: RequestData

    def run(self, connection: Connection) -> ApiCallDetails:
        return connection.request(self.request_data)

    async def run_async(self, connection: Connection) -> ApiCallDetails:
        return await connection.request_async(self.request_data)


@dataclass
class AwaitBootstrap(Step):
    """
    等待其他调用方完成启动嗅探

    超时返回 False，调用方继续使用当前拓扑。
    """

    token: concurrent.futures.Future
    timeout: float

    def run(self, connection: Connection) -> bool:
        try:
            self.token.result(timeout=self.timeout)
        except concurrent.futures.TimeoutError:
            return False
        return True

    async def run_async(self, connection: Connection) -> bool:
        # shield: 当前协程超时不应取消共享的令牌
        waiter = asyncio.shield(asyncio.wrap_future(self.token))
        try:
            await asyncio.wait_for(waiter, timeout=self.timeout)
        except asyncio.TimeoutError:
            return False
        return True


def run_steps(gen: StepGenerator[T], connection: Connection) -> T:
    """阻塞驱动步骤生成器直到其返回"""
    value: Any = None
    error: Exception | None = None
    try:
        while True:
            try:
                step = gen.throw(error) if error is not None else gen.send(value)
            except StopIteration as stop:
                return stop.value
            value, error = None, None
            try:
                value = step.run(connection)
            except Exception as e:
                error = e
    finally:
        gen.close()


async def run_steps_async(gen: StepGenerator[T], connection: Connection) -> T:
    """挂起驱动步骤生成器直到其返回"""
    value: Any = None
    error: Exception | None = None
    try:
        while True:
            try:
                step = gen.throw(error) if error is not None else gen.send(value)
            except StopIteration as stop:
                return stop.value
            value, error = None, None
            try:
                value = await step.run_async(connection)
            except Exception as e:
                error = e
    finally:
        gen.close()


__all__ = [
    "AwaitBootstrap",
    "Exchange",
    "Step",
    "StepGenerator",
    "run_steps",
    "run_steps_async",
]
