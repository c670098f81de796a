"""
节点连通性测试

对每个节点的 host:port 发起一次 TCP 连接，连接成功立即关闭并记为可达。
固定数量的 worker 从同一个队列取任务，全部完成后才返回结果。
"""

import asyncio
import logging
from itertools import chain
from typing import Awaitable, Callable, List, Optional, Sequence

from .errors import ExtractError
from .schemes import extract_endpoint

logger = logging.getLogger(__name__)

MAX_PROBE_LINES = 1000
DEFAULT_TIMEOUT = 2.0
DEFAULT_CONCURRENCY = 20

Dialer = Callable[[str, int, float], Awaitable[bool]]


async def open_tcp(host: str, port: int, timeout: float) -> bool:
    """TCP 连接测试，成功返回 True"""
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port),
            timeout=timeout
        )
    except (asyncio.TimeoutError, OSError, ValueError) as e:
        logger.debug(f"TCP connection to {host}:{port} failed: {e!r}")
        return False

    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    logger.debug(f"TCP connection to {host}:{port} succeeded.")
    return True


async def probe_async(lines: Sequence[str], timeout: float = DEFAULT_TIMEOUT,
                      concurrency: int = DEFAULT_CONCURRENCY,
                      dial: Optional[Dialer] = None) -> List[str]:
    """
    返回可以建立 TCP 连接的节点

    最多测试前 MAX_PROBE_LINES 行；无法提取 host/port 的行直接丢弃。
    返回顺序不固定。
    """
    if concurrency <= 0:
        concurrency = DEFAULT_CONCURRENCY
    # worker 数不超过待测行数
    concurrency = max(1, min(concurrency, len(lines), MAX_PROBE_LINES))
    dial = dial or open_tcp

    # maxsize=1：投递方在 worker 取走上一项之前等待
    queue: asyncio.Queue = asyncio.Queue(maxsize=1)
    # 每个 worker 写自己的槽位，汇总在全部结束后进行
    slots: List[List[str]] = [[] for _ in range(concurrency)]

    async def worker(slot: List[str]):
        while True:
            line = await queue.get()
            if line is None:
                return
            try:
                host, port = extract_endpoint(line)
            except ExtractError as e:
                logger.debug(f"Skipping probe for line: {e}")
                continue
            if await dial(host, port, timeout):
                slot.append(line)

    async def feed():
        for raw in lines[:MAX_PROBE_LINES]:
            line = raw.strip()
            if line:
                await queue.put(line)
        for _ in slots:
            await queue.put(None)

    tasks = [asyncio.ensure_future(feed())]
    tasks.extend(asyncio.ensure_future(worker(slot)) for slot in slots)
    try:
        await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()

    reachable = list(chain.from_iterable(slots))
    tested = min(len(lines), MAX_PROBE_LINES)
    logger.info(f"Probe finished: {len(reachable)}/{tested} reachable "
                f"(timeout={timeout}s, concurrency={concurrency}).")
    return reachable


def probe(lines: Sequence[str], timeout: float = DEFAULT_TIMEOUT,
          concurrency: int = DEFAULT_CONCURRENCY,
          dial: Optional[Dialer] = None) -> List[str]:
    """probe_async 的同步入口，不能在运行中的事件循环里调用"""
    return asyncio.run(probe_async(list(lines), timeout, concurrency, dial))
