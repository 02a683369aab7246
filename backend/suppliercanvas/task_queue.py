import asyncio
import inspect
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Set, Tuple, TypeVar

from .errors import QueueTaskError


logger = logging.getLogger("uvicorn.error")

T = TypeVar("T")

DEFAULT_MAX_CONCURRENCY = 2


class BoundedTaskQueue:
    """
    Очередь с ограничением параллелизма: одновременно выполняется не больше max_concurrency задач,
    остальные ждут в порядке поступления (FIFO).

    Ошибка задачи доходит только до того, кто её поставил через add(); соседние задачи продолжают работу,
    а очередь продолжает разбираться. Отмены, приоритетов и таймаутов нет.
    """

    def __init__(self, max_concurrency: int = DEFAULT_MAX_CONCURRENCY) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.max_concurrency = max_concurrency
        self._pending: Deque[Tuple[Callable[[], Awaitable[Any]], asyncio.Future]] = deque()
        self._active = 0
        # Держим ссылки на запущенные задачи, иначе их может собрать GC.
        self._running: Set[asyncio.Task] = set()

    async def add(self, fn: Callable[[], Awaitable[T]]) -> T:
        loop = asyncio.get_running_loop()
        fut: asyncio.Future = loop.create_future()
        self._pending.append((fn, fut))
        self._drain()
        return await fut

    def stats(self) -> dict:
        return {
            "active": self._active,
            "queued": len(self._pending),
            "max_concurrency": self.max_concurrency,
        }

    def _drain(self) -> None:
        while self._active < self.max_concurrency and self._pending:
            fn, fut = self._pending.popleft()
            self._active += 1
            task = asyncio.ensure_future(self._run(fn, fut))
            self._running.add(task)
            task.add_done_callback(self._running.discard)

    async def _run(self, fn: Callable[[], Awaitable[Any]], fut: asyncio.Future) -> None:
        try:
            aw = fn()
            if not inspect.isawaitable(aw):
                raise QueueTaskError(f"queued callable returned {type(aw).__name__}, expected an awaitable")
            result = await aw
        except asyncio.CancelledError:
            if not fut.done():
                fut.cancel()
            raise
        except Exception as e:
            logger.error("queue: task failed: %s: %s", type(e).__name__, e)
            if not fut.done():
                fut.set_exception(e)
        else:
            if not fut.done():
                fut.set_result(result)
        finally:
            self._active -= 1
            self._drain()
