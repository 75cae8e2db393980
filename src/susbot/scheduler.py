from __future__ import annotations

from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, Generic, Protocol, TypeVar

import anyio

from .logging import get_logger

logger = get_logger(__name__)

J = TypeVar("J")


class TaskGroup(Protocol):
    def start_soon(
        self, func: Callable[..., Awaitable[object]], *args: Any
    ) -> None: ...


class UserScheduler(Generic[J]):
    """Runs jobs one at a time per key, in arrival order.

    Messages from the same user share a key, so the profile read-modify-write
    of one message finishes before the next one starts. Different keys run
    concurrently.
    """

    def __init__(
        self,
        *,
        task_group: TaskGroup,
        run_job: Callable[[J], Awaitable[None]],
    ) -> None:
        self._task_group = task_group
        self._run_job = run_job
        self._lock = anyio.Lock()
        self._pending: dict[str, deque[J]] = {}
        self._active: set[str] = set()

    @property
    def active_keys(self) -> frozenset[str]:
        return frozenset(self._active)

    async def enqueue(self, key: int | str, job: J) -> None:
        key = str(key)
        async with self._lock:
            queue = self._pending.get(key)
            if queue is None:
                queue = deque()
                self._pending[key] = queue
            queue.append(job)
            if key in self._active:
                return
            self._active.add(key)
        self._task_group.start_soon(self._worker, key)

    async def pending(self, key: int | str) -> int:
        async with self._lock:
            queue = self._pending.get(str(key))
            return len(queue) if queue else 0

    async def _worker(self, key: str) -> None:
        try:
            while True:
                async with self._lock:
                    queue = self._pending.get(key)
                    if not queue:
                        self._pending.pop(key, None)
                        self._active.discard(key)
                        return
                    job = queue.popleft()

                try:
                    await self._run_job(job)
                except Exception as exc:  # noqa: BLE001
                    logger.exception(
                        "scheduler.job_failed",
                        key=key,
                        error=str(exc),
                        error_type=exc.__class__.__name__,
                    )
        finally:
            async with self._lock:
                self._active.discard(key)
