"""
In-flight fetch registry.

Maps a spell ID to the single task currently fetching it so concurrent
lookups share one upstream call.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Hashable, Optional, Tuple, TypeVar

T = TypeVar("T")


class InFlightRegistry:
    """Registry of shared pending fetches, keyed by identifier.

    ``join_or_start`` looks up and registers without an ``await`` in between,
    so under one event loop no two callers can both miss the lookup and start
    duplicate fetches. Entries are removed in the fetch task's ``finally``
    block: success, failure and cancellation all release the key.
    """

    def __init__(self):
        self._tasks: Dict[Hashable, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._tasks

    def get(self, key: Hashable) -> Optional[asyncio.Task]:
        return self._tasks.get(key)

    def join_or_start(
        self,
        key: Hashable,
        factory: Callable[[], Awaitable[T]],
    ) -> Tuple[asyncio.Task, bool]:
        """Return the in-flight task for ``key``, starting one if needed.

        The boolean is True when this call started the task.
        """
        task = self._tasks.get(key)
        if task is not None:
            return task, False

        async def _run() -> T:
            try:
                return await factory()
            finally:
                if self._tasks.get(key) is task:
                    del self._tasks[key]

        task = asyncio.get_running_loop().create_task(_run(), name=f"fetch:{key}")
        self._tasks[key] = task
        task.add_done_callback(_consume_exception)
        return task, True

    async def wait_all(self) -> None:
        """Wait for every in-flight fetch to settle."""
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)


def _consume_exception(task: asyncio.Task) -> None:
    # Marks the exception as retrieved when no caller awaited the task.
    if not task.cancelled():
        task.exception()
