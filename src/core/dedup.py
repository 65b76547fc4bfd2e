"""Deduplication helpers (core domain)."""

from __future__ import annotations

import asyncio
import base64
import hashlib
import logging
from typing import Awaitable, Callable, Generic, Hashable, Optional, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def avatar_hash(image: bytes) -> str:
    """Return the base64 MD5 digest used to skip redundant avatar uploads."""

    return base64.b64encode(hashlib.md5(image).digest()).decode("ascii")


class InflightTasks(Generic[T]):
    """Single-flight registry: at most one running task per key.

    A second caller for a key that is already running gets the same task
    back instead of starting a new one.
    """

    def __init__(self) -> None:
        self._tasks: dict[Hashable, asyncio.Task] = {}

    def get(self, key: Hashable) -> Optional[asyncio.Task]:
        return self._tasks.get(key)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._tasks

    def start(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> asyncio.Task:
        """Return the running task for key, creating it from factory if needed."""

        task = self._tasks.get(key)
        if task is not None:
            LOGGER.info("Joining in-flight task for %s", key)
            return task

        task = asyncio.ensure_future(factory())
        self._tasks[key] = task
        task.add_done_callback(lambda done: self._forget(key, done))
        return task

    def _forget(self, key: Hashable, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
