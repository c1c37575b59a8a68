"""
LockService: per-key exclusive locks for ranking mutations and aggregation

Purpose
-------
Serialize work on one logical key (a user's ranking list in a scope, or one
dish's aggregate in a scope) while letting unrelated keys proceed in parallel.

Backends
--------
- ``memory``: a registry of ``asyncio.Lock`` objects keyed by lock key,
  reference counted so idle keys are dropped. Correct for a single process.
- ``redis``: ``RedisService.acquire_lock`` (SET NX + token + Lua release),
  for several processes sharing one database.

Both backends bound the wait by LOCK_WAIT_TIMEOUT_SECONDS and raise the
retryable ``ConcurrentMutationConflictError`` when it runs out.

Key Spaces
----------
- ``rank:user:{scope}:{user_id}``  user ranking lists
- ``rank:dish:{scope}:{dish_id}``  dish aggregates
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, Dict, Optional

from src.core.config.config import LOCK_BACKENDS, Config
from src.core.config.errors import ConfigInitializationError, ConfigValidationError
from src.core.logging.logger import get_logger
from src.core.redis.service import RedisService
from src.modules.shared.exceptions import ConcurrentMutationConflictError

logger = get_logger(__name__)


def user_lock_key(scope: str, user_id: str) -> str:
    return f"rank:user:{scope}:{user_id}"


def dish_lock_key(scope: str, dish_id: str) -> str:
    return f"rank:dish:{scope}:{dish_id}"


@dataclass
class _LockEntry:
    lock: asyncio.Lock
    refs: int = 0


class KeyedLockRegistry:
    """
    In-process registry of asyncio locks keyed by string.

    An entry lives only while at least one task holds or waits on it.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, _LockEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def is_locked(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    @asynccontextmanager
    async def hold(self, key: str, wait_timeout: float) -> AsyncGenerator[None, None]:
        """
        Hold the lock for ``key``.

        Raises
        ------
        TimeoutError
            If the lock is not acquired within ``wait_timeout`` seconds.
        """
        entry = self._entries.get(key)
        if entry is None:
            entry = _LockEntry(lock=asyncio.Lock())
            self._entries[key] = entry
        entry.refs += 1

        try:
            try:
                await asyncio.wait_for(entry.lock.acquire(), timeout=wait_timeout)
            except asyncio.TimeoutError as exc:
                raise TimeoutError(
                    f"Failed to acquire lock '{key}' within {wait_timeout}s"
                ) from exc

            try:
                yield
            finally:
                entry.lock.release()
        finally:
            entry.refs -= 1
            if entry.refs == 0 and self._entries.get(key) is entry:
                del self._entries[key]


class LockService:
    """
    Backend-agnostic exclusive lock per key.

    Usage
    -----
    >>> async with lock_service.acquire(user_lock_key(scope, user_id)):
    >>>     ...  # mutate the user's rankings
    """

    def __init__(
        self,
        backend: Optional[str] = None,
        wait_timeout: Optional[float] = None,
    ) -> None:
        backend = backend or Config.LOCK_BACKEND
        if backend not in LOCK_BACKENDS:
            raise ConfigValidationError(
                f"Unknown lock backend '{backend}' (expected one of {LOCK_BACKENDS})"
            )
        if backend == "redis" and not RedisService.is_initialized():
            raise ConfigInitializationError(
                "LOCK_BACKEND=redis requires RedisService.initialize() first"
            )

        self.backend = backend
        self.wait_timeout = (
            Config.LOCK_WAIT_TIMEOUT_SECONDS if wait_timeout is None else wait_timeout
        )
        self._registry = KeyedLockRegistry()

    @property
    def registry(self) -> KeyedLockRegistry:
        return self._registry

    @asynccontextmanager
    async def acquire(
        self, key: str, operation: Optional[str] = None
    ) -> AsyncGenerator[None, None]:
        """
        Hold the exclusive lock for ``key`` for the duration of the block.

        Raises
        ------
        ConcurrentMutationConflictError
            If the lock could not be acquired within the wait timeout.
        """
        start = time.monotonic()

        if self.backend == "redis":
            holder = RedisService.acquire_lock(
                key,
                timeout=Config.LOCK_TTL_SECONDS,
                wait_timeout=self.wait_timeout,
                retry_interval=Config.LOCK_RETRY_INTERVAL_SECONDS,
                operation=operation,
            )
        else:
            holder = self._registry.hold(key, self.wait_timeout)

        acquired = False
        try:
            async with holder:
                acquired = True
                logger.debug(
                    "Lock acquired",
                    extra={
                        "lock_key": key,
                        "backend": self.backend,
                        "wait_ms": round((time.monotonic() - start) * 1000, 2),
                    },
                )
                yield
        except TimeoutError as exc:
            if acquired:
                raise
            waited = time.monotonic() - start
            logger.warning(
                "Lock wait timed out",
                extra={
                    "lock_key": key,
                    "backend": self.backend,
                    "waited_seconds": round(waited, 3),
                    "operation": operation or "lock",
                },
            )
            raise ConcurrentMutationConflictError(
                lock_key=key, waited_seconds=waited
            ) from exc
