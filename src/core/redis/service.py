"""
Shared Redis client, used only as the cross-process lock backend
(LOCK_BACKEND=redis).

A lock is a key set with ``SET NX EX`` to a random token. It expires after
LOCK_TTL_SECONDS if the holder dies, and release deletes the key only while
it still carries the holder's token, so a holder whose lease lapsed can never
delete a successor's lock. Mapping a lock timeout to a domain error is
LockService's job; this module raises plain ``TimeoutError``.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from redis.asyncio.client import Redis as AsyncRedis  # type: ignore[misc]
from redis.exceptions import RedisError

from src.core.config.config import Config
from src.core.logging.logger import get_logger

logger = get_logger(__name__)

# KEYS[1] = lock key, ARGV[1] = holder token
RELEASE_SCRIPT = """
if redis.call("GET", KEYS[1]) == ARGV[1] then
    return redis.call("DEL", KEYS[1])
end
return 0
"""


class RedisService:
    """Class-level singleton around one pooled ``redis.asyncio`` client."""

    _client: Optional[AsyncRedis] = None
    _init_lock: Optional[asyncio.Lock] = None

    @classmethod
    async def initialize(cls, url: Optional[str] = None) -> None:
        """
        Connect and PING. Idempotent.

        Raises
        ------
        RuntimeError
            If the server cannot be reached.
        """
        if cls._init_lock is None:
            cls._init_lock = asyncio.Lock()

        async with cls._init_lock:
            if cls._client is not None:
                return

            client = AsyncRedis.from_url(
                url or Config.REDIS_URL,
                password=Config.REDIS_PASSWORD,
                socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
                max_connections=Config.REDIS_MAX_CONNECTIONS,
                decode_responses=True,
                health_check_interval=30,
            )
            try:
                await client.ping()  # type: ignore[misc]
            except RedisError as exc:
                await client.aclose()
                logger.critical(
                    "Redis unreachable",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                )
                raise RuntimeError(f"Failed to initialize RedisService: {exc}") from exc

            cls._client = client
            logger.info(
                "RedisService initialized",
                extra={"max_connections": Config.REDIS_MAX_CONNECTIONS},
            )

    @classmethod
    async def shutdown(cls) -> None:
        client, cls._client = cls._client, None
        if client is not None:
            await client.aclose()
            logger.info("RedisService shut down")

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._client is not None

    @classmethod
    def client(cls) -> AsyncRedis:
        if cls._client is None:
            raise RuntimeError("RedisService.initialize() must run first")
        return cls._client

    @classmethod
    async def health_check(cls) -> bool:
        """PING; False rather than raising."""
        if cls._client is None:
            return False
        try:
            return bool(await cls._client.ping())  # type: ignore[misc]
        except RedisError as exc:
            logger.warning("Redis health check failed", extra={"error": str(exc)})
            return False

    # ========================================================================
    # Locks
    # ========================================================================

    @classmethod
    @asynccontextmanager
    async def acquire_lock(
        cls,
        key: str,
        timeout: Optional[int] = None,
        wait_timeout: Optional[float] = None,
        retry_interval: Optional[float] = None,
        operation: Optional[str] = None,
    ) -> AsyncGenerator[None, None]:
        """
        Hold ``key`` for the duration of the block.

        ``timeout`` is the lease in seconds; ``wait_timeout`` bounds how long
        to poll every ``retry_interval`` seconds. Defaults come from the
        LOCK_* settings. Redis errors while polling count as "not acquired".

        Raises
        ------
        TimeoutError
            The key stayed held for longer than ``wait_timeout``.
        """
        client = cls.client()
        ttl = Config.LOCK_TTL_SECONDS if timeout is None else timeout
        wait = Config.LOCK_WAIT_TIMEOUT_SECONDS if wait_timeout is None else wait_timeout
        interval = (
            Config.LOCK_RETRY_INTERVAL_SECONDS if retry_interval is None else retry_interval
        )

        token = uuid.uuid4().hex
        deadline = time.monotonic() + max(0.0, wait)

        while True:
            try:
                if await client.set(name=key, value=token, nx=True, ex=ttl):
                    break
            except RedisError as exc:
                logger.error(
                    "Redis lock attempt failed",
                    extra={"lock_key": key, "error": str(exc), "operation": operation},
                )
            if time.monotonic() >= deadline:
                raise TimeoutError(f"Redis lock '{key}' not acquired within {wait}s")
            await asyncio.sleep(interval)

        try:
            yield
        finally:
            await cls._release(client, key, token)

    @classmethod
    async def _release(cls, client: AsyncRedis, key: str, token: str) -> None:
        try:
            released = await client.eval(RELEASE_SCRIPT, 1, key, token)  # type: ignore[misc]
        except RedisError as exc:
            # The lease still expires on its own
            logger.warning(
                "Redis lock release failed", extra={"lock_key": key, "error": str(exc)}
            )
            return
        if not released:
            logger.warning("Redis lock lease expired before release", extra={"lock_key": key})
