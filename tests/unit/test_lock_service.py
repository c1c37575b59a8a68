"""
Unit tests for LockService.

Memory backend runs real asyncio locks; the Redis backend runs against a
mocked client so the SET NX / Lua release protocol can be checked without a
server.
"""

import asyncio

import pytest

from src.core.config.config import Config
from src.core.config.errors import ConfigInitializationError, ConfigValidationError
from src.core.locking.service import LockService, dish_lock_key, user_lock_key
from src.core.redis.service import RedisService
from src.modules.shared.exceptions import ConcurrentMutationConflictError


@pytest.mark.unit
class TestLockKeys:
    def test_user_and_dish_key_spaces_are_distinct(self):
        assert user_lock_key("all", "x") == "rank:user:all:x"
        assert dish_lock_key("all", "x") == "rank:dish:all:x"


@pytest.mark.unit
class TestMemoryBackend:
    async def test_same_key_is_serialized(self):
        locks = LockService(backend="memory", wait_timeout=1.0)
        active = 0
        peak = 0

        async def critical_section():
            nonlocal active, peak
            async with locks.acquire("k"):
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1

        await asyncio.gather(*(critical_section() for _ in range(5)))

        assert peak == 1

    async def test_different_keys_run_in_parallel(self):
        locks = LockService(backend="memory", wait_timeout=1.0)
        both_inside = asyncio.Event()
        inside = 0

        async def critical_section(key):
            nonlocal inside
            async with locks.acquire(key):
                inside += 1
                if inside == 2:
                    both_inside.set()
                await asyncio.wait_for(both_inside.wait(), timeout=1.0)

        await asyncio.gather(critical_section("a"), critical_section("b"))

        assert both_inside.is_set()

    async def test_wait_timeout_raises_conflict(self):
        locks = LockService(backend="memory", wait_timeout=0.05)

        async with locks.acquire("rank:user:all:u1"):
            with pytest.raises(ConcurrentMutationConflictError) as exc_info:
                async with locks.acquire("rank:user:all:u1"):
                    pass

        assert exc_info.value.lock_key == "rank:user:all:u1"
        assert exc_info.value.is_retryable
        assert exc_info.value.waited_seconds >= 0.04

    async def test_idle_keys_are_released(self):
        locks = LockService(backend="memory", wait_timeout=1.0)

        async with locks.acquire("k"):
            assert len(locks.registry) == 1
            assert locks.registry.is_locked("k")

        assert len(locks.registry) == 0

    async def test_error_inside_block_releases_lock(self):
        locks = LockService(backend="memory", wait_timeout=0.1)

        with pytest.raises(RuntimeError):
            async with locks.acquire("k"):
                raise RuntimeError("boom")

        async with locks.acquire("k"):
            pass
        assert len(locks.registry) == 0

    async def test_timeout_inside_block_is_not_a_conflict(self):
        locks = LockService(backend="memory", wait_timeout=1.0)

        with pytest.raises(TimeoutError):
            async with locks.acquire("k"):
                raise TimeoutError("downstream")


@pytest.mark.unit
class TestBackendSelection:
    def test_unknown_backend_is_rejected(self):
        with pytest.raises(ConfigValidationError):
            LockService(backend="zookeeper")

    def test_redis_backend_requires_redis(self, mocker):
        mocker.patch.object(RedisService, "is_initialized", return_value=False)

        with pytest.raises(ConfigInitializationError):
            LockService(backend="redis")


@pytest.mark.unit
class TestRedisBackend:
    @pytest.fixture
    def redis_client(self, mocker, monkeypatch):
        monkeypatch.setattr(Config, "LOCK_RETRY_INTERVAL_SECONDS", 0.01)
        monkeypatch.setattr(Config, "LOCK_TTL_SECONDS", 10)
        client = mocker.MagicMock()
        client.set = mocker.AsyncMock(return_value=True)
        client.eval = mocker.AsyncMock(return_value=1)
        mocker.patch.object(RedisService, "is_initialized", return_value=True)
        mocker.patch.object(RedisService, "client", return_value=client)
        return client

    async def test_acquire_sets_token_and_releases_with_script(self, redis_client):
        locks = LockService(backend="redis", wait_timeout=0.5)

        async with locks.acquire("rank:dish:all:d1"):
            redis_client.eval.assert_not_called()

        set_kwargs = redis_client.set.await_args.kwargs
        assert set_kwargs["name"] == "rank:dish:all:d1"
        assert set_kwargs["nx"] is True
        assert set_kwargs["ex"] == 10

        script, numkeys, key, token = redis_client.eval.await_args.args
        assert numkeys == 1
        assert key == "rank:dish:all:d1"
        assert token == set_kwargs["value"]

    async def test_held_key_times_out_as_conflict(self, redis_client):
        redis_client.set.return_value = None
        locks = LockService(backend="redis", wait_timeout=0.05)

        with pytest.raises(ConcurrentMutationConflictError):
            async with locks.acquire("rank:user:all:u1"):
                pass

        assert redis_client.set.await_count >= 2
        redis_client.eval.assert_not_called()
