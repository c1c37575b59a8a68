"""
Redis infrastructure for the ranking core.

Exports
-------
RedisService - singleton async client with token-safe distributed locks,
used by LockService when LOCK_BACKEND=redis.
"""

from __future__ import annotations

from src.core.redis.service import RedisService

__all__ = ["RedisService"]
