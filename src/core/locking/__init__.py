"""Per-key exclusive locking (in-process or Redis)."""

from src.core.locking.service import (
    KeyedLockRegistry,
    LockService,
    dish_lock_key,
    user_lock_key,
)

__all__ = ["LockService", "KeyedLockRegistry", "user_lock_key", "dish_lock_key"]
