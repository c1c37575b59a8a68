"""
Configuration subsystem for the ranking core (2025).

Static configuration is loaded from environment variables (with .env
support) at import time and exposed through the ``Config`` class.

Usage
-----
```python
from src.core.config import Config

db_url = Config.DATABASE_URL
if Config.AGGREGATION_MODE == "deferred":
    ...
```
"""

from src.core.config.config import AGGREGATION_MODES, LOCK_BACKENDS, Config
from src.core.config.errors import (
    ConfigError,
    ConfigInitializationError,
    ConfigValidationError,
)

__all__ = [
    "Config",
    "LOCK_BACKENDS",
    "AGGREGATION_MODES",
    "ConfigError",
    "ConfigValidationError",
    "ConfigInitializationError",
]
