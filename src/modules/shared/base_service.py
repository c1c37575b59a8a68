"""
Common base for the domain services (RankingService, AggregationService,
RankingQueryService).

Services read settings through ``get_config`` so tests can hand in a
stand-in config, and publish through ``emit_event``. Transactions belong to
DatabaseService and locks to LockService; a service only composes them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional, Type

from src.core.config.errors import ConfigError

if TYPE_CHECKING:
    from logging import Logger

    from src.core.config.config import Config
    from src.core.event.bus import EventBus


class BaseService:
    def __init__(
        self,
        config: Type[Config],
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config
        self._events = event_bus
        self.log = logger

    def get_config(
        self, key: str, default: Optional[Any] = None, required: bool = False
    ) -> Any:
        """
        Raises:
            ConfigError: ``required`` and the setting resolves to None
        """
        value = getattr(self._config, key, default)
        if required and value is None:
            raise ConfigError(f"Required configuration key '{key}' is missing")
        return value

    async def emit_event(self, event_type: str, data: Dict[str, Any]) -> None:
        await self._events.publish(event_type, data)

    def log_error(self, operation: str, error: Exception, **context: Any) -> None:
        self.log.error(
            f"{operation} failed: {error}",
            extra={"operation": operation, "error_type": type(error).__name__, **context},
            exc_info=(type(error), error, error.__traceback__),
        )
