"""
Service Container
=================

Purpose
-------
Build the ranking core's services once, with their shared dependencies, and
hand out the same instances for the rest of the process.

Responsibilities
----------------
- Construct LockService for the configured backend
- Construct RankingService, AggregationService, RankingQueryService and
  RankingHandlers in dependency order
- Subscribe aggregation to ``ranking.changed`` in the configured mode
- Drain deferred aggregation and unsubscribe on shutdown

Non-Responsibilities
--------------------
- Database or Redis lifecycle (DatabaseService / RedisService, see src.main)
- Business logic

Architecture Notes
------------------
All domain services share the constructor prefix (config, event_bus, logger).
Infrastructure (DatabaseService, and RedisService when LOCK_BACKEND=redis)
must be initialized before ``initialize()``.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Dict, Optional, Type

from src.core.config.config import Config
from src.core.event import RANKING_CHANGED
from src.core.event.bus import EventBus
from src.core.locking.service import LockService
from src.core.logging.logger import get_logger
from src.modules.aggregation import AggregationService
from src.modules.api import RankingHandlers
from src.modules.history import HistoryLedger
from src.modules.query import RankingQueryService
from src.modules.ranking import RankingService, RankStore

if TYPE_CHECKING:
    from logging import Logger

logger = get_logger(__name__)


class ServiceContainer:
    """
    Dependency container for the ranking core.

    Usage:
        container = ServiceContainer(Config, EventBus(), logger)
        await container.initialize()

        await container.ranking.upsert_rank("u-1", "all", "dish-9", 1)
    """

    def __init__(
        self,
        config: Type[Config],
        event_bus: EventBus,
        logger: Logger,
        aggregation_mode: Optional[str] = None,
    ) -> None:
        self._config = config
        self._event_bus = event_bus
        self._logger = logger
        self._aggregation_mode = aggregation_mode

        self._locks: Optional[LockService] = None
        self._ranking: Optional[RankingService] = None
        self._aggregation: Optional[AggregationService] = None
        self._query: Optional[RankingQueryService] = None
        self._handlers: Optional[RankingHandlers] = None
        self._listener_id: Optional[str] = None

        self._initialized = False
        self._service_init_times: Dict[str, float] = {}
        self._init_start: Optional[float] = None
        self._init_end: Optional[float] = None

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def initialize(self) -> None:
        """
        Initialize all services.

        Raises:
            ConfigValidationError: Unknown LOCK_BACKEND or AGGREGATION_MODE
            ConfigInitializationError: LOCK_BACKEND=redis without Redis
        """
        if self._initialized:
            self._logger.warning("ServiceContainer already initialized")
            return

        self._init_start = time.perf_counter()
        self._logger.info("Service container initialization starting...")

        try:
            start = time.perf_counter()
            self._locks = LockService(
                backend=self._config.LOCK_BACKEND,
                wait_timeout=self._config.LOCK_WAIT_TIMEOUT_SECONDS,
            )
            self._service_init_times["locks"] = time.perf_counter() - start

            # Stateless repositories are shared between services
            store = RankStore()
            ledger = HistoryLedger()

            self._ranking = self._create_service(
                "ranking",
                RankingService,
                lock_service=self._locks,
                store=store,
                ledger=ledger,
            )
            self._aggregation = self._create_service(
                "aggregation",
                AggregationService,
                lock_service=self._locks,
                store=store,
            )
            self._query = self._create_service(
                "query",
                RankingQueryService,
                store=store,
                ledger=ledger,
                aggregates=self._aggregation.repository,
            )
            self._handlers = RankingHandlers(self._ranking, self._query)

            self._listener_id = self._aggregation.subscribe(self._aggregation_mode)

            self._init_end = time.perf_counter()
            self._initialized = True

            self._logger.info(
                "Service container initialized",
                extra={
                    "lock_backend": self._locks.backend,
                    "aggregation_mode": self._aggregation.mode,
                    "init_duration": round(self._init_end - self._init_start, 3),
                    "service_count": len(self._service_init_times),
                },
            )

        except Exception as e:
            self._logger.critical(
                "Service container initialization failed",
                exc_info=True,
                extra={"error": str(e)},
            )
            raise

    def _create_service(self, name: str, cls: Type[Any], **dependencies: Any) -> Any:
        start = time.perf_counter()
        try:
            instance = cls(
                config=self._config,
                event_bus=self._event_bus,
                logger=get_logger(f"{cls.__module__}.{cls.__name__}"),
                **dependencies,
            )
        except Exception:
            self._logger.error(f"Failed to initialize {name}", exc_info=True)
            raise

        duration = time.perf_counter() - start
        self._service_init_times[name] = duration
        self._logger.debug(f"Initialized {name} in {duration:.3f}s")
        return instance

    async def shutdown(self) -> None:
        """Drain deferred aggregation and detach the listener."""
        if not self._initialized:
            return

        self._logger.info("Shutting down service container...")

        if self._aggregation is not None:
            drained = await self._aggregation.drain()
            if drained:
                self._logger.info(
                    "Drained deferred aggregation", extra={"recomputes": drained}
                )
        if self._listener_id is not None:
            self._event_bus.unsubscribe(RANKING_CHANGED, self._listener_id)
            self._listener_id = None

        self._initialized = False
        self._logger.info("Service container shut down")

    async def health_check(self) -> Dict[str, Any]:
        return {
            "initialized": self._initialized,
            "services": len(self._service_init_times),
            "init_duration": (
                round(self._init_end - self._init_start, 3)
                if self._init_start and self._init_end
                else None
            ),
            "listeners": self._event_bus.get_listener_count(RANKING_CHANGED),
            "background_tasks": self._event_bus.get_background_task_count(),
            "aggregation_failures": self._aggregation.failures if self._aggregation else 0,
        }

    # ========================================================================
    # Accessors
    # ========================================================================

    def _require(self, service: Optional[Any]) -> Any:
        if not self._initialized or service is None:
            raise RuntimeError("ServiceContainer not initialized. Call initialize() first.")
        return service

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def locks(self) -> LockService:
        return self._require(self._locks)

    @property
    def ranking(self) -> RankingService:
        return self._require(self._ranking)

    @property
    def aggregation(self) -> AggregationService:
        return self._require(self._aggregation)

    @property
    def query(self) -> RankingQueryService:
        return self._require(self._query)

    @property
    def handlers(self) -> RankingHandlers:
        return self._require(self._handlers)


# ============================================================================
# Process-wide instance
# ============================================================================

_container: Optional[ServiceContainer] = None


async def initialize_service_container(
    config: Type[Config] = Config,
    event_bus: Optional[EventBus] = None,
    aggregation_mode: Optional[str] = None,
) -> ServiceContainer:
    global _container
    if _container is not None:
        return _container

    container = ServiceContainer(
        config,
        event_bus or EventBus(),
        get_logger("src.core.services.container"),
        aggregation_mode=aggregation_mode,
    )
    await container.initialize()
    _container = container
    return container


def get_service_container() -> ServiceContainer:
    if _container is None:
        raise RuntimeError(
            "Service container not initialized. "
            "Call `await initialize_service_container()` first."
        )
    return _container


async def shutdown_service_container() -> None:
    global _container
    if _container is None:
        return
    container, _container = _container, None
    await container.shutdown()
