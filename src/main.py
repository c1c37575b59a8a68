"""
Ranking Core - Application Entry Point
======================================

Bootstrap
---------
- Config validation
- Database initialization and schema creation
- Redis initialization (LOCK_BACKEND=redis only)
- Event bus + service container
- Health report
- Graceful shutdown on SIGINT / SIGTERM

The core has no transport of its own; a host process (HTTP server, worker)
embeds it through ``startup()`` / ``shutdown()`` and the container's
``handlers``. Running this module keeps the core up until signalled, which is
how deployments smoke-test a configuration.
"""

import asyncio
import signal
import sys
from typing import Optional

from src.core.config.config import Config
from src.core.database.service import DatabaseService
from src.core.event.bus import EventBus
from src.core.logging.logger import get_logger, shutdown_logging
from src.core.redis.service import RedisService
from src.core.services.container import (
    ServiceContainer,
    initialize_service_container,
    shutdown_service_container,
)

logger = get_logger(__name__)


# ============================================================================
# Application Bootstrap
# ============================================================================

async def startup() -> ServiceContainer:
    """Initialize all infrastructure components and the service container."""
    logger.info("========== RANKING CORE INITIALIZATION START ==========")

    # Step 1: Validate configuration early
    try:
        Config.validate()
        logger.info("✓ Configuration validated", extra=Config.get_config_summary())
    except Exception as exc:
        logger.critical(f"Configuration validation failed: {exc}")
        raise

    # Step 2: Initialize database service and schema
    try:
        await DatabaseService.initialize()
        await DatabaseService.create_all()
        logger.info("✓ Database service initialized")
    except Exception as exc:
        logger.critical(f"Database initialization failed: {exc}", exc_info=True)
        raise

    # Step 3: Redis, only when it backs the locks
    if Config.LOCK_BACKEND == "redis":
        try:
            await RedisService.initialize()
            logger.info("✓ Redis service initialized")
        except Exception as exc:
            logger.critical(f"Redis initialization failed: {exc}", exc_info=True)
            raise

    # Step 4: Event bus and service container
    try:
        container = await initialize_service_container(Config, EventBus())
        logger.info("✓ Service container initialized")
    except Exception as exc:
        logger.critical(f"Service container initialization failed: {exc}", exc_info=True)
        raise

    health = {
        "database": await DatabaseService.health_check(),
        "redis": await RedisService.health_check() if RedisService.is_initialized() else None,
        **(await container.health_check()),
    }
    logger.info("========== INFRASTRUCTURE INITIALIZED SUCCESSFULLY ==========", extra=health)
    return container


# ============================================================================
# Application Shutdown
# ============================================================================

async def shutdown() -> None:
    """Gracefully shut down the container and infrastructure services."""
    logger.info("========== RANKING CORE SHUTDOWN START ==========")

    # Step 1: Drain deferred aggregation, detach listeners
    try:
        await shutdown_service_container()
        logger.info("✓ Service container shut down")
    except Exception as exc:
        logger.error(f"Service container shutdown error: {exc}", exc_info=True)

    # Step 2: Redis
    try:
        await RedisService.shutdown()
    except Exception as exc:
        logger.error(f"Redis service shutdown error: {exc}", exc_info=True)

    # Step 3: Database
    try:
        await DatabaseService.shutdown()
        logger.info("✓ Database service shut down")
    except Exception as exc:
        logger.error(f"Database service shutdown error: {exc}", exc_info=True)

    logger.info("========== SHUTDOWN COMPLETE ==========")


# ============================================================================
# Application Entrypoint
# ============================================================================

async def main(stop_event: Optional[asyncio.Event] = None) -> None:
    """
    Lifecycle:
        1. Validate configuration
        2. Initialize infrastructure (DB, Redis, EventBus, services)
        3. Wait for a stop signal
        4. Shut down gracefully
    """
    stop_event = stop_event or asyncio.Event()
    _install_signal_handlers(asyncio.get_running_loop(), stop_event)

    try:
        await startup()
        logger.info("Ranking core running; waiting for stop signal")
        await stop_event.wait()

    except asyncio.CancelledError:
        logger.warning("Asyncio task cancellation received; shutting down gracefully.")
        raise

    except Exception as exc:
        logger.critical(f"Fatal startup error: {exc}", exc_info=True)
        sys.exit(1)

    finally:
        await shutdown()


# ============================================================================
# Process Startup
# ============================================================================

def _install_signal_handlers(loop: asyncio.AbstractEventLoop, stop_event: asyncio.Event) -> None:
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            logger.debug(f"{sig.name} handler not supported on this platform")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Ranking core manually stopped via keyboard interrupt.")
    finally:
        shutdown_logging()
