"""
EventScheduler: tiered listener execution for the EventBus.

- CRITICAL, HIGH: one after another, awaited, each bounded by its tier timeout
- NORMAL: concurrently via ``asyncio.gather``, awaited
- LOW: background tasks; only ``drain()`` waits for them

A failing or timed-out listener is logged through ``handle_listener_error``
and contributes ``None`` to the results.
"""

from __future__ import annotations

import asyncio
import inspect
from logging import Logger
from typing import Any, Optional

from src.core.event.errors import handle_listener_error
from src.core.event.types import EventListener, EventPayload, ListenerPriority

SEQUENTIAL_TIERS = (ListenerPriority.CRITICAL, ListenerPriority.HIGH)


class EventScheduler:
    def __init__(self) -> None:
        # Held here so the loop's weak references don't let them be collected
        self._background_tasks: set[asyncio.Task[Any]] = set()

    async def execute(
        self,
        *,
        event_name: str,
        payload: EventPayload,
        listeners: list[EventListener],
        logger: Logger,
        critical_timeout: Optional[float],
        high_timeout: Optional[float],
    ) -> list[Any]:
        """Run ``listeners`` by tier; returns every non-LOW result in order."""
        timeouts = {
            ListenerPriority.CRITICAL: critical_timeout,
            ListenerPriority.HIGH: high_timeout,
        }

        def run(listener: EventListener):
            return self._run(
                listener, event_name, payload, logger, timeouts.get(listener.priority)
            )

        results: list[Any] = []
        for listener in listeners:
            if listener.priority in SEQUENTIAL_TIERS:
                results.append(await run(listener))

        normal = [lst for lst in listeners if lst.priority is ListenerPriority.NORMAL]
        if normal:
            results.extend(await asyncio.gather(*(run(lst) for lst in normal)))

        for listener in listeners:
            if listener.priority is ListenerPriority.LOW:
                task = asyncio.get_running_loop().create_task(
                    run(listener), name=f"eventbus-low-{event_name}-{listener.identifier}"
                )
                self._background_tasks.add(task)
                task.add_done_callback(self._background_tasks.discard)

        return results

    async def _run(
        self,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        logger: Logger,
        timeout: Optional[float],
    ) -> Any:
        """Invoke one listener; sync callbacks run in the default executor."""
        if inspect.iscoroutinefunction(listener.callback):
            call = listener.callback(payload)
        else:
            call = asyncio.get_running_loop().run_in_executor(None, listener.callback, payload)

        try:
            if timeout is not None and timeout > 0:
                return await asyncio.wait_for(call, timeout=timeout)
            return await call
        except Exception as exc:
            handle_listener_error(
                logger=logger,
                event_name=event_name,
                listener=listener,
                exc=exc,
            )
            return None

    def get_background_task_count(self) -> int:
        return len(self._background_tasks)

    async def drain(self, timeout: Optional[float] = None) -> int:
        """
        Await background tasks until none are left, including any scheduled
        while draining. Returns how many were awaited.

        Raises
        ------
        asyncio.TimeoutError
            If ``timeout`` elapses first.
        """
        drained = 0

        async def _drain_all() -> None:
            nonlocal drained
            while self._background_tasks:
                pending = list(self._background_tasks)
                await asyncio.gather(*pending, return_exceptions=True)
                drained += len(pending)

        await asyncio.wait_for(_drain_all(), timeout=timeout)
        return drained
