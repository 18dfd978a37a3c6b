"""
Notification Hooks

Observer channel between the guard/liquidation core and the bot/UI layer.

Events:
- THRESHOLD_BREACHED: (token_id, alert, action), once per session
- GUARD_STOPPED: (token_id, snapshot), once per session
- LIQUIDATION_PROGRESS: (completed, total, result), after every position

Any number of subscribers may listen to each event. A subscriber that
raises is logged and skipped; it never breaks the core or other listeners.
Subscribers returning a coroutine (e.g. an async Telegram sender) are
scheduled on the running event loop, or on the loop given at construction
when emitting from a timer thread.
"""

import asyncio
import inspect
import logging
import threading
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


class HookEvent(Enum):
    THRESHOLD_BREACHED = "THRESHOLD_BREACHED"
    GUARD_STOPPED = "GUARD_STOPPED"
    LIQUIDATION_PROGRESS = "LIQUIDATION_PROGRESS"


class NotificationHooks:
    """
    Multi-subscriber hook registry.

    Usage:
        hooks = NotificationHooks()
        hooks.on_threshold_breached(lambda token, alert, action: ...)
        registry = GuardRegistry(hooks=hooks)
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop
        self._lock = threading.Lock()
        # In-flight async deliveries, held until done
        self._tasks: Set[Any] = set()
        self._subscribers: Dict[HookEvent, List[Callable[..., Any]]] = {
            event: [] for event in HookEvent
        }

    def subscribe(self, event: HookEvent, callback: Callable[..., Any]) -> Callable[[], None]:
        """
        Register a callback for an event.

        Returns:
            Callable that removes the subscription
        """
        with self._lock:
            self._subscribers[event].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers[event]:
                    self._subscribers[event].remove(callback)

        return unsubscribe

    def on_threshold_breached(self, callback: Callable[..., Any]) -> Callable[[], None]:
        return self.subscribe(HookEvent.THRESHOLD_BREACHED, callback)

    def on_guard_stopped(self, callback: Callable[..., Any]) -> Callable[[], None]:
        return self.subscribe(HookEvent.GUARD_STOPPED, callback)

    def on_liquidation_progress(self, callback: Callable[..., Any]) -> Callable[[], None]:
        return self.subscribe(HookEvent.LIQUIDATION_PROGRESS, callback)

    def subscriber_count(self, event: HookEvent) -> int:
        with self._lock:
            return len(self._subscribers[event])

    def emit(self, event: HookEvent, *args: Any) -> None:
        """Invoke every subscriber of `event` synchronously, in subscription order."""
        with self._lock:
            callbacks = list(self._subscribers[event])

        for callback in callbacks:
            try:
                result = callback(*args)
            except Exception as e:
                logger.error(f"❌ Hook {event.value} subscriber {callback!r} failed: {e}")
                continue

            if inspect.isawaitable(result):
                self._schedule(event, result)

    def _schedule(self, event: HookEvent, awaitable: Any) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None:
            future = asyncio.ensure_future(awaitable, loop=running)
        elif self.loop is not None and self.loop.is_running() and inspect.iscoroutine(awaitable):
            future = asyncio.run_coroutine_threadsafe(awaitable, self.loop)
        else:
            logger.warning(f"⚠️ Hook {event.value}: no event loop to run async subscriber, dropped")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        with self._lock:
            self._tasks.add(future)
        future.add_done_callback(partial(self._on_delivered, event))

    def _on_delivered(self, event: HookEvent, future: Any) -> None:
        with self._lock:
            self._tasks.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"❌ Hook {event.value} async subscriber failed: {error!r}")

    @property
    def pending(self) -> int:
        """Async deliveries still in flight"""
        with self._lock:
            return len(self._tasks)

    def clear(self) -> None:
        """Remove all subscribers"""
        with self._lock:
            for event in HookEvent:
                self._subscribers[event] = []
