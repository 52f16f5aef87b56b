"""In-process publish/subscribe hub for agent lifecycle events."""
from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Set, Union

from .models import AgentEvent, AgentEventType

logger = logging.getLogger(__name__)

AgentEventListener = Callable[[AgentEvent], Union[None, Awaitable[None]]]

# Subscribing to this key receives every event type.
ALL_EVENTS = "*"


class AgentEventEmitter:
    """Fan out agent events to sync or async listeners."""

    def __init__(self) -> None:
        self._listeners: Dict[str, List[AgentEventListener]] = defaultdict(list)
        self._pending: Set[asyncio.Task[None]] = set()

    def on(self, event_type: Union[AgentEventType, str], listener: AgentEventListener) -> None:
        """Subscribe ``listener`` to ``event_type`` (or ``"*"`` for all events)."""
        self._listeners[_key(event_type)].append(listener)

    def off(self, event_type: Union[AgentEventType, str], listener: AgentEventListener) -> None:
        """Remove a listener previously added with :meth:`on`."""
        listeners = self._listeners.get(_key(event_type))
        if listeners and listener in listeners:
            listeners.remove(listener)

    def emit(self, event: AgentEvent) -> None:
        """Deliver ``event`` to its subscribers without waiting on async listeners."""
        targets = list(self._listeners.get(event.type.value, ())) + list(
            self._listeners.get(ALL_EVENTS, ())
        )
        for listener in targets:
            try:
                outcome = listener(event)
            except Exception:  # noqa: BLE001
                logger.exception("Listener %r failed on %s event", listener, event.type.value)
                continue
            if not inspect.isawaitable(outcome):
                continue
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.error(
                    "Async listener %r dropped %s event: no running event loop",
                    listener,
                    event.type.value,
                )
                if inspect.iscoroutine(outcome):
                    outcome.close()
                continue
            task = asyncio.ensure_future(outcome, loop=loop)
            self._pending.add(task)
            task.add_done_callback(self._on_listener_done)

    async def drain(self) -> None:
        """Wait for async listeners that are still running."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _on_listener_done(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Async event listener failed", exc_info=exc)


def _key(event_type: Union[AgentEventType, str]) -> str:
    return event_type.value if isinstance(event_type, AgentEventType) else str(event_type)
