"""Priority invocation queue dispatching agent calls in bounded batches."""
from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from care_agents.agents.base import AgentProcessor
from care_agents.config import QueueSettings
from care_agents.core.errors import AgentDisabled, AgentNotFound, AgentQueueError
from care_agents.core.events import AgentEventEmitter, AgentEventListener
from care_agents.core.models import (
    AgentDefinition,
    AgentEvent,
    AgentEventType,
    AgentInvocation,
    AgentResponse,
    AgentStatus,
    generate_correlation_id,
)
from care_agents.orchestration.registry import AgentRegistry
from care_agents.orchestration.retry import call_with_retry

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _PendingInvocation:
    invocation: AgentInvocation
    correlation_id: str
    future: asyncio.Future[AgentResponse]
    submitted_at: float


class AgentQueue:
    """Accept agent invocations and dispatch them by priority on a fixed tick.

    Every tick, if no batch is in flight, the whole pending list is stably
    sorted by priority and the first ``batch_size`` entries run concurrently.
    The next batch is only drawn once all of them have settled.
    """

    def __init__(
        self,
        *,
        registry: AgentRegistry,
        emitter: AgentEventEmitter,
        settings: Optional[QueueSettings] = None,
    ) -> None:
        self._registry = registry
        self._emitter = emitter
        self._settings = settings or QueueSettings()
        self._pending: List[_PendingInvocation] = []
        self._is_processing = False
        self._ticker: Optional[asyncio.Task[None]] = None
        self._batch: Optional[asyncio.Task[int]] = None
        self._stopped = False

    async def __aenter__(self) -> AgentQueue:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    @property
    def registry(self) -> AgentRegistry:
        return self._registry

    @property
    def settings(self) -> QueueSettings:
        return self._settings

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    @property
    def is_running(self) -> bool:
        return self._ticker is not None

    async def start(self) -> None:
        """Start the background dispatch tick."""
        if self._ticker is not None:
            return
        self._stopped = False
        self._ticker = asyncio.create_task(self._run_ticker())
        logger.info(
            "Agent queue started (tick=%.2fs, batch=%d)",
            self._settings.tick_interval,
            self._settings.batch_size,
        )

    async def stop(self) -> None:
        """Stop ticking, let the in-flight batch finish and fail what is still queued.

        Invocations submitted afterwards fail immediately until :meth:`start`
        is called again.
        """
        self._stopped = True
        if self._ticker is not None:
            self._ticker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._ticker
            self._ticker = None
        if self._batch is not None:
            await asyncio.gather(self._batch, return_exceptions=True)
            self._batch = None

        abandoned, self._pending = self._pending, []
        for pending in abandoned:
            self._settle(
                pending,
                self._failure(pending, AgentQueueError("Agent queue stopped"), attempts=0),
            )
        logger.info("Agent queue stopped (%d pending invocations failed)", len(abandoned))

    async def invoke(self, invocation: AgentInvocation) -> AgentResponse:
        """Queue ``invocation`` and wait for its response.

        Unknown or disabled agents fail immediately without being queued.
        Errors are reported in the response, never raised.
        """
        loop = asyncio.get_running_loop()
        pending = _PendingInvocation(
            invocation=invocation,
            correlation_id=invocation.correlation_id or generate_correlation_id(),
            future=loop.create_future(),
            submitted_at=time.perf_counter(),
        )
        self._emit(
            AgentEventType.INVOKED,
            pending,
            {"priority": invocation.priority.value, "input": invocation.input},
        )

        try:
            if self._stopped:
                raise AgentQueueError("Agent queue stopped")
            self._resolve(invocation.agent_id)
        except AgentQueueError as exc:
            response = self._failure(pending, exc, attempts=0)
            self._settle(pending, response)
            return response

        self._pending.append(pending)
        # A caller giving up does not withdraw the invocation.
        return await asyncio.shield(pending.future)

    async def dispatch_batch(self) -> int:
        """Dispatch one batch now; returns how many invocations it contained."""
        if self._is_processing or not self._pending:
            return 0

        self._is_processing = True
        try:
            self._pending.sort(key=lambda item: item.invocation.priority.rank)
            size = self._settings.batch_size
            batch, self._pending = self._pending[:size], self._pending[size:]
            logger.debug(
                "Dispatching %d invocation(s), %d still pending", len(batch), len(self._pending)
            )
            await asyncio.gather(*(self._execute(item) for item in batch), return_exceptions=True)
            return len(batch)
        finally:
            self._is_processing = False

    def register_agent(self, definition: AgentDefinition) -> None:
        self._registry.register(definition)

    def set_agent_enabled(self, agent_id: str, enabled: bool) -> None:
        self._registry.set_enabled(agent_id, enabled)

    def get_agent_status(self, agent_id: str) -> Optional[AgentStatus]:
        return self._registry.get_status(agent_id)

    def get_all_agent_statuses(self) -> List[AgentStatus]:
        return self._registry.list_statuses()

    def get_agent_capabilities(self, agent_id: str) -> List[str]:
        return self._registry.get_capabilities(agent_id)

    def on(self, event_type: Union[AgentEventType, str], listener: AgentEventListener) -> None:
        self._emitter.on(event_type, listener)

    def off(self, event_type: Union[AgentEventType, str], listener: AgentEventListener) -> None:
        self._emitter.off(event_type, listener)

    async def _run_ticker(self) -> None:
        while True:
            await asyncio.sleep(self._settings.tick_interval)
            if self._batch is not None and not self._batch.done():
                continue
            if not self._is_processing and self._pending:
                self._batch = asyncio.create_task(self.dispatch_batch())

    async def _execute(self, pending: _PendingInvocation) -> None:
        invocation = pending.invocation
        attempts = 0

        def record_attempt(number: int) -> None:
            nonlocal attempts
            attempts = number

        try:
            definition, processor = self._resolve(invocation.agent_id)
        except AgentQueueError as exc:
            self._settle(pending, self._failure(pending, exc, attempts=0))
            return

        self._registry.mark_started(invocation.agent_id)
        started = time.perf_counter()
        response: Optional[AgentResponse] = None
        try:
            result = await call_with_retry(
                processor,
                invocation.input,
                invocation.context,
                timeout_ms=(
                    invocation.timeout_ms
                    if invocation.timeout_ms is not None
                    else definition.timeout_ms
                ),
                retry_attempts=definition.retry_attempts,
                base_delay=self._settings.retry_base_delay,
                on_attempt=record_attempt,
            )
        except Exception as exc:  # noqa: BLE001
            response = self._failure(pending, exc, attempts=attempts)
        else:
            response = AgentResponse(
                agent_id=invocation.agent_id,
                success=True,
                result=result,
                processing_time_ms=self._elapsed_ms(pending),
                correlation_id=pending.correlation_id,
                attempts=attempts,
            )
        finally:
            self._registry.mark_finished(
                invocation.agent_id,
                success=response is not None and response.success,
                processing_time_ms=(time.perf_counter() - started) * 1000,
            )
        self._settle(pending, response)

    def _resolve(self, agent_id: str) -> Tuple[AgentDefinition, AgentProcessor]:
        if agent_id not in self._registry:
            raise AgentNotFound(agent_id)
        definition, processor = self._registry.get(agent_id)
        if not definition.enabled:
            raise AgentDisabled(agent_id)
        return definition, processor

    def _failure(
        self, pending: _PendingInvocation, exc: BaseException, *, attempts: int
    ) -> AgentResponse:
        return AgentResponse(
            agent_id=pending.invocation.agent_id,
            success=False,
            error=str(exc) or exc.__class__.__name__,
            processing_time_ms=self._elapsed_ms(pending),
            correlation_id=pending.correlation_id,
            attempts=attempts,
        )

    def _settle(self, pending: _PendingInvocation, response: AgentResponse) -> None:
        if response.success:
            self._emit(AgentEventType.COMPLETED, pending, {"response": response})
        else:
            self._emit(
                AgentEventType.ERROR, pending, {"response": response, "error": response.error}
            )
        if not pending.future.done():
            pending.future.set_result(response)

    def _emit(self, event_type: AgentEventType, pending: _PendingInvocation, data: dict) -> None:
        self._emitter.emit(
            AgentEvent(
                type=event_type,
                agent_id=pending.invocation.agent_id,
                data=data,
                correlation_id=pending.correlation_id,
            )
        )

    @staticmethod
    def _elapsed_ms(pending: _PendingInvocation) -> float:
        return (time.perf_counter() - pending.submitted_at) * 1000
