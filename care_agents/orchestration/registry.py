"""Registry of agent definitions and their processors."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Tuple, Type

from care_agents.agents.base import AgentProcessor
from care_agents.core.errors import AgentNotFound, UnknownAgentType
from care_agents.core.events import AgentEventEmitter
from care_agents.core.models import (
    AgentDefinition,
    AgentEvent,
    AgentEventType,
    AgentState,
    AgentStatus,
)
from care_agents.services.llm_adapter import LLMAdapter

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _AgentRecord:
    definition: AgentDefinition
    processor: AgentProcessor
    in_flight: int = 0
    processed_count: int = 0
    error_count: int = 0
    total_processing_time_ms: float = 0.0
    last_failed: bool = False
    last_activity: Optional[datetime] = None


class AgentRegistry:
    """Hold agent definitions keyed by id and track their activity."""

    def __init__(
        self,
        *,
        catalog: Mapping[str, Type[AgentProcessor]],
        emitter: AgentEventEmitter,
        adapter: Optional[LLMAdapter] = None,
    ) -> None:
        self._catalog = dict(catalog)
        self._emitter = emitter
        self._adapter = adapter
        self._records: Dict[str, _AgentRecord] = {}

    def register(self, definition: AgentDefinition) -> None:
        """Instantiate the processor for ``definition`` and store it."""
        processor_cls = self._resolve_processor_class(definition.agent_type)
        if definition.agent_id in self._records:
            raise ValueError(f"Agent already registered: {definition.agent_id}")

        processor = processor_cls(definition, self._adapter)
        self._records[definition.agent_id] = _AgentRecord(definition=definition, processor=processor)
        self._emitter.emit(
            AgentEvent(
                type=AgentEventType.REGISTERED,
                agent_id=definition.agent_id,
                data={"name": definition.name, "agent_type": definition.agent_type},
            )
        )
        logger.info("Agent registered: %s (%s)", definition.name, definition.agent_id)

    def set_enabled(self, agent_id: str, enabled: bool) -> None:
        record = self._record(agent_id)
        record.definition.enabled = enabled
        self._emitter.emit(
            AgentEvent(
                type=AgentEventType.ENABLED_CHANGED,
                agent_id=agent_id,
                data={"enabled": enabled},
            )
        )
        logger.info("Agent %s %s", agent_id, "enabled" if enabled else "disabled")

    def get(self, agent_id: str) -> Tuple[AgentDefinition, AgentProcessor]:
        record = self._record(agent_id)
        return record.definition, record.processor

    def __contains__(self, agent_id: str) -> bool:
        return agent_id in self._records

    def get_status(self, agent_id: str) -> Optional[AgentStatus]:
        record = self._records.get(agent_id)
        if record is None:
            return None
        definition = record.definition
        finished = record.processed_count + record.error_count
        return AgentStatus(
            agent_id=agent_id,
            name=definition.name,
            status=_state_of(record),
            last_activity=record.last_activity,
            processed_count=record.processed_count,
            error_count=record.error_count,
            average_processing_time_ms=(
                record.total_processing_time_ms / finished if finished else 0.0
            ),
            capabilities=list(definition.capabilities),
        )

    def list_statuses(self) -> List[AgentStatus]:
        return [status for status in map(self.get_status, self._records) if status is not None]

    def get_capabilities(self, agent_id: str) -> List[str]:
        record = self._records.get(agent_id)
        return list(record.definition.capabilities) if record else []

    def mark_started(self, agent_id: str) -> None:
        record = self._records.get(agent_id)
        if record is None:
            return
        record.in_flight += 1
        record.last_activity = datetime.now(timezone.utc)

    def mark_finished(self, agent_id: str, *, success: bool, processing_time_ms: float) -> None:
        record = self._records.get(agent_id)
        if record is None:
            return
        record.in_flight = max(record.in_flight - 1, 0)
        record.total_processing_time_ms += processing_time_ms
        record.last_failed = not success
        record.last_activity = datetime.now(timezone.utc)
        if success:
            record.processed_count += 1
        else:
            record.error_count += 1

    def _record(self, agent_id: str) -> _AgentRecord:
        record = self._records.get(agent_id)
        if record is None:
            raise AgentNotFound(agent_id)
        return record

    def _resolve_processor_class(self, agent_type: str) -> Type[AgentProcessor]:
        if agent_type not in self._catalog:
            raise UnknownAgentType(agent_type)
        return self._catalog[agent_type]


def _state_of(record: _AgentRecord) -> AgentState:
    if not record.definition.enabled:
        return AgentState.DISABLED
    if record.in_flight:
        return AgentState.BUSY
    if record.last_failed:
        return AgentState.ERROR
    return AgentState.IDLE
