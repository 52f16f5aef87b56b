"""Core data models shared across the agent queue components."""
from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class InvocationPriority(str, Enum):
    """Priority label attached to an invocation by its caller."""

    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self]


PRIORITY_RANK: Dict[InvocationPriority, int] = {
    InvocationPriority.URGENT: 0,
    InvocationPriority.HIGH: 1,
    InvocationPriority.NORMAL: 2,
    InvocationPriority.LOW: 3,
}


class AgentEventType(str, Enum):
    """Lifecycle transitions published by the queue."""

    REGISTERED = "registered"
    INVOKED = "invoked"
    COMPLETED = "completed"
    ERROR = "error"
    ENABLED_CHANGED = "enabled_changed"


class AgentState(str, Enum):
    """Observable state of a registered agent."""

    IDLE = "idle"
    BUSY = "busy"
    ERROR = "error"
    DISABLED = "disabled"


@dataclass(slots=True)
class AgentDefinition:
    """Static description of an agent, created once at process start."""

    agent_id: str
    name: str
    agent_type: str
    enabled: bool = True
    priority: int = 2
    timeout_ms: int = 30_000
    retry_attempts: int = 0
    dependencies: List[str] = field(default_factory=list)
    capabilities: List[str] = field(default_factory=list)
    config: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class AgentInvocation:
    """A single request for an agent to process some input."""

    agent_id: str
    input: Any = None
    context: Dict[str, Any] = field(default_factory=dict)
    priority: InvocationPriority = InvocationPriority.NORMAL
    timeout_ms: Optional[int] = None
    correlation_id: Optional[str] = None

    def __post_init__(self) -> None:
        self.priority = InvocationPriority(self.priority)
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")


@dataclass(frozen=True, slots=True)
class AgentResponse:
    """Outcome of one invocation, successful or not."""

    agent_id: str
    success: bool
    processing_time_ms: float
    result: Any = None
    error: Optional[str] = None
    correlation_id: Optional[str] = None
    attempts: int = 0


@dataclass(slots=True)
class AgentEvent:
    """Event emitted at each lifecycle transition."""

    type: AgentEventType
    agent_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    correlation_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(slots=True)
class AgentStatus:
    """Point-in-time snapshot of an agent's activity."""

    agent_id: str
    name: str
    status: AgentState
    last_activity: Optional[datetime]
    processed_count: int
    error_count: int
    average_processing_time_ms: float
    capabilities: List[str]


def generate_correlation_id() -> str:
    """Return an id of the form ``agent_<epoch ms>_<6 base36 chars>``."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"agent_{int(time.time() * 1000)}_{suffix}"
