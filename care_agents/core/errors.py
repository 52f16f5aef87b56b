"""Exceptions raised by the agent queue."""
from __future__ import annotations


class AgentQueueError(Exception):
    """Base class for agent queue failures."""


class UnknownAgentType(AgentQueueError):
    """Raised when a definition names a type missing from the processor catalog."""

    def __init__(self, agent_type: str) -> None:
        super().__init__(f"Unknown agent type: {agent_type}")
        self.agent_type = agent_type


class AgentNotFound(AgentQueueError):
    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Agent not found: {agent_id}")
        self.agent_id = agent_id


class AgentDisabled(AgentQueueError):
    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Agent not enabled: {agent_id}")
        self.agent_id = agent_id


class AgentTimeout(AgentQueueError):
    """Raised when a single attempt outlives its timeout. Retryable."""

    def __init__(self, agent_id: str, timeout_ms: float) -> None:
        super().__init__(f"Agent timeout: {agent_id} after {timeout_ms:g}ms")
        self.agent_id = agent_id
        self.timeout_ms = timeout_ms


class AdapterError(AgentQueueError):
    """Raised when the LLM adapter fails or returns output violating its schema."""
