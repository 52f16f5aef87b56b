"""Base processor definition used by the agent registry."""
from __future__ import annotations

import abc
from typing import TYPE_CHECKING, Any, Dict, Optional

from care_agents.core.models import AgentDefinition

if TYPE_CHECKING:
    from care_agents.services.llm_adapter import LLMAdapter


class AgentProcessor(abc.ABC):
    """Abstract agent behaviour invoked by the queue for each dispatched call."""

    def __init__(
        self,
        definition: AgentDefinition,
        adapter: Optional[LLMAdapter] = None,
    ) -> None:
        self.definition = definition
        self._adapter = adapter

    @property
    def agent_id(self) -> str:
        return self.definition.agent_id

    @property
    def adapter(self) -> LLMAdapter:
        if self._adapter is None:
            raise RuntimeError(f"Agent '{self.agent_id}' requires an LLM adapter")
        return self._adapter

    def setting(self, key: str, default: Any = None) -> Any:
        """Read a value from the definition's free-form config."""
        return self.definition.config.get(key, default)

    @abc.abstractmethod
    async def process(self, input: Any, context: Dict[str, Any]) -> Any:
        """Handle one invocation and return its result."""
