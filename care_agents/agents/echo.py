"""Diagnostic agent used to exercise the queue without an LLM."""
from __future__ import annotations

import asyncio
from typing import Any, Dict

from care_agents.agents.base import AgentProcessor


class EchoProcessor(AgentProcessor):
    """Return the input unchanged, optionally after a configured ``delay`` (seconds)."""

    async def process(self, input: Any, context: Dict[str, Any]) -> Any:
        delay = float(self.setting("delay", 0.0))
        if delay > 0:
            await asyncio.sleep(delay)  # Simulate work
        return input
