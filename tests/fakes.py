"""Test doubles shared by the agent queue tests."""
from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel

from care_agents.agents.base import AgentProcessor
from care_agents.agents.echo import EchoProcessor
from care_agents.config import QueueSettings
from care_agents.core.events import AgentEventEmitter
from care_agents.core.models import AgentDefinition
from care_agents.orchestration.agent_queue import AgentQueue
from care_agents.orchestration.registry import AgentRegistry
from care_agents.services.llm_adapter import LLMResult, Transcription


class CountingEchoProcessor(EchoProcessor):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.calls = 0

    async def process(self, input: Any, context: Dict[str, Any]) -> Any:
        self.calls += 1
        return await super().process(input, context)


class FailingProcessor(AgentProcessor):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.calls = 0

    async def process(self, input: Any, context: Dict[str, Any]) -> Any:
        self.calls += 1
        raise RuntimeError("adapter unavailable")


class HangingProcessor(AgentProcessor):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.calls = 0
        self.cancelled = 0

    async def process(self, input: Any, context: Dict[str, Any]) -> Any:
        self.calls += 1
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled += 1
            raise


class RecordingProcessor(AgentProcessor):
    """Append each input to the list passed as ``config["log"]``."""

    async def process(self, input: Any, context: Dict[str, Any]) -> Any:
        self.setting("log").append(input)
        await asyncio.sleep(0.01)
        return input


TEST_CATALOG: Dict[str, Type[AgentProcessor]] = {
    "echo": CountingEchoProcessor,
    "failing": FailingProcessor,
    "hanging": HangingProcessor,
    "recording": RecordingProcessor,
}


def make_queue(
    *definitions: AgentDefinition,
    batch_size: int = 5,
    tick_interval: float = 0.01,
    retry_base_delay: float = 0.01,
    emitter: Optional[AgentEventEmitter] = None,
) -> AgentQueue:
    emitter = emitter or AgentEventEmitter()
    registry = AgentRegistry(catalog=TEST_CATALOG, emitter=emitter)
    for definition in definitions:
        registry.register(definition)
    return AgentQueue(
        registry=registry,
        emitter=emitter,
        settings=QueueSettings(
            tick_interval=tick_interval,
            batch_size=batch_size,
            retry_base_delay=retry_base_delay,
        ),
    )


def processor_of(queue: AgentQueue, agent_id: str) -> Any:
    return queue.registry.get(agent_id)[1]


class FakeAdapter:
    """Adapter returning canned payloads keyed by schema class."""

    def __init__(self, outputs: Dict[Type[BaseModel], Dict[str, Any]], transcript: str = "") -> None:
        self.outputs = outputs
        self.transcript = transcript
        self.requests: List[Dict[str, Any]] = []

    async def complete_structured(self, *, schema: Type[BaseModel], **kwargs: Any) -> LLMResult:
        self.requests.append({"schema": schema, **kwargs})
        return LLMResult(
            output=schema.model_validate(self.outputs[schema]),
            model="gpt-test",
            tokens_used=10,
            processing_time_ms=5.0,
        )

    async def transcribe(self, audio: Any, **kwargs: Any) -> Transcription:
        return Transcription(text=self.transcript, model="whisper-test", processing_time_ms=7.0)
