"""Application runtime composition helpers."""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Type

from care_agents.agents.base import AgentProcessor
from care_agents.agents.echo import EchoProcessor
from care_agents.agents.risk_flag import RiskFlagProcessor
from care_agents.agents.smart_roster import SmartRosterProcessor
from care_agents.agents.voice_to_note import VoiceToNoteProcessor
from care_agents.config import Config
from care_agents.core.events import AgentEventEmitter
from care_agents.core.models import AgentDefinition
from care_agents.orchestration.agent_queue import AgentQueue
from care_agents.orchestration.registry import AgentRegistry
from care_agents.services.llm_adapter import LLMAdapter
from care_agents.services.llm_pool import LLMPool

AGENT_CATALOG: Dict[str, Type[AgentProcessor]] = {
    "echo": EchoProcessor,
    "voice_to_note": VoiceToNoteProcessor,
    "smart_roster": SmartRosterProcessor,
    "risk_flag": RiskFlagProcessor,
}


def default_agent_definitions(model: str) -> List[AgentDefinition]:
    """The agents every deployment starts with."""
    return [
        AgentDefinition(
            agent_id="voice_to_note",
            name="Voice-to-Note Agent",
            agent_type="voice_to_note",
            priority=1,
            timeout_ms=30_000,
            retry_attempts=3,
            dependencies=["openai_adapter"],
            capabilities=["transcription", "note_generation", "sentiment_analysis"],
            config={"model": model, "temperature": 0.3, "max_tokens": 2000},
        ),
        AgentDefinition(
            agent_id="smart_roster",
            name="Smart Roster Agent",
            agent_type="smart_roster",
            priority=2,
            timeout_ms=60_000,
            retry_attempts=2,
            dependencies=["openai_adapter"],
            capabilities=["roster_optimization", "scheduling", "compliance_check"],
            config={"model": model, "temperature": 0.2, "max_tokens": 3000},
        ),
        AgentDefinition(
            agent_id="risk_flag",
            name="Risk Flag Agent",
            agent_type="risk_flag",
            priority=0,
            timeout_ms=15_000,
            retry_attempts=5,
            dependencies=["openai_adapter"],
            capabilities=["risk_assessment", "anomaly_detection", "alert_generation"],
            config={"model": model, "temperature": 0.1, "max_tokens": 1500},
        ),
    ]


def build_llm_pool(config: Config) -> LLMPool:
    pool = LLMPool()

    if config.openai:
        pool.register_openai(config.openai.model, config.openai)
    elif config.azure_openai:
        pool.register_azure_openai(config.azure_openai.deployment_name, config.azure_openai)

    return pool


def build_agent_queue(
    config: Config,
    *,
    adapter: Optional[LLMAdapter] = None,
    definitions: Optional[Iterable[AgentDefinition]] = None,
    emitter: Optional[AgentEventEmitter] = None,
) -> AgentQueue:
    """Assemble a queue with its registry populated; the caller owns start/stop."""
    if adapter is None:
        adapter = LLMAdapter(
            build_llm_pool(config),
            default_model=config.default_model,
            transcription_model=(
                config.openai.transcription_model if config.openai else "whisper-1"
            ),
        )
    emitter = emitter or AgentEventEmitter()
    registry = AgentRegistry(catalog=AGENT_CATALOG, emitter=emitter, adapter=adapter)

    if definitions is None:
        definitions = default_agent_definitions(config.default_model)
    for definition in definitions:
        registry.register(definition)

    return AgentQueue(registry=registry, emitter=emitter, settings=config.queue)
