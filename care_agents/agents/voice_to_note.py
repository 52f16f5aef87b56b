"""Agent turning a staff voice recording into a structured care note."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from care_agents.agents.base import AgentProcessor

ENTITY_TYPES = ["person", "medication", "condition", "time", "action"]

NOTE_TAG_KEYWORDS = {
    "medication": "medication",
    "pain": "pain-management",
    "mobility": "mobility",
    "fall": "fall-risk",
}

NOTE_CATEGORY_KEYWORDS = {
    "medication": "medication",
    "assessment": "assessment",
}

REVIEW_CONFIDENCE_THRESHOLD = 0.8


class VoiceNoteRequest(BaseModel):
    audio_data: str = Field(..., description="Base64 encoded recording")
    audio_format: str = "wav"
    resident_id: str
    staff_member_id: str
    session_id: Optional[str] = None
    duration: float = 0.0


class CareNoteDraft(BaseModel):
    content: str = Field(..., description="Care note written in professional third person")
    confidence: float = Field(..., ge=0.0, le=1.0)


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    MIXED = "mixed"


class SentimentAnalysis(BaseModel):
    sentiment: Sentiment
    summary: str = ""
    confidence: float = Field(..., ge=0.0, le=1.0)


class ExtractedEntity(BaseModel):
    type: str = Field(..., description=f"One of: {', '.join(ENTITY_TYPES)}")
    value: str


class EntityExtraction(BaseModel):
    entities: List[ExtractedEntity] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0)


class VoiceToNoteProcessor(AgentProcessor):
    """Transcribe, draft a note, then analyse sentiment and extract entities."""

    async def process(self, input: Any, context: Dict[str, Any]) -> Dict[str, Any]:
        request = VoiceNoteRequest.model_validate(input)
        model = self.setting("model")
        temperature = float(self.setting("temperature", 0.3))
        max_tokens = self.setting("max_tokens")
        subject = {
            "resident_id": request.resident_id,
            "staff_member_id": request.staff_member_id,
            "tenant_id": context.get("tenant_id"),
        }

        transcription = await self.adapter.transcribe(
            request.audio_data, audio_format=request.audio_format
        )
        note = await self.adapter.complete_structured(
            system_prompt=(
                "You are a care-home documentation assistant. Turn the staff member's "
                "dictated observations into a factual, person-centred care note."
            ),
            payload={
                **subject,
                "transcript": transcription.text,
                "context": context.get("note_context", ""),
            },
            schema=CareNoteDraft,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        sentiment = await self.adapter.complete_structured(
            system_prompt="Classify the overall sentiment of this care-home observation.",
            payload={**subject, "text": transcription.text},
            schema=SentimentAnalysis,
            model=model,
            temperature=temperature,
        )
        entities = await self.adapter.complete_structured(
            system_prompt="Extract the named entities mentioned in this care-home observation.",
            payload={**subject, "text": transcription.text, "entity_types": ENTITY_TYPES},
            schema=EntityExtraction,
            model=model,
            temperature=temperature,
        )

        content = note.output.content
        return {
            "transcription": {
                "text": transcription.text,
                "language": "en",
                "duration": request.duration,
                "word_count": len(transcription.text.split()),
            },
            "care_note": {
                "content": content,
                "confidence": note.output.confidence,
                "requires_review": note.output.confidence < REVIEW_CONFIDENCE_THRESHOLD,
                "tags": note_tags(content),
                "categories": note_categories(content),
            },
            "sentiment": sentiment.output.model_dump(mode="json"),
            "entities": entities.output.model_dump(mode="json"),
            "metadata": {
                "processing_time_ms": transcription.processing_time_ms + note.processing_time_ms,
                "tokens_used": note.tokens_used + sentiment.tokens_used + entities.tokens_used,
                "model": note.model,
                "transcription_model": transcription.model,
            },
        }


def note_tags(note: str) -> List[str]:
    lowered = note.lower()
    return [tag for keyword, tag in NOTE_TAG_KEYWORDS.items() if keyword in lowered]


def note_categories(note: str) -> List[str]:
    lowered = note.lower()
    return ["care-note"] + [
        category for keyword, category in NOTE_CATEGORY_KEYWORDS.items() if keyword in lowered
    ]
