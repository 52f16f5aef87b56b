"""Structured-output adapter between agent processors and the LLM pool."""
from __future__ import annotations

import base64
import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, Type, TypeVar, Union

import openai
from pydantic import BaseModel, ValidationError

from care_agents.core.errors import AdapterError
from care_agents.services.llm_pool import LLMPool

SchemaT = TypeVar("SchemaT", bound=BaseModel)


@dataclass(frozen=True, slots=True)
class LLMResult(Generic[SchemaT]):
    """Validated model output plus call metadata."""

    output: SchemaT
    model: str
    tokens_used: int
    processing_time_ms: float


@dataclass(frozen=True, slots=True)
class Transcription:
    text: str
    model: str
    processing_time_ms: float


class LLMAdapter:
    """Call pooled LLM clients and validate their JSON replies against pydantic schemas."""

    def __init__(
        self,
        pool: LLMPool,
        *,
        default_model: str,
        transcription_model: str = "whisper-1",
    ) -> None:
        self._pool = pool
        self.default_model = default_model
        self.transcription_model = transcription_model

    async def complete_structured(
        self,
        *,
        system_prompt: str,
        payload: Dict[str, Any],
        schema: Type[SchemaT],
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
    ) -> LLMResult[SchemaT]:
        """Send ``payload`` as JSON and parse the reply into ``schema``.

        The JSON schema of ``schema`` is appended to the system prompt and the
        request asks for a JSON object response, so the reply can be validated
        instead of searched for keywords.
        """
        model_name = model or self.default_model
        instructions = (
            f"{system_prompt}\n\nRespond only with a JSON object matching this JSON schema:\n"
            f"{json.dumps(schema.model_json_schema())}"
        )
        request: Dict[str, Any] = {
            "model": model_name,
            "messages": [
                {"role": "system", "content": instructions},
                {"role": "user", "content": json.dumps(payload, default=str)},
            ],
            "temperature": temperature,
            "response_format": {"type": "json_object"},
        }
        if max_tokens is not None:
            request["max_tokens"] = max_tokens

        self._require_model(model_name)
        started = time.perf_counter()
        try:
            async with self._pool.acquire(model_name) as client:
                response = await client.chat.completions.create(**request)
        except openai.OpenAIError as exc:
            raise AdapterError(f"LLM request failed: {exc}") from exc

        content = response.choices[0].message.content or ""
        try:
            output = schema.model_validate_json(content)
        except ValidationError as exc:
            raise AdapterError(
                f"LLM output did not match {schema.__name__}: {exc.error_count()} error(s)"
            ) from exc

        usage = getattr(response, "usage", None)
        return LLMResult(
            output=output,
            model=getattr(response, "model", None) or model_name,
            tokens_used=getattr(usage, "total_tokens", 0) or 0,
            processing_time_ms=(time.perf_counter() - started) * 1000,
        )

    async def transcribe(
        self,
        audio: Union[bytes, str],
        *,
        audio_format: str = "wav",
        language: str = "en",
        model: Optional[str] = None,
    ) -> Transcription:
        """Transcribe raw or base64-encoded audio."""
        if isinstance(audio, str):
            try:
                audio = base64.b64decode(audio, validate=True)
            except ValueError as exc:
                raise AdapterError("Audio payload is not valid base64") from exc

        model_name = model or self.default_model
        self._require_model(model_name)
        started = time.perf_counter()
        try:
            async with self._pool.acquire(model_name) as client:
                response = await client.audio.transcriptions.create(
                    model=self.transcription_model,
                    file=(f"recording.{audio_format}", audio),
                    language=language,
                )
        except openai.OpenAIError as exc:
            raise AdapterError(f"Transcription failed: {exc}") from exc

        return Transcription(
            text=response.text,
            model=self.transcription_model,
            processing_time_ms=(time.perf_counter() - started) * 1000,
        )

    def _require_model(self, model_name: str) -> None:
        if model_name not in self._pool:
            raise AdapterError(f"Model '{model_name}' not registered in LLM pool")
