"""Timeout and exponential-backoff retry around agent processing calls."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from care_agents.agents.base import AgentProcessor
from care_agents.core.errors import AgentTimeout

logger = logging.getLogger(__name__)


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Seconds to wait after failed ``attempt`` (0-based)."""
    return base_delay * (2 ** attempt)


async def call_with_timeout(
    processor: AgentProcessor,
    input: Any,
    context: Dict[str, Any],
    timeout_ms: float,
) -> Any:
    """Run one attempt, cancelling it if it outlives ``timeout_ms``."""
    try:
        return await asyncio.wait_for(processor.process(input, context), timeout=timeout_ms / 1000)
    except asyncio.TimeoutError:
        raise AgentTimeout(processor.agent_id, timeout_ms) from None


async def call_with_retry(
    processor: AgentProcessor,
    input: Any,
    context: Dict[str, Any],
    *,
    timeout_ms: float,
    retry_attempts: int,
    base_delay: float = 1.0,
    on_attempt: Optional[Callable[[int], None]] = None,
) -> Any:
    """Call ``processor.process`` up to ``retry_attempts + 1`` times.

    Each attempt gets its own timeout. Any exception, timeouts included,
    triggers a retry after ``base_delay * 2**attempt`` seconds. Once the
    attempts are used up the last error is re-raised. Cancellation from the
    caller is never retried.
    """
    attempt = 0
    while True:
        if on_attempt is not None:
            on_attempt(attempt + 1)
        try:
            return await call_with_timeout(processor, input, context, timeout_ms)
        except Exception as exc:
            if attempt >= retry_attempts:
                raise
            delay = backoff_delay(attempt, base_delay)
            logger.warning(
                "Agent %s attempt %d failed, retrying in %.2fs: %s",
                processor.agent_id,
                attempt + 1,
                delay,
                exc,
            )
            await asyncio.sleep(delay)
            attempt += 1
