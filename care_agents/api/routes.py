"""HTTP console exposing agent status and invocation."""
from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from care_agents.core.errors import AgentNotFound
from care_agents.core.models import AgentInvocation, AgentState, AgentStatus, InvocationPriority
from care_agents.orchestration.agent_queue import AgentQueue

router = APIRouter(prefix="/agents", tags=["agents"])


def get_agent_queue(request: Request) -> AgentQueue:
    return request.app.state.agent_queue


class AgentStatusResponse(BaseModel):
    agent_id: str
    name: str
    status: str
    last_activity: Optional[datetime]
    processed_count: int
    error_count: int
    average_processing_time_ms: float
    success_rate: float
    capabilities: List[str]

    @classmethod
    def from_status(cls, agent_status: AgentStatus) -> "AgentStatusResponse":
        finished = agent_status.processed_count + agent_status.error_count
        return cls(
            agent_id=agent_status.agent_id,
            name=agent_status.name,
            status=agent_status.status.value,
            last_activity=agent_status.last_activity,
            processed_count=agent_status.processed_count,
            error_count=agent_status.error_count,
            average_processing_time_ms=agent_status.average_processing_time_ms,
            success_rate=(agent_status.processed_count / finished * 100) if finished else 100.0,
            capabilities=agent_status.capabilities,
        )


class SystemHealthResponse(BaseModel):
    status: str
    total_agents: int
    active_agents: int
    error_agents: int
    disabled_agents: int
    total_requests: int
    successful_requests: int
    failed_requests: int
    average_response_time_ms: float
    queue_size: int
    checked_at: datetime

    @classmethod
    def from_statuses(
        cls, statuses: List[AgentStatus], *, queue_size: int
    ) -> "SystemHealthResponse":
        """Roll agent snapshots up into one summary; the average is weighted by finished calls."""
        states = Counter(s.status for s in statuses)
        successful = sum(s.processed_count for s in statuses)
        failed = sum(s.error_count for s in statuses)
        finished = successful + failed
        total_time = sum(
            s.average_processing_time_ms * (s.processed_count + s.error_count) for s in statuses
        )
        return cls(
            status="degraded" if states[AgentState.ERROR] else "healthy",
            total_agents=len(statuses),
            active_agents=states[AgentState.IDLE] + states[AgentState.BUSY],
            error_agents=states[AgentState.ERROR],
            disabled_agents=states[AgentState.DISABLED],
            total_requests=finished,
            successful_requests=successful,
            failed_requests=failed,
            average_response_time_ms=total_time / finished if finished else 0.0,
            queue_size=queue_size,
            checked_at=datetime.now(timezone.utc),
        )


class EnabledRequest(BaseModel):
    enabled: bool


class InvocationRequest(BaseModel):
    input: Any = None
    context: Dict[str, Any] = Field(default_factory=dict)
    priority: InvocationPriority = InvocationPriority.NORMAL
    timeout_ms: Optional[int] = Field(default=None, gt=0)
    correlation_id: Optional[str] = None


class InvocationResponse(BaseModel):
    agent_id: str
    success: bool
    result: Any = None
    error: Optional[str] = None
    processing_time_ms: float
    correlation_id: Optional[str] = None
    attempts: int


@router.get("", response_model=List[AgentStatusResponse])
async def list_agents(queue: AgentQueue = Depends(get_agent_queue)) -> List[AgentStatusResponse]:
    return [AgentStatusResponse.from_status(s) for s in queue.get_all_agent_statuses()]


@router.get("/health", response_model=SystemHealthResponse)
async def system_health(queue: AgentQueue = Depends(get_agent_queue)) -> SystemHealthResponse:
    return SystemHealthResponse.from_statuses(
        queue.get_all_agent_statuses(), queue_size=queue.pending_count
    )


@router.get("/{agent_id}", response_model=AgentStatusResponse)
async def get_agent(agent_id: str, queue: AgentQueue = Depends(get_agent_queue)) -> AgentStatusResponse:
    agent_status = queue.get_agent_status(agent_id)
    if agent_status is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown agent")
    return AgentStatusResponse.from_status(agent_status)


@router.put("/{agent_id}/enabled", response_model=AgentStatusResponse)
async def set_agent_enabled(
    agent_id: str,
    request: EnabledRequest,
    queue: AgentQueue = Depends(get_agent_queue),
) -> AgentStatusResponse:
    try:
        queue.set_agent_enabled(agent_id, request.enabled)
    except AgentNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return AgentStatusResponse.from_status(queue.get_agent_status(agent_id))


@router.post("/{agent_id}/invocations", response_model=InvocationResponse)
async def invoke_agent(
    agent_id: str,
    request: InvocationRequest,
    queue: AgentQueue = Depends(get_agent_queue),
) -> InvocationResponse:
    """Queue an invocation and wait for its outcome."""
    response = await queue.invoke(
        AgentInvocation(
            agent_id=agent_id,
            input=request.input,
            context=request.context,
            priority=request.priority,
            timeout_ms=request.timeout_ms,
            correlation_id=request.correlation_id,
        )
    )
    return InvocationResponse(
        agent_id=response.agent_id,
        success=response.success,
        result=response.result,
        error=response.error,
        processing_time_ms=response.processing_time_ms,
        correlation_id=response.correlation_id,
        attempts=response.attempts,
    )
