"""Agent flagging resident risk from vitals and observations."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from care_agents.agents.base import AgentProcessor


class RiskLevel(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


RISK_SEVERITY = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}


class RiskRequest(BaseModel):
    vital_signs: Any = None
    movement_data: Any = None
    environmental_data: Any = None
    alert_history: Any = None
    recent_notes: Any = None
    medication_changes: Any = None
    behavioral_observations: Any = None
    family_concerns: Any = None
    age: Optional[int] = None
    medical_conditions: Any = None
    mobility_status: Optional[str] = None
    cognitive_status: Optional[str] = None


class RiskFactor(BaseModel):
    category: str
    description: str
    level: RiskLevel


class RiskAlert(BaseModel):
    title: str
    level: RiskLevel
    action: str = ""


class RiskAssessment(BaseModel):
    overall_risk: RiskLevel
    risk_factors: List[RiskFactor] = Field(default_factory=list)
    alerts: List[RiskAlert] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0)


class RiskFlagProcessor(AgentProcessor):
    async def process(self, input: Any, context: Dict[str, Any]) -> Dict[str, Any]:
        request = RiskRequest.model_validate(input)
        result = await self.adapter.complete_structured(
            system_prompt=(
                "You are a clinical risk assistant for a care home. Assess falls, "
                "deterioration, safeguarding and medication risks for the resident."
            ),
            payload={**request.model_dump(), "tenant_id": context.get("tenant_id")},
            schema=RiskAssessment,
            model=self.setting("model"),
            temperature=float(self.setting("temperature", 0.1)),
            max_tokens=self.setting("max_tokens"),
        )
        assessment = result.output
        priority = highest_level(
            [assessment.overall_risk]
            + [factor.level for factor in assessment.risk_factors]
            + [alert.level for alert in assessment.alerts]
        )
        return {
            "risk_assessment": assessment.model_dump(mode="json"),
            "confidence": assessment.confidence,
            "alerts": [alert.model_dump(mode="json") for alert in assessment.alerts],
            "recommendations": assessment.recommendations,
            "priority": priority.value,
            "metadata": {
                "processing_time_ms": result.processing_time_ms,
                "tokens_used": result.tokens_used,
                "model": result.model,
            },
        }


def highest_level(levels: Iterable[RiskLevel]) -> RiskLevel:
    return max(levels, key=RISK_SEVERITY.__getitem__, default=RiskLevel.LOW)
