"""Agent proposing an optimised staff roster from shift constraints."""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from care_agents.agents.base import AgentProcessor


class RosterRequest(BaseModel):
    staff_requirements: Any = None
    shift_times: Any = None
    required_skills: Any = None
    budget_constraints: Any = None
    staff_availability: Any = None
    max_hours: float = 40
    min_rest_hours: float = 12
    compliance_requirements: Any = None
    current_roster: Any = None


class ShiftAssignment(BaseModel):
    staff_id: str
    shift: str
    role: str = ""
    hours: float = Field(0.0, ge=0.0)


class ComplianceCheck(BaseModel):
    compliant: bool = True
    issues: List[str] = Field(default_factory=list)


class CostAnalysis(BaseModel):
    estimated_cost: float = 0.0
    savings: float = 0.0


class RosterOptimization(BaseModel):
    assignments: List[ShiftAssignment] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    compliance: ComplianceCheck = Field(default_factory=ComplianceCheck)
    cost_analysis: CostAnalysis = Field(default_factory=CostAnalysis)
    confidence: float = Field(..., ge=0.0, le=1.0)


class SmartRosterProcessor(AgentProcessor):
    async def process(self, input: Any, context: Dict[str, Any]) -> Dict[str, Any]:
        request = RosterRequest.model_validate(input)
        result = await self.adapter.complete_structured(
            system_prompt=(
                "You are a care-home rostering assistant. Produce shift assignments that "
                "meet staffing levels, skills mix, working-time limits and budget."
            ),
            payload={**request.model_dump(), "tenant_id": context.get("tenant_id")},
            schema=RosterOptimization,
            model=self.setting("model"),
            temperature=float(self.setting("temperature", 0.2)),
            max_tokens=self.setting("max_tokens"),
        )
        roster = result.output
        compliance = check_working_hours(roster, request.max_hours)
        return {
            "optimized_roster": [a.model_dump() for a in roster.assignments],
            "confidence": roster.confidence,
            "recommendations": roster.recommendations,
            "compliance_check": compliance.model_dump(),
            "cost_analysis": roster.cost_analysis.model_dump(),
            "metadata": {
                "processing_time_ms": result.processing_time_ms,
                "tokens_used": result.tokens_used,
                "model": result.model,
            },
        }


def check_working_hours(roster: RosterOptimization, max_hours: float) -> ComplianceCheck:
    """Merge the model's compliance verdict with a local weekly-hours check."""
    hours: Dict[str, float] = defaultdict(float)
    for assignment in roster.assignments:
        hours[assignment.staff_id] += assignment.hours

    issues = list(roster.compliance.issues)
    for staff_id, total in sorted(hours.items()):
        if total > max_hours:
            issues.append(f"{staff_id} rostered for {total:g}h, above the {max_hours:g}h limit")

    return ComplianceCheck(compliant=roster.compliance.compliant and not issues, issues=issues)
