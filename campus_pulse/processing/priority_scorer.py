"""
Priority scoring for canonical issues.

Four bounded components of up to 25 points each are summed, gated by
triage confidence, and then floored for high-severity single reports so a
lone welfare or immediate-action report always reaches mandatory review.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from campus_pulse.core.observability import record_priority_escalation
from campus_pulse.core.taxonomy import ImpactScope, clamp_unit

COMPONENT_CAP = 25.0
IMPACT_LOG_SCALE = 10.0
FREQUENCY_STEP = 2.5
MANDATORY_REVIEW_THRESHOLD = 90.0
IMMEDIATE_ACTION_FLOOR = 95.0
WELFARE_FLOOR = 90.0


@dataclass(slots=True, frozen=True)
class PriorityInputs:
    urgency_score: float
    impact_scope: ImpactScope
    is_environmental: bool
    report_count: int
    reports_last_30_min: int
    confidence_score: float
    requires_immediate_action: bool = False
    reporter_welfare_flag: bool = False


@dataclass(slots=True, frozen=True)
class PriorityBreakdown:
    urgency_component: float
    impact_component: float
    frequency_component: float
    environmental_component: float
    total_score: float
    raw_score: float
    confidence_multiplier: float
    escalation_reason: str | None = None

    def components(self) -> dict[str, float]:
        return {
            "urgency": self.urgency_component,
            "impact": self.impact_component,
            "frequency": self.frequency_component,
            "environmental": self.environmental_component,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "urgency_component": self.urgency_component,
            "impact_component": self.impact_component,
            "frequency_component": self.frequency_component,
            "environmental_component": self.environmental_component,
            "total_score": self.total_score,
            "raw_score": self.raw_score,
            "confidence_multiplier": self.confidence_multiplier,
            "escalation_reason": self.escalation_reason,
        }


def _round2(value: float) -> float:
    return round(value, 2)


def urgency_component(urgency_score: float) -> float:
    return clamp_unit(urgency_score) * COMPONENT_CAP


def impact_component(report_count: int, impact_scope: ImpactScope = ImpactScope.SINGLE) -> float:
    """Logarithmic in report count: the second report matters far more than the fiftieth."""
    effective = max(0, report_count)
    if impact_scope is ImpactScope.MULTI:
        effective = max(effective, 2)
    return min(math.log(effective + 1) * IMPACT_LOG_SCALE, COMPONENT_CAP)


def frequency_component(reports_last_30_min: int) -> float:
    return min(max(0, reports_last_30_min) * FREQUENCY_STEP, COMPONENT_CAP)


def environmental_component(is_environmental: bool) -> float:
    return COMPONENT_CAP if is_environmental else 0.0


def calculate_priority(inputs: PriorityInputs) -> PriorityBreakdown:
    urgency = _round2(urgency_component(inputs.urgency_score))
    impact = _round2(impact_component(inputs.report_count, inputs.impact_scope))
    frequency = _round2(frequency_component(inputs.reports_last_30_min))
    environmental = _round2(environmental_component(inputs.is_environmental))

    raw_score = urgency + impact + frequency + environmental
    multiplier = 0.5 + 0.5 * clamp_unit(inputs.confidence_score)
    total = raw_score * multiplier

    escalation_reason: str | None = None
    if inputs.requires_immediate_action and total < IMMEDIATE_ACTION_FLOOR:
        total = IMMEDIATE_ACTION_FLOOR
        escalation_reason = "requires_immediate_action"
    elif inputs.reporter_welfare_flag and total < WELFARE_FLOOR:
        total = WELFARE_FLOOR
        escalation_reason = "reporter_welfare"
    if escalation_reason is not None:
        record_priority_escalation(reason=escalation_reason)

    return PriorityBreakdown(
        urgency_component=urgency,
        impact_component=impact,
        frequency_component=frequency,
        environmental_component=environmental,
        total_score=_round2(min(100.0, max(0.0, total))),
        raw_score=_round2(raw_score),
        confidence_multiplier=_round2(multiplier),
        escalation_reason=escalation_reason,
    )


def priority_level(score: float) -> str:
    if score >= 75:
        return "critical"
    if score >= 50:
        return "high"
    if score >= 25:
        return "medium"
    return "low"


def format_priority(score: float) -> str:
    return f"{priority_level(score).capitalize()} ({score:.1f})"


def needs_mandatory_review(score: float) -> bool:
    return score >= MANDATORY_REVIEW_THRESHOLD


def breakdown_from_snapshot(snapshot: Any) -> PriorityBreakdown:
    """Rebuild a breakdown from a stored PrioritySnapshot row."""
    urgency = float(snapshot.urgency_component or 0.0)
    impact = float(snapshot.impact_component or 0.0)
    frequency = float(snapshot.frequency_component or 0.0)
    environmental = float(snapshot.environmental_component or 0.0)
    raw_score = _round2(urgency + impact + frequency + environmental)
    total = float(snapshot.total_score)
    return PriorityBreakdown(
        urgency_component=urgency,
        impact_component=impact,
        frequency_component=frequency,
        environmental_component=environmental,
        total_score=total,
        raw_score=raw_score,
        confidence_multiplier=_round2(total / raw_score) if raw_score else 0.0,
        escalation_reason="admin_override" if snapshot.is_override else None,
    )
