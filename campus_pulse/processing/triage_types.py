"""
Signal types shared by the triage classifiers and the orchestrator.

Every classifier yields the same shape whether the answer came from the
rule/keyword fast path or from the remote model; ``source`` records which.
Combining a fast result with an optional escalation goes through
``merge_signal`` instead of per-call-site branching.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any, TypeVar

from campus_pulse.core.taxonomy import (
    DEFAULT_CATEGORY,
    ImpactScope,
    ReportType,
    UrgencyLevel,
)


class SignalSource(StrEnum):
    RULES = "rules"
    FAST = "fast"
    MODEL = "model"
    FALLBACK = "fallback"


class TriageTier(StrEnum):
    NORMAL = "normal"
    EMERGENCY = "emergency"
    HEURISTIC = "heuristic"
    NEUTRAL = "neutral"
    FULL_ANALYSIS = "full_analysis"


@dataclass(slots=True, frozen=True)
class SpamVerdict:
    is_spam: bool
    confidence: float
    reason: str
    source: SignalSource
    is_nsfw: bool = False


@dataclass(slots=True, frozen=True)
class LocationSignal:
    category: str
    location_name: str
    confidence: float
    source: SignalSource


@dataclass(slots=True, frozen=True)
class UrgencySignal:
    score: float
    level: UrgencyLevel
    reporter_welfare_flag: bool
    requires_immediate_action: bool
    source: SignalSource
    reasoning: str = ""


SignalT = TypeVar("SignalT", SpamVerdict, LocationSignal, UrgencySignal)


def merge_signal(fast: SignalT, escalated: SignalT | None) -> SignalT:
    """Prefer a model escalation when one was produced; otherwise keep the fast result."""
    if escalated is None or escalated.source is not SignalSource.MODEL:
        return fast
    if isinstance(escalated, UrgencySignal):
        # Immediate action stays conjunctive no matter which path produced the flags.
        return replace(
            escalated,
            requires_immediate_action=(
                escalated.requires_immediate_action
                and escalated.level is UrgencyLevel.CRITICAL
                and escalated.reporter_welfare_flag
            ),
        )
    return escalated


@dataclass(slots=True)
class AutomationOutput:
    """Combined triage output persisted as AutomationMetadata."""

    category: str = DEFAULT_CATEGORY
    location_name: str = ""
    location_confidence: float = 0.0
    urgency_score: float = 0.5
    urgency_level: UrgencyLevel = UrgencyLevel.MEDIUM
    impact_scope: ImpactScope = ImpactScope.SINGLE
    is_environmental: bool = False
    confidence: float = 0.0
    report_type: ReportType = ReportType.GENERAL
    is_spam: bool = False
    is_nsfw: bool = False
    spam_confidence: float = 0.0
    spam_reason: str = ""
    reporter_welfare_flag: bool = False
    requires_immediate_action: bool = False
    full_analysis_needed: bool = False
    reasoning: str = ""
    triage_tier: TriageTier = TriageTier.NORMAL
    signal_sources: dict[str, str] = field(default_factory=dict)

    def to_trace(self, *, model: str | None, timestamp: str) -> dict[str, Any]:
        """Free-form model trace stored alongside the typed metadata columns."""
        return {
            "reasoning": self.reasoning,
            "model": model,
            "timestamp": timestamp,
            "triage_tier": self.triage_tier.value,
            "urgency_level": self.urgency_level.value,
            "report_type": self.report_type.value,
            "welfare": self.reporter_welfare_flag,
            "requires_immediate_action": self.requires_immediate_action,
            "spam_confidence": self.spam_confidence,
            "spam_reason": self.spam_reason,
            "is_nsfw": self.is_nsfw,
            "location_name": self.location_name,
            "location_confidence": self.location_confidence,
            "full_analysis_needed": self.full_analysis_needed,
            "signal_sources": dict(self.signal_sources),
        }
