"""
Triage orchestrator: runs the three leaf classifiers concurrently and
degrades through fallback tiers instead of raising.

Tiers:
1. normal: spam check plus fast location/urgency, then only the needed
   model escalations, all dispatched concurrently
2. heuristic: fast paths only, no remote calls
3. neutral: hardcoded medium-urgency infrastructure result
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog

from campus_pulse.core.observability import record_triage_run
from campus_pulse.core.taxonomy import (
    DEFAULT_CATEGORY,
    ReportType,
    UrgencyLevel,
    is_environmental_category,
    to_valid_category,
)
from campus_pulse.processing.location_extractor import LocationExtractor, extract_fast
from campus_pulse.processing.remote_classifier import RemoteClassifier
from campus_pulse.processing.spam_classifier import SpamClassifier
from campus_pulse.processing.triage_types import (
    AutomationOutput,
    LocationSignal,
    SpamVerdict,
    TriageTier,
    UrgencySignal,
    merge_signal,
)
from campus_pulse.processing.urgency_assessor import UrgencyAssessor, assess_fast

logger = structlog.get_logger(__name__)

FULL_ANALYSIS_LOCATION_THRESHOLD = 0.8
FULL_ANALYSIS_URGENCY_THRESHOLD = 0.7
EMERGENCY_FULL_ANALYSIS_URGENCY = 0.8
EMERGENCY_CONFIDENCE = 0.6
HEURISTIC_CONFIDENCE = 0.3
NEUTRAL_CONFIDENCE = 0.1


def combined_confidence(spam: SpamVerdict, location: LocationSignal, urgency: UrgencySignal) -> float:
    """Minimum of the sub-confidences; urgency far from neutral counts as less certain."""
    urgency_confidence = 1 - abs(urgency.score - 0.5) * 0.5
    return min(1.0, spam.confidence, location.confidence, urgency_confidence)


def needs_full_analysis(spam: SpamVerdict, location: LocationSignal, urgency: UrgencySignal) -> bool:
    if spam.is_spam or spam.is_nsfw:
        return False
    return (
        location.confidence < FULL_ANALYSIS_LOCATION_THRESHOLD
        or urgency.score >= FULL_ANALYSIS_URGENCY_THRESHOLD
    )


def neutral_output() -> AutomationOutput:
    return AutomationOutput(
        category=DEFAULT_CATEGORY,
        location_confidence=0.2,
        urgency_score=0.5,
        urgency_level=UrgencyLevel.MEDIUM,
        is_environmental=False,
        confidence=NEUTRAL_CONFIDENCE,
        full_analysis_needed=True,
        reasoning="Emergency fallback - manual review required",
        triage_tier=TriageTier.NEUTRAL,
    )


class TriageOrchestrator:
    """Concurrent spam, location and urgency triage for one report."""

    def __init__(
        self,
        *,
        remote: RemoteClassifier | None = None,
        spam_classifier: SpamClassifier | None = None,
        location_extractor: LocationExtractor | None = None,
        urgency_assessor: UrgencyAssessor | None = None,
    ) -> None:
        self.spam_classifier = spam_classifier or SpamClassifier(remote=remote)
        self.location_extractor = location_extractor or LocationExtractor(remote=remote)
        self.urgency_assessor = urgency_assessor or UrgencyAssessor(remote=remote)

    async def triage(
        self,
        title: str,
        description: str,
        categories: Sequence[str],
        locations: Sequence[str],
    ) -> AutomationOutput:
        """Never raises; the returned output records the tier that produced it."""
        try:
            output = await self._run_parallel(title, description, categories, locations)
        except Exception as exc:
            logger.warning(
                "Parallel triage failed; using heuristic fallback",
                title_snippet=title[:50],
                error=str(exc)[:1000],
            )
            try:
                output = self._heuristic_fallback(title, description)
            except Exception:
                logger.exception("Heuristic triage failed; using neutral result")
                output = neutral_output()

        record_triage_run(tier=output.triage_tier.value)
        return output

    async def triage_emergency(self, title: str, description: str) -> AutomationOutput:
        """Spam check plus keyword urgency only; category is fixed to safety."""
        try:
            spam, urgency = await asyncio.gather(
                self.spam_classifier.check(title, description),
                self._fast_urgency(title, description),
            )
        except Exception as exc:
            logger.warning(
                "Emergency triage failed; using heuristic fallback",
                title_snippet=title[:50],
                error=str(exc)[:1000],
            )
            output = self._heuristic_fallback(title, description)
            record_triage_run(tier=output.triage_tier.value)
            return output

        output = AutomationOutput(
            category="safety",
            location_confidence=0.5,
            urgency_score=urgency.score,
            urgency_level=urgency.level,
            is_environmental=False,
            confidence=EMERGENCY_CONFIDENCE,
            report_type=ReportType.SPAM if spam.is_spam else ReportType.EMERGENCY,
            is_spam=spam.is_spam,
            is_nsfw=spam.is_nsfw,
            spam_confidence=spam.confidence,
            spam_reason=spam.reason,
            reporter_welfare_flag=urgency.reporter_welfare_flag,
            requires_immediate_action=urgency.requires_immediate_action,
            full_analysis_needed=(
                not spam.is_spam and urgency.score >= EMERGENCY_FULL_ANALYSIS_URGENCY
            ),
            reasoning="Emergency triage - fast path",
            triage_tier=TriageTier.EMERGENCY,
            signal_sources={"spam": spam.source.value, "urgency": urgency.source.value},
        )
        record_triage_run(tier=output.triage_tier.value)
        return output

    async def _run_parallel(
        self,
        title: str,
        description: str,
        categories: Sequence[str],
        locations: Sequence[str],
    ) -> AutomationOutput:
        spam, fast_location, fast_urgency = await asyncio.gather(
            self.spam_classifier.check(title, description),
            self._fast_location(title, description),
            self._fast_urgency(title, description),
        )

        needs_location_model = self.location_extractor.needs_escalation(fast_location)
        needs_urgency_model = self.urgency_assessor.needs_escalation(
            fast_urgency, is_spam=spam.is_spam
        )
        if spam.is_spam:
            needs_location_model = False
        if needs_location_model or needs_urgency_model:
            logger.info(
                "Escalating triage signals to remote classifier",
                title_snippet=title[:50],
                location=needs_location_model,
                urgency=needs_urgency_model,
            )

        escalated_location, escalated_urgency = await asyncio.gather(
            self._maybe_extract_location(
                needs_location_model, title, description, categories, locations, fast_location
            ),
            self._maybe_assess_urgency(needs_urgency_model, title, description, fast_urgency),
        )
        location = merge_signal(fast_location, escalated_location)
        urgency = merge_signal(fast_urgency, escalated_urgency)

        output = self._combine(spam, location, urgency)
        logger.info(
            "Triage complete",
            title_snippet=title[:50],
            category=output.category,
            location_name=output.location_name,
            urgency_level=output.urgency_level.value,
            report_type=output.report_type.value,
            full_analysis_needed=output.full_analysis_needed,
        )
        return output

    @staticmethod
    def _combine(
        spam: SpamVerdict,
        location: LocationSignal,
        urgency: UrgencySignal,
    ) -> AutomationOutput:
        category = to_valid_category(location.category)
        return AutomationOutput(
            category=category,
            location_name=location.location_name,
            location_confidence=location.confidence,
            urgency_score=urgency.score,
            urgency_level=urgency.level,
            is_environmental=is_environmental_category(category),
            confidence=combined_confidence(spam, location, urgency),
            report_type=ReportType.SPAM if spam.is_spam else ReportType.GENERAL,
            is_spam=spam.is_spam,
            is_nsfw=spam.is_nsfw,
            spam_confidence=spam.confidence,
            spam_reason=spam.reason,
            reporter_welfare_flag=urgency.reporter_welfare_flag,
            requires_immediate_action=urgency.requires_immediate_action,
            full_analysis_needed=needs_full_analysis(spam, location, urgency),
            reasoning=(
                f"Fast triage: spam={str(spam.is_spam).lower()}, "
                f"location={location.confidence:.2f}, urgency={urgency.score:.2f}"
            ),
            triage_tier=TriageTier.NORMAL,
            signal_sources={
                "spam": spam.source.value,
                "location": location.source.value,
                "urgency": urgency.source.value,
            },
        )

    @staticmethod
    def _heuristic_fallback(title: str, description: str) -> AutomationOutput:
        location = extract_fast(title, description)
        urgency = assess_fast(title, description)
        category = to_valid_category(location.category)
        return AutomationOutput(
            category=category,
            location_name=location.location_name,
            location_confidence=location.confidence,
            urgency_score=urgency.score,
            urgency_level=urgency.level,
            is_environmental=is_environmental_category(category),
            confidence=HEURISTIC_CONFIDENCE,
            reporter_welfare_flag=urgency.reporter_welfare_flag,
            requires_immediate_action=urgency.requires_immediate_action,
            full_analysis_needed=True,
            reasoning="Fallback: heuristic only",
            triage_tier=TriageTier.HEURISTIC,
            signal_sources={"location": location.source.value, "urgency": urgency.source.value},
        )

    @staticmethod
    async def _fast_location(title: str, description: str) -> LocationSignal:
        return extract_fast(title, description)

    @staticmethod
    async def _fast_urgency(title: str, description: str) -> UrgencySignal:
        return assess_fast(title, description)

    async def _maybe_extract_location(
        self,
        needed: bool,
        title: str,
        description: str,
        categories: Sequence[str],
        locations: Sequence[str],
        fast: LocationSignal,
    ) -> LocationSignal | None:
        if not needed:
            return None
        return await self.location_extractor.extract(
            title, description, categories, locations, fast=fast
        )

    async def _maybe_assess_urgency(
        self,
        needed: bool,
        title: str,
        description: str,
        fast: UrgencySignal,
    ) -> UrgencySignal | None:
        if not needed:
            return None
        return await self.urgency_assessor.assess(title, description, fast=fast)
