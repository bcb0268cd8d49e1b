"""Triage, aggregation and prioritization services."""

from campus_pulse.processing.aggregation_engine import AggregationEngine, AggregationResult
from campus_pulse.processing.frequency_tracker import FrequencyResult, FrequencyTracker
from campus_pulse.processing.pipeline_coordinator import (
    PipelineCoordinator,
    PipelineRequest,
    PipelineResult,
)
from campus_pulse.processing.priority_scorer import (
    PriorityBreakdown,
    PriorityInputs,
    calculate_priority,
)
from campus_pulse.processing.progress import ProgressEvent, ProgressReporter, ProgressStream
from campus_pulse.processing.routing_resolver import (
    RoutingDecision,
    RoutingResolver,
    determine_authority,
)
from campus_pulse.processing.triage_orchestrator import TriageOrchestrator
from campus_pulse.processing.triage_types import AutomationOutput

__all__ = [
    "AggregationEngine",
    "AggregationResult",
    "AutomationOutput",
    "FrequencyResult",
    "FrequencyTracker",
    "PipelineCoordinator",
    "PipelineRequest",
    "PipelineResult",
    "PriorityBreakdown",
    "PriorityInputs",
    "ProgressEvent",
    "ProgressReporter",
    "ProgressStream",
    "RoutingDecision",
    "RoutingResolver",
    "TriageOrchestrator",
    "calculate_priority",
    "determine_authority",
]
