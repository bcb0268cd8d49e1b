"""Campus issue triage and prioritization pipeline."""

__version__ = "0.1.0"
