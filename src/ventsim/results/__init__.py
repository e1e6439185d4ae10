"""Results layer: per-trial outcome metrics and their distributions."""

from ventsim.results.outcomes import PolicyComparisonReport, TrialResult, summarize

__all__ = ["PolicyComparisonReport", "TrialResult", "summarize"]
