"""Ventsim - ventilator allocation policy simulator.

Draws synthetic critically-ill cohorts and compares triage policies for a
scarce ventilator supply by lives saved and life-years saved.
"""

__version__ = "0.1.0"

from ventsim.core.calibration import (
    AgeOutcomeTable,
    SeverityOutcomeTable,
    default_age_table,
    default_severity_table,
)
from ventsim.core.errors import InvalidConfiguration, LookupFailure
from ventsim.core.scenario import CohortParams, Scenario
from ventsim.model.cohort import generate_cohort
from ventsim.model.policies import POLICIES, allocate
from ventsim.results.outcomes import PolicyComparisonReport, TrialResult, summarize
from ventsim.experiment.runner import multiple_trials, run_trials

__all__ = [
    "AgeOutcomeTable",
    "SeverityOutcomeTable",
    "default_age_table",
    "default_severity_table",
    "InvalidConfiguration",
    "LookupFailure",
    "CohortParams",
    "Scenario",
    "generate_cohort",
    "POLICIES",
    "allocate",
    "PolicyComparisonReport",
    "TrialResult",
    "summarize",
    "multiple_trials",
    "run_trials",
    "__version__",
]
