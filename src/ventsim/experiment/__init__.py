"""Experimentation layer: trial runner, CI analysis, paired policy comparison."""

from ventsim.experiment.runner import multiple_trials, run_single_trial, run_trials
from ventsim.experiment.analysis import compute_ci, outcome_table, summarise_report
from ventsim.experiment.comparison import compare_policies, compare_to_baseline

__all__ = [
    "multiple_trials",
    "run_single_trial",
    "run_trials",
    "compute_ci",
    "outcome_table",
    "summarise_report",
    "compare_policies",
    "compare_to_baseline",
]
