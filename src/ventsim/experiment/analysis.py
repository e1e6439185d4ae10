"""Confidence intervals and summary tables for trial results."""

from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from ventsim.model.patient import Cohort
from ventsim.model.policies import Allocation
from ventsim.results.outcomes import PolicyComparisonReport, summarize


def compute_ci(values: Sequence[float], confidence: float = 0.95) -> Dict:
    """Student-t confidence interval for the mean of per-trial values.

    With fewer than two values (or no spread) the interval collapses onto
    the mean, which is 0.0 for an empty sequence.

    Returns:
        Dictionary with mean, std, se, ci_lower, ci_upper, ci_half_width
        and n.
    """
    arr = np.asarray(values, dtype=float)
    n = int(arr.size)
    mean = float(arr.mean()) if n else 0.0
    std = float(arr.std(ddof=1)) if n > 1 else 0.0
    se = std / np.sqrt(n) if n > 1 else 0.0

    lower = upper = mean
    if se > 0:
        lower, upper = stats.t.interval(confidence, n - 1, loc=mean, scale=se)

    return {
        "mean": mean,
        "std": std,
        "se": float(se),
        "ci_lower": float(lower),
        "ci_upper": float(upper),
        "ci_half_width": float(upper) - mean,
        "n": n,
    }


def summarise_report(
    report: PolicyComparisonReport,
    metrics: Sequence[str] = ("lives_saved", "proportion_life_years_saved"),
    confidence: float = 0.95,
) -> pd.DataFrame:
    """Mean, spread, CI and quartiles per policy and metric.

    Returns:
        DataFrame with one row per (policy, metric).
    """
    rows = []
    for policy in report.policies:
        for metric in metrics:
            values = report.metric(policy, metric)
            ci = compute_ci(list(values), confidence)
            rows.append({
                "policy": policy,
                "metric": metric,
                "mean": ci["mean"],
                "std": ci["std"],
                "ci_lower": ci["ci_lower"],
                "ci_upper": ci["ci_upper"],
                "median": float(np.median(values)) if len(values) else np.nan,
                "p25": float(np.percentile(values, 25)) if len(values) else np.nan,
                "p75": float(np.percentile(values, 75)) if len(values) else np.nan,
                "n_trials": ci["n"],
            })
    return pd.DataFrame(rows)


def rank_policies(
    report: PolicyComparisonReport, metric: str = "lives_saved"
) -> pd.DataFrame:
    """Policies ordered by mean metric, best first."""
    summary = summarise_report(report, metrics=[metric])
    ranked = summary.sort_values("mean", ascending=False, kind="mergesort").reset_index(drop=True)
    ranked.insert(0, "rank", np.arange(1, len(ranked) + 1))
    return ranked


def outcome_table(
    cohort: Cohort,
    allocations: Mapping[str, Allocation],
    labels: Optional[Mapping[str, str]] = None,
) -> pd.DataFrame:
    """Survivors and life-years saved per policy for a single trial.

    Percentages are relative to the cohort size and to the cohort's total
    potential life-years respectively.

    Args:
        cohort: The trial's cohort.
        allocations: Mapping from policy name to its allocation on this cohort.
        labels: Optional display names for policies.

    Returns:
        DataFrame with columns system, survivors, survivors_pct,
        life_years_saved, life_years_pct.
    """
    labels = labels or {}
    rows = []
    for name, allocation in allocations.items():
        result = summarize(cohort, allocation)
        rows.append({
            "system": labels.get(name, name),
            "survivors": result.lives_saved,
            "survivors_pct": round(100 * result.proportion_lives_saved),
            "life_years_saved": result.life_years_saved,
            "life_years_pct": round(100 * result.proportion_life_years_saved),
        })
    return pd.DataFrame(rows)


def cohort_summary(cohort: Cohort) -> pd.DataFrame:
    """Patients, mean severity and mean survival probability by age band."""
    df = cohort.to_dataframe()
    summary = (
        df.groupby("age_group", observed=False)
        .agg(
            patients=("age", "size"),
            mean_severity=("severity_score", "mean"),
            survival=("survival_probability", "mean"),
            alive=("alive", "sum"),
        )
        .reset_index()
    )
    summary["mean_severity"] = summary["mean_severity"].round(2)
    return summary


def allocation_frame(cohort: Cohort, allocation: Allocation) -> pd.DataFrame:
    """Cohort rows with the policy's outcome label and priority rank."""
    df = cohort.to_dataframe()
    rank = np.empty(len(cohort), dtype=int)
    rank[allocation.order] = np.arange(1, len(cohort) + 1)
    df["priority_rank"] = rank
    df["outcome"] = allocation.labels()
    return df


def trial_distributions(report: PolicyComparisonReport, metric: str) -> Dict[str, List[float]]:
    """Raw per-trial values of one metric for every policy (for plotting)."""
    return {policy: report.metric(policy, metric).tolist() for policy in report.policies}
