"""Paired statistical comparison of allocation policies.

Every policy in a report was evaluated on the same cohorts, so trial ``i``
of policy A and trial ``i`` of policy B form a matched pair. Comparisons
therefore test per-trial differences (Wilcoxon signed-rank) rather than
treating the two samples as independent.
"""

from dataclasses import dataclass
from typing import List, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from ventsim.results.outcomes import PolicyComparisonReport


DEFAULT_METRICS = ("lives_saved", "proportion_life_years_saved")


@dataclass
class ComparisonResult:
    """Result of comparing two policies.

    Attributes:
        policy_a: Baseline policy name.
        policy_b: Policy compared against the baseline.
        metrics: DataFrame with detailed comparison for each metric.
        summary: Plain language summary of the comparison.
    """
    policy_a: str
    policy_b: str
    metrics: pd.DataFrame
    summary: str

    def significant_differences(self, alpha: float = 0.05) -> pd.DataFrame:
        """Return only metrics with significant differences."""
        return self.metrics[self.metrics['p_value'] < alpha]


# Cohen's conventional cut-offs on |d|
_EFFECT_BANDS = ((0.2, "negligible"), (0.5, "small"), (0.8, "medium"))


def _effect_magnitude(d: float) -> str:
    """Label a standardised effect size."""
    for bound, label in _EFFECT_BANDS:
        if abs(d) < bound:
            return label
    return "large"


def _paired_p_value(diff: np.ndarray) -> float:
    """Two-sided Wilcoxon signed-rank p-value for paired differences."""
    if len(diff) == 0 or np.all(diff == 0):
        return 1.0
    try:
        _, p_value = stats.wilcoxon(diff, alternative='two-sided')
    except ValueError:
        # Too few non-zero differences
        return 1.0
    return 1.0 if np.isnan(p_value) else float(p_value)


def _generate_summary(df: pd.DataFrame, name_a: str, name_b: str) -> str:
    """Markdown summary of a comparison (higher metric values are better)."""
    better = df[(df['significant']) & (df['mean_difference'] > 0)]
    worse = df[(df['significant']) & (df['mean_difference'] < 0)]

    lines = [f"## Comparison: {name_a} vs {name_b}\n"]

    if len(better) > 0:
        lines.append(f"### Significant Improvements ({name_b} is better):\n")
        for _, row in better.iterrows():
            lines.append(
                f"- **{row['metric']}**: +{row['mean_difference']:.3g} per trial, "
                f"better in {100 * row['b_better_share']:.0f}% of trials "
                f"({row['effect_magnitude']} effect)\n"
            )

    if len(worse) > 0:
        lines.append(f"\n### Significant Degradations ({name_b} is worse):\n")
        for _, row in worse.iterrows():
            lines.append(
                f"- **{row['metric']}**: {row['mean_difference']:.3g} per trial, "
                f"worse in {100 * row['b_worse_share']:.0f}% of trials "
                f"({row['effect_magnitude']} effect)\n"
            )

    no_change = df[~df['significant']]
    if len(no_change) > 0:
        lines.append("\n### No Significant Change:\n")
        for _, row in no_change.iterrows():
            lines.append(f"- {row['metric']}\n")

    return "".join(lines)


def compare_policies(
    report: PolicyComparisonReport,
    policy_a: str,
    policy_b: str,
    metrics: Sequence[str] = DEFAULT_METRICS,
    alpha: float = 0.05,
) -> ComparisonResult:
    """Compare two policies over the shared cohorts of a report.

    Args:
        report: Trial results containing both policies.
        policy_a: Baseline policy.
        policy_b: Policy compared against the baseline.
        metrics: TrialResult attributes to compare.
        alpha: Significance level (default 0.05).

    Returns:
        ComparisonResult with per-metric statistics and a summary.

    Example:
        >>> report = multiple_trials(Scenario(n_trials=50))
        >>> result = compare_policies(report, "lottery", "maximize_life_years")
        >>> print(result.summary)
    """
    for name in (policy_a, policy_b):
        if name not in report.results:
            raise KeyError(f"Policy {name!r} not in report (have {report.policies})")

    comparison_data = []
    for metric in metrics:
        values_a = report.metric(policy_a, metric).astype(float)
        values_b = report.metric(policy_b, metric).astype(float)
        if len(values_a) != len(values_b):
            raise ValueError(
                f"{policy_a} and {policy_b} have different trial counts "
                f"({len(values_a)} vs {len(values_b)})"
            )
        diff = values_b - values_a

        mean_diff = float(np.mean(diff)) if len(diff) else 0.0
        sd_diff = float(np.std(diff, ddof=1)) if len(diff) > 1 else 0.0
        # Paired effect size (Cohen's d_z)
        effect_size = mean_diff / sd_diff if sd_diff > 0 else 0.0
        p_value = _paired_p_value(diff)

        comparison_data.append({
            'metric': metric,
            f'{policy_a}_mean': float(np.mean(values_a)) if len(values_a) else np.nan,
            f'{policy_b}_mean': float(np.mean(values_b)) if len(values_b) else np.nan,
            'mean_difference': mean_diff,
            'sd_difference': sd_diff,
            'b_better_share': float(np.mean(diff > 0)) if len(diff) else 0.0,
            'b_worse_share': float(np.mean(diff < 0)) if len(diff) else 0.0,
            'p_value': p_value,
            'significant': p_value < alpha,
            'effect_size': effect_size,
            'effect_magnitude': _effect_magnitude(effect_size),
        })

    df = pd.DataFrame(comparison_data)
    return ComparisonResult(
        policy_a=policy_a,
        policy_b=policy_b,
        metrics=df,
        summary=_generate_summary(df, policy_a, policy_b),
    )


def compare_to_baseline(
    report: PolicyComparisonReport,
    baseline: str = "lottery",
    metric: str = "lives_saved",
    alpha: float = 0.05,
) -> pd.DataFrame:
    """Compare every other policy in the report against one baseline.

    Returns:
        DataFrame with one row per policy: mean difference from the
        baseline, share of trials where it did better, p-value and
        effect magnitude.
    """
    rows: List[dict] = []
    for policy in report.policies:
        if policy == baseline:
            continue
        row = compare_policies(report, baseline, policy, metrics=[metric], alpha=alpha).metrics.iloc[0]
        rows.append({
            'policy': policy,
            'mean_difference': row['mean_difference'],
            'b_better_share': row['b_better_share'],
            'p_value': row['p_value'],
            'significant': row['significant'],
            'effect_magnitude': row['effect_magnitude'],
        })
    return pd.DataFrame(rows)
