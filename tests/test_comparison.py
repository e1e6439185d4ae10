"""Tests for paired policy comparison."""

import numpy as np
import pytest

from ventsim.core.calibration import default_age_table, default_severity_table
from ventsim.experiment.comparison import (
    ComparisonResult,
    _effect_magnitude,
    _paired_p_value,
    compare_policies,
    compare_to_baseline,
)
from ventsim.experiment.runner import run_trials
from ventsim.results.outcomes import PolicyComparisonReport, TrialResult


@pytest.fixture(scope="module")
def report():
    """20 trials of every policy on N=200, K=50."""
    return run_trials(
        default_age_table(), default_severity_table(), 200, 50, n_trials=20, seed=42
    )


class TestEffectMagnitude:
    """Tests for effect size interpretation."""

    def test_negligible_effect(self):
        """Small d values are negligible."""
        assert _effect_magnitude(0.1) == "negligible"
        assert _effect_magnitude(-0.15) == "negligible"

    def test_small_effect(self):
        """d between 0.2 and 0.5 is small."""
        assert _effect_magnitude(0.3) == "small"
        assert _effect_magnitude(-0.4) == "small"

    def test_medium_effect(self):
        """d between 0.5 and 0.8 is medium."""
        assert _effect_magnitude(0.6) == "medium"
        assert _effect_magnitude(-0.7) == "medium"

    def test_large_effect(self):
        """d >= 0.8 is large."""
        assert _effect_magnitude(0.9) == "large"
        assert _effect_magnitude(-1.5) == "large"

    def test_band_edges(self):
        """Cut-offs belong to the larger band."""
        assert _effect_magnitude(0.2) == "small"
        assert _effect_magnitude(0.5) == "medium"
        assert _effect_magnitude(-0.8) == "large"


class TestPairedPValue:
    """Wilcoxon signed-rank edge cases."""

    def test_all_zero_differences(self):
        """Identical samples are not different."""
        assert _paired_p_value(np.zeros(10)) == 1.0

    def test_empty(self):
        """No trials, no evidence."""
        assert _paired_p_value(np.array([])) == 1.0

    def test_consistent_shift(self):
        """Consistently positive differences are significant."""
        assert _paired_p_value(np.arange(1.0, 21.0)) < 0.01


class TestComparePolicies:
    """Tests for compare_policies."""

    def test_returns_result(self, report):
        """Comparison returns ComparisonResult with named policies."""
        result = compare_policies(report, "lottery", "maximize_survival")

        assert isinstance(result, ComparisonResult)
        assert result.policy_a == "lottery"
        assert result.policy_b == "maximize_survival"

    def test_metrics_dataframe(self, report):
        """One row per metric with paired statistics."""
        result = compare_policies(report, "lottery", "youngest_first")

        assert list(result.metrics["metric"]) == ["lives_saved", "proportion_life_years_saved"]
        for column in ["lottery_mean", "youngest_first_mean", "mean_difference",
                       "p_value", "significant", "effect_size", "effect_magnitude"]:
            assert column in result.metrics.columns

    def test_self_comparison(self, report):
        """A policy compared with itself shows no difference."""
        result = compare_policies(report, "lottery", "lottery")

        assert (result.metrics["p_value"] == 1.0).all()
        assert not result.metrics["significant"].any()
        assert result.significant_differences().empty
        assert "No Significant Change" in result.summary

    def test_survival_beats_sickest_first(self, report):
        """Prioritising likely survivors saves more lives than sickest first."""
        result = compare_policies(report, "sickest_first", "maximize_survival", metrics=["lives_saved"])
        row = result.metrics.iloc[0]

        assert row["mean_difference"] > 0
        assert row["significant"]
        assert row["b_better_share"] > 0.9
        assert "Significant Improvements" in result.summary

    def test_unknown_policy(self, report):
        """Unknown policy names raise KeyError."""
        with pytest.raises(KeyError):
            compare_policies(report, "lottery", "first_come")

    def test_mismatched_trial_counts(self):
        """Policies must share the same trials."""
        partial = PolicyComparisonReport()
        partial.extend([
            TrialResult("a", 0, 3, 30.0, 0.3, 5, 10),
            TrialResult("a", 1, 4, 40.0, 0.4, 5, 10),
            TrialResult("b", 0, 5, 50.0, 0.5, 5, 10),
        ])

        with pytest.raises(ValueError):
            compare_policies(partial, "a", "b")


class TestCompareToBaseline:
    """Tests for compare_to_baseline."""

    def test_one_row_per_policy(self, report):
        """Every non-baseline policy gets a row."""
        table = compare_to_baseline(report)

        assert len(table) == len(report.policies) - 1
        assert "lottery" not in table["policy"].tolist()

    def test_life_years_metric(self, report):
        """Life-year maximisation beats the lottery on life-years."""
        table = compare_to_baseline(report, metric="proportion_life_years_saved").set_index("policy")

        assert table.loc["maximize_life_years", "mean_difference"] > 0
