"""Tests for outcome aggregation."""

import numpy as np
import pytest

from ventsim.core.errors import InvalidConfiguration
from ventsim.model.policies import allocate
from ventsim.results.outcomes import PolicyComparisonReport, TrialResult, summarize


@pytest.fixture
def small_cohort(make_cohort):
    """Three patients: survivor (80 yrs left), death (50), survivor (20)."""
    return make_cohort(
        ages=[20, 50, 80],
        severity=[3, 4, 5],
        alive=[True, False, True],
        life_years=[80.0, 50.0, 20.0],
    )


class TestSummarize:
    """Per-trial metrics."""

    def test_lives_and_life_years(self, small_cohort):
        """Only granted survivors count; denominator is the whole cohort."""
        allocation = allocate(small_cohort, "lottery", 2, lottery=[0.1, 0.2, 0.3])

        result = summarize(small_cohort, allocation, trial=4)

        assert result.policy == "lottery"
        assert result.trial == 4
        assert result.lives_saved == 1
        assert result.life_years_saved == 80.0
        assert result.proportion_life_years_saved == pytest.approx(80.0 / 150.0)
        assert result.n_granted == 2
        assert result.proportion_lives_saved == pytest.approx(1 / 3)

    def test_no_resources(self, small_cohort):
        """K = 0 saves nothing."""
        allocation = allocate(small_cohort, "lottery", 0, lottery=[0.1, 0.2, 0.3])

        result = summarize(small_cohort, allocation)

        assert result.lives_saved == 0
        assert result.proportion_life_years_saved == 0.0

    def test_everyone_ventilated(self, small_cohort):
        """K = N saves every latent survivor."""
        allocation = allocate(small_cohort, "youngest_first", 3, lottery=[0.1, 0.2, 0.3])

        result = summarize(small_cohort, allocation)

        assert result.lives_saved == 2
        assert result.proportion_life_years_saved == pytest.approx(100.0 / 150.0)

    def test_zero_total_life_years(self, make_cohort):
        """A cohort with no potential life-years reports a zero proportion."""
        cohort = make_cohort(ages=[100, 100], severity=[3, 3], life_years=[0.0, 0.0])
        allocation = allocate(cohort, "lottery", 2, lottery=[0.1, 0.2])

        result = summarize(cohort, allocation)

        assert result.lives_saved == 2
        assert result.proportion_life_years_saved == 0.0

    def test_mismatched_cohort_rejected(self, small_cohort, make_cohort):
        """Allocation must belong to a cohort of the same size."""
        other = make_cohort(ages=[30, 40], severity=[3, 3])
        allocation = allocate(other, "lottery", 1, lottery=[0.1, 0.2])

        with pytest.raises(InvalidConfiguration):
            summarize(small_cohort, allocation)


class TestPolicyComparisonReport:
    """Per-policy trial sequences."""

    def _result(self, policy, trial, lives):
        return TrialResult(
            policy=policy, trial=trial, lives_saved=lives, life_years_saved=10.0 * lives,
            proportion_life_years_saved=lives / 100, n_granted=5, n_patients=10,
        )

    def test_record_and_access(self):
        """Results are grouped by policy in trial order."""
        report = PolicyComparisonReport()
        report.extend([self._result("a", 0, 3), self._result("b", 0, 4), self._result("a", 1, 5)])

        assert report.policies == ["a", "b"]
        assert report.lives_saved("a") == [3, 5]
        assert report.life_years_saved("a") == [0.03, 0.05]
        assert report.n_trials == 2
        np.testing.assert_array_equal(report.metric("b", "n_granted"), [5])

    def test_to_dataframe(self):
        """Long format with one row per policy and trial."""
        report = PolicyComparisonReport()
        report.extend([self._result("a", 0, 3), self._result("b", 0, 4)])

        df = report.to_dataframe()

        assert len(df) == 2
        assert list(df["policy"]) == ["a", "b"]
        assert "proportion_life_years_saved" in df.columns

    def test_empty_report(self):
        """Empty report has no trials and an empty frame."""
        report = PolicyComparisonReport()

        assert report.n_trials == 0
        assert report.to_dataframe().empty
