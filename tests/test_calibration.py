"""Tests for calibration tables."""

import numpy as np
import pandas as pd
import pytest

from ventsim.core.calibration import (
    AgeBand,
    AgeOutcomeTable,
    CAPPED_SEVERITY,
    SeverityBucket,
    SeverityOutcomeTable,
    cdc_population_frame,
    default_age_table,
    default_severity_table,
)
from ventsim.core.errors import InvalidConfiguration, LookupFailure


class TestAgeOutcomeTable:
    """Test age band table construction and validation."""

    def test_default_table_excludes_youngest_band(self):
        """Default table drops 0–19 and keeps six bands."""
        table = default_age_table()

        assert len(table) == 6
        assert table.labels[0] == "20–44"
        assert "0–19" not in table.labels

    def test_default_bounds_parsed_from_labels(self):
        """Bounds come from the labels; the open band is capped at 94."""
        table = default_age_table()

        assert (table.bands[0].min_age, table.bands[0].max_age) == (20.0, 44.0)
        assert (table.bands[-1].min_age, table.bands[-1].max_age) == (85.0, 94.0)

    def test_default_weights_sum_to_one(self):
        """0–19 has no ICU admissions, so the remaining shares sum to 1."""
        table = default_age_table()

        total = sum(b.relative_weight for b in table.bands)
        assert total == pytest.approx(1.0)

    def test_shares_computed_before_exclusion(self):
        """Excluded groups still count towards the denominator."""
        df = pd.DataFrame({
            "age_group": ["0–19", "20–44", "≥45"],
            "cases": [100, 100, 100],
            "icu_percent": [10.0, 20.0, 70.0],
        })

        table = AgeOutcomeTable.from_population_rates(df)

        assert [b.relative_weight for b in table.bands] == pytest.approx([0.2, 0.7])
        assert table.probabilities == pytest.approx([2 / 9, 7 / 9])

    def test_probabilities_normalised(self):
        """Unnormalised weights are normalised for sampling."""
        table = AgeOutcomeTable.from_rows([("a", 20, 39, 2.0), ("b", 40, 59, 6.0)])

        assert table.probabilities == pytest.approx([0.25, 0.75])

    def test_from_dataframe(self):
        """Rows can be supplied as a DataFrame."""
        df = pd.DataFrame({
            "age_label": ["20–44", "45–54"],
            "min_age": [20, 45],
            "max_age": [44, 54],
            "relative_weight": [0.4, 0.6],
        })

        table = AgeOutcomeTable.from_dataframe(df)

        assert table.labels == ("20–44", "45–54")

    def test_missing_column_rejected(self):
        """DataFrames missing required columns are rejected."""
        df = pd.DataFrame({"age_label": ["a"], "min_age": [0]})

        with pytest.raises(InvalidConfiguration):
            AgeOutcomeTable.from_dataframe(df)

    def test_zero_weights_rejected(self):
        """Weights must sum to a positive value."""
        with pytest.raises(InvalidConfiguration):
            AgeOutcomeTable.from_rows([("a", 20, 39, 0.0), ("b", 40, 59, 0.0)])

    def test_negative_weight_rejected(self):
        """Negative weights are rejected."""
        with pytest.raises(InvalidConfiguration):
            AgeBand("a", 20, 39, -0.1)

    def test_inverted_bounds_rejected(self):
        """min_age must not exceed max_age."""
        with pytest.raises(InvalidConfiguration):
            AgeBand("a", 50, 40, 1.0)

    def test_overlapping_bands_rejected(self):
        """Bands must be ordered and non-overlapping."""
        with pytest.raises(InvalidConfiguration):
            AgeOutcomeTable.from_rows([("a", 20, 45, 1.0), ("b", 45, 60, 1.0)])

    def test_empty_table_rejected(self):
        """At least one band is required."""
        with pytest.raises(InvalidConfiguration):
            AgeOutcomeTable(())

    def test_invalid_configuration_is_value_error(self):
        """Callers catching ValueError also catch configuration errors."""
        with pytest.raises(ValueError):
            AgeOutcomeTable(())


class TestSeverityOutcomeTable:
    """Test severity mortality table."""

    def test_default_covers_all_buckets(self):
        """Default table has 0..19 plus the capped bucket."""
        table = default_severity_table()

        assert table.scores == tuple(range(CAPPED_SEVERITY + 1))

    def test_survival_probability_lookup(self):
        """Survival is 1 - mortality/100."""
        table = SeverityOutcomeTable.from_rows([(3, 10.0), (4, 25.0), (">=20", 80.0)])

        result = table.survival_probability([3, 4, 20])

        np.testing.assert_allclose(result, [0.9, 0.75, 0.2])

    def test_capped_label_parsed(self):
        """'>=20' and '≥20' map to bucket 20."""
        table = SeverityOutcomeTable.from_rows([("≥20", 50.0)])

        assert table.scores == (20,)
        assert table.buckets[0].label == ">=20"

    def test_missing_bucket_raises_lookup_failure(self):
        """Scores without a row raise LookupFailure."""
        table = SeverityOutcomeTable.from_rows([(3, 10.0), (5, 20.0)])

        with pytest.raises(LookupFailure):
            table.survival_probability([3, 4])

    def test_out_of_range_score_raises_lookup_failure(self):
        """Scores outside 0..20 raise LookupFailure."""
        table = default_severity_table()

        with pytest.raises(LookupFailure):
            table.survival_probability([21])

    def test_check_coverage(self):
        """Coverage check reports gaps in the clamp range."""
        table = SeverityOutcomeTable.from_rows([(s, 10.0) for s in range(3, 21) if s != 10])

        table.check_coverage(3, 9)
        with pytest.raises(LookupFailure):
            table.check_coverage(3, 20)

    def test_mortality_out_of_range_rejected(self):
        """Mortality must be a percentage."""
        with pytest.raises(InvalidConfiguration):
            SeverityBucket(3, 120.0)

    def test_duplicate_buckets_rejected(self):
        """Each bucket may appear only once."""
        with pytest.raises(InvalidConfiguration):
            SeverityOutcomeTable.from_rows([(3, 10.0), (3, 20.0)])

    def test_default_mortality_monotone(self):
        """Default mortality never decreases with severity."""
        table = default_severity_table()

        survival = table.survival_probability(list(range(21)))
        assert np.all(np.diff(survival) <= 0)

    def test_empirical_sd(self):
        """Count-weighted SD matches the expanded sample SD."""
        table = SeverityOutcomeTable.from_rows([(2, 10.0, 2), (4, 10.0, 2)])

        expected = np.std([2, 2, 4, 4], ddof=1)
        assert table.empirical_sd() == pytest.approx(expected)

    def test_empirical_sd_requires_counts(self):
        """Tables without counts cannot provide an SD."""
        table = SeverityOutcomeTable.from_rows([(3, 10.0)])

        with pytest.raises(InvalidConfiguration):
            table.empirical_sd()

    def test_from_dataframe(self):
        """Rows can be supplied as a DataFrame."""
        df = pd.DataFrame({
            "severity_bucket": ["3", "4", ">=20"],
            "mortality_percent": [5.0, 6.0, 90.0],
            "n_patients": [10, 20, 5],
        })

        table = SeverityOutcomeTable.from_dataframe(df)

        assert table.scores == (3, 4, 20)
        assert table.buckets[1].n_patients == 20


def test_cdc_population_frame_columns():
    """Population frame exposes the raw CDC rates."""
    df = cdc_population_frame()

    assert list(df.columns) == ["age_group", "cases", "hosp_percent", "icu_percent", "death_percent"]
    assert len(df) == 7
