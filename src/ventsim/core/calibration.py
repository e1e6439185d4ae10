"""Calibration tables: age-band ICU shares and severity-score mortality.

Both tables are immutable in-memory inputs. Loading them from storage is
the caller's concern; this module accepts plain rows or pandas DataFrames
and ships the default worst-case tables used by the simulator.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ventsim.core.errors import InvalidConfiguration, LookupFailure


# Highest severity bucket; every score at or above it is reported as ">=20".
CAPPED_SEVERITY = 20

# CDC MMWR (March 2020) "severe outcomes" worst-case rates by age group:
# (age_group, cases, hospitalised %, ICU %, death %)
CDC_SEVERE_OUTCOMES: Tuple[Tuple[str, int, float, float, float], ...] = (
    ("0–19", 123, 2.5, 0.0, 0.0),
    ("20–44", 705, 20.8, 4.2, 0.3),
    ("45–54", 429, 28.3, 10.4, 0.8),
    ("55–64", 429, 30.1, 11.2, 2.6),
    ("65–74", 409, 43.5, 18.8, 4.9),
    ("75–84", 210, 58.7, 31.0, 10.5),
    ("≥85", 144, 70.3, 29.0, 27.3),
)

# Illustrative in-hospital mortality by SOFA score: (score, patients, death %).
# Shaped like published SOFA cohorts but not measured data; pass a
# SeverityOutcomeTable built from a real mortality table for calibrated runs.
SOFA_MORTALITY: Tuple[Tuple[int, int, float], ...] = (
    (0, 1500, 0.0),
    (1, 3100, 0.6),
    (2, 4700, 1.1),
    (3, 5600, 1.9),
    (4, 5900, 2.8),
    (5, 5700, 4.0),
    (6, 5200, 5.7),
    (7, 4500, 7.5),
    (8, 3800, 10.2),
    (9, 3100, 13.4),
    (10, 2500, 17.3),
    (11, 1900, 21.6),
    (12, 1500, 26.3),
    (13, 1100, 31.5),
    (14, 800, 37.2),
    (15, 560, 43.0),
    (16, 390, 48.5),
    (17, 260, 54.1),
    (18, 170, 59.3),
    (19, 110, 63.9),
    (CAPPED_SEVERITY, 150, 70.6),
)


@dataclass(frozen=True)
class AgeBand:
    """One age band with inclusive bounds and its share of ICU admissions.

    Attributes:
        label: Display label, e.g. "45–54".
        min_age: Lower bound (inclusive).
        max_age: Upper bound (inclusive).
        relative_weight: Share of ICU admissions attributable to the band.
    """
    label: str
    min_age: float
    max_age: float
    relative_weight: float

    def __post_init__(self) -> None:
        if not (np.isfinite(self.min_age) and np.isfinite(self.max_age)):
            raise InvalidConfiguration(f"Age band {self.label!r} has non-finite bounds")
        if self.min_age < 0 or self.min_age > self.max_age:
            raise InvalidConfiguration(
                f"Age band {self.label!r} bounds invalid: [{self.min_age}, {self.max_age}]"
            )
        if not np.isfinite(self.relative_weight) or self.relative_weight < 0:
            raise InvalidConfiguration(
                f"Age band {self.label!r} weight must be finite and non-negative, "
                f"got {self.relative_weight}"
            )


@dataclass(frozen=True)
class AgeOutcomeTable:
    """Ordered, non-overlapping age bands used to draw patient ages.

    Attributes:
        bands: Age bands in ascending age order.
    """
    bands: Tuple[AgeBand, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "bands", tuple(self.bands))
        if not self.bands:
            raise InvalidConfiguration("Age table must contain at least one band")
        for previous, band in zip(self.bands, self.bands[1:]):
            if band.min_age <= previous.max_age:
                raise InvalidConfiguration(
                    f"Age bands {previous.label!r} and {band.label!r} overlap or are out of order"
                )
        total = sum(b.relative_weight for b in self.bands)
        if not total > 0:
            raise InvalidConfiguration(
                f"Age band weights must sum to a positive value, got {total}"
            )

    def __len__(self) -> int:
        return len(self.bands)

    @property
    def labels(self) -> Tuple[str, ...]:
        return tuple(b.label for b in self.bands)

    @property
    def probabilities(self) -> np.ndarray:
        """Band weights normalised to sum to 1."""
        weights = np.array([b.relative_weight for b in self.bands], dtype=float)
        return weights / weights.sum()

    @classmethod
    def from_rows(
        cls, rows: Iterable[Tuple[str, float, float, float]]
    ) -> "AgeOutcomeTable":
        """Build from (age_label, min_age, max_age, relative_weight) rows."""
        return cls(tuple(AgeBand(str(lbl), float(lo), float(hi), float(w))
                         for lbl, lo, hi, w in rows))

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> "AgeOutcomeTable":
        """Build from a DataFrame with columns age_label, min_age, max_age, relative_weight."""
        _require_columns(df, ["age_label", "min_age", "max_age", "relative_weight"])
        return cls.from_rows(
            df[["age_label", "min_age", "max_age", "relative_weight"]].itertuples(
                index=False, name=None
            )
        )

    @classmethod
    def from_population_rates(
        cls,
        df: pd.DataFrame,
        label_col: str = "age_group",
        population_col: str = "cases",
        icu_col: str = "icu_percent",
        exclude: Sequence[str] = ("0–19",),
        open_band_max: float = 94.0,
    ) -> "AgeOutcomeTable":
        """Derive band weights from per-age-group case counts and ICU rates.

        Expected ICU admissions per group are ``cases * icu_percent / 100``.
        Each group's share is taken over *all* groups, and the excluded groups
        are dropped afterwards. Bounds are parsed from the labels ("20–44",
        "≥85"); open-ended bands are capped at ``open_band_max``.

        Args:
            df: One row per age group.
            label_col: Column with the age group label.
            population_col: Column with the number of cases in the group.
            icu_col: Column with the ICU admission percentage.
            exclude: Labels to drop after computing shares.
            open_band_max: Upper bound used for open-ended bands.

        Returns:
            AgeOutcomeTable with one band per retained group.
        """
        _require_columns(df, [label_col, population_col, icu_col])
        n_icu = df[population_col].astype(float) * df[icu_col].astype(float) / 100.0
        total_icu = float(n_icu.sum())
        if not total_icu > 0:
            raise InvalidConfiguration("Expected ICU admissions must sum to a positive value")

        shares = n_icu / total_icu
        rows = []
        for label, share in zip(df[label_col], shares):
            if label in exclude:
                continue
            min_age, max_age = _parse_age_label(str(label), open_band_max)
            rows.append((str(label), min_age, max_age, float(share)))
        return cls.from_rows(rows)


@dataclass(frozen=True)
class SeverityBucket:
    """Mortality for one severity score bucket."""
    score: int
    mortality_percent: float
    n_patients: Optional[int] = None

    def __post_init__(self) -> None:
        if not 0 <= self.score <= CAPPED_SEVERITY:
            raise InvalidConfiguration(
                f"Severity bucket must lie in [0, {CAPPED_SEVERITY}], got {self.score}"
            )
        if not (np.isfinite(self.mortality_percent) and 0 <= self.mortality_percent <= 100):
            raise InvalidConfiguration(
                f"Mortality for severity {self.score} must lie in [0, 100], "
                f"got {self.mortality_percent}"
            )

    @property
    def label(self) -> str:
        return f">={CAPPED_SEVERITY}" if self.score == CAPPED_SEVERITY else str(self.score)

    @property
    def survival_probability(self) -> float:
        return 1.0 - self.mortality_percent / 100.0


@dataclass(frozen=True)
class SeverityOutcomeTable:
    """Severity score buckets 0..19 plus the capped ">=20" bucket.

    Attributes:
        buckets: One entry per severity score, unique by score.
    """
    buckets: Tuple[SeverityBucket, ...]
    _survival: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "buckets", tuple(sorted(self.buckets, key=lambda b: b.score)))
        if not self.buckets:
            raise InvalidConfiguration("Severity table must contain at least one bucket")
        scores = [b.score for b in self.buckets]
        if len(set(scores)) != len(scores):
            raise InvalidConfiguration("Severity table has duplicate buckets")

        # Dense lookup indexed by score; NaN marks a missing row
        survival = np.full(CAPPED_SEVERITY + 1, np.nan)
        for b in self.buckets:
            survival[b.score] = b.survival_probability
        survival.setflags(write=False)
        object.__setattr__(self, "_survival", survival)

    def __len__(self) -> int:
        return len(self.buckets)

    @property
    def scores(self) -> Tuple[int, ...]:
        return tuple(b.score for b in self.buckets)

    def check_coverage(self, lower: int, upper: int) -> None:
        """Ensure every bucket in [lower, upper] has a mortality row.

        Raises:
            LookupFailure: If any bucket in the range is missing.
        """
        missing = [s for s in range(lower, min(upper, CAPPED_SEVERITY) + 1)
                   if np.isnan(self._survival[s])]
        if missing:
            raise LookupFailure(f"Severity table has no mortality row for buckets {missing}")

    def survival_probability(self, scores) -> np.ndarray:
        """Map severity buckets to survival probabilities (1 - mortality/100).

        Raises:
            LookupFailure: If a score has no matching row.
        """
        scores = np.asarray(scores, dtype=int)
        if scores.size and (scores.min() < 0 or scores.max() > CAPPED_SEVERITY):
            raise LookupFailure(
                f"Severity scores outside [0, {CAPPED_SEVERITY}]: "
                f"{sorted(set(scores[(scores < 0) | (scores > CAPPED_SEVERITY)].tolist()))}"
            )
        result = self._survival[scores]
        if np.isnan(result).any():
            missing = sorted(set(scores[np.isnan(result)].tolist()))
            raise LookupFailure(f"Severity table has no mortality row for buckets {missing}")
        return result

    def empirical_sd(self) -> float:
        """Count-weighted standard deviation of the observed severity scores.

        Raises:
            InvalidConfiguration: If the table carries no patient counts.
        """
        counted = [b for b in self.buckets if b.n_patients]
        if not counted:
            raise InvalidConfiguration("Severity table has no patient counts")
        scores = np.array([b.score for b in counted], dtype=float)
        counts = np.array([b.n_patients for b in counted], dtype=float)
        n = counts.sum()
        mean = np.sum(scores * counts) / n
        # Sample variance of the expanded observations
        return float(np.sqrt(np.sum(counts * (scores - mean) ** 2) / (n - 1)))

    @classmethod
    def from_rows(cls, rows: Iterable[Sequence]) -> "SeverityOutcomeTable":
        """Build from (severity_bucket, mortality_percent[, n_patients]) rows.

        The bucket may be an integer or a label such as ">=20".
        """
        buckets = []
        for row in rows:
            score = _parse_severity_label(row[0])
            n_patients = int(row[2]) if len(row) > 2 and row[2] is not None else None
            buckets.append(SeverityBucket(score, float(row[1]), n_patients))
        return cls(tuple(buckets))

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> "SeverityOutcomeTable":
        """Build from a DataFrame with severity_bucket, mortality_percent and optional n_patients."""
        _require_columns(df, ["severity_bucket", "mortality_percent"])
        columns = ["severity_bucket", "mortality_percent"]
        if "n_patients" in df.columns:
            columns.append("n_patients")
        return cls.from_rows(df[columns].itertuples(index=False, name=None))


def cdc_population_frame() -> pd.DataFrame:
    """CDC worst-case severe outcome rates as a DataFrame."""
    return pd.DataFrame(
        CDC_SEVERE_OUTCOMES,
        columns=["age_group", "cases", "hosp_percent", "icu_percent", "death_percent"],
    )


def default_age_table() -> AgeOutcomeTable:
    """Age bands weighted by worst-case ICU admissions, 0–19 excluded."""
    return AgeOutcomeTable.from_population_rates(cdc_population_frame())


def default_severity_table() -> SeverityOutcomeTable:
    """Illustrative SOFA score mortality table covering 0..19 and >=20."""
    return SeverityOutcomeTable.from_rows(
        (score, death_pct, n) for score, n, death_pct in SOFA_MORTALITY
    )


def _require_columns(df: pd.DataFrame, columns: Sequence[str]) -> None:
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise InvalidConfiguration(f"Calibration table is missing columns: {missing}")


def _parse_age_label(label: str, open_band_max: float) -> Tuple[float, float]:
    numbers = [float(n) for n in re.findall(r"\d+", label)]
    if len(numbers) == 2:
        return numbers[0], numbers[1]
    if len(numbers) == 1:
        return numbers[0], open_band_max
    raise InvalidConfiguration(f"Cannot parse age bounds from label {label!r}")


def _parse_severity_label(value) -> int:
    if isinstance(value, str):
        match = re.search(r"\d+", value)
        if match is None:
            raise InvalidConfiguration(f"Cannot parse severity bucket {value!r}")
        return int(match.group())
    if isinstance(value, (float, np.floating)) and not float(value).is_integer():
        raise InvalidConfiguration(f"Severity bucket must be an integer, got {value}")
    return int(value)
