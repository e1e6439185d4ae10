"""Outcome metrics for allocations and their distributions across trials."""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from ventsim.core.errors import InvalidConfiguration
from ventsim.model.patient import Cohort
from ventsim.model.policies import Allocation


@dataclass(frozen=True)
class TrialResult:
    """Metrics for one (cohort, policy) pair.

    Attributes:
        policy: Policy name.
        trial: Trial index the cohort belongs to.
        lives_saved: Ventilated patients whose latent outcome is survival.
        life_years_saved: Life-years remaining summed over those patients.
        proportion_life_years_saved: life_years_saved over the cohort's
            total potential life-years.
        n_granted: Ventilators actually assigned.
        n_patients: Cohort size.
    """
    policy: str
    trial: int
    lives_saved: int
    life_years_saved: float
    proportion_life_years_saved: float
    n_granted: int
    n_patients: int

    @property
    def proportion_lives_saved(self) -> float:
        """Lives saved as a share of the cohort."""
        return self.lives_saved / self.n_patients if self.n_patients else 0.0


def summarize(cohort: Cohort, allocation: Allocation, trial: int = 0) -> TrialResult:
    """Reduce an allocation to lives saved and life-years saved.

    The life-years denominator is the whole cohort's potential life-years,
    not just the ventilated patients', so proportions are comparable across
    cohorts of different composition. A cohort with no potential life-years
    yields a proportion of 0.
    """
    if len(allocation) != len(cohort):
        raise InvalidConfiguration(
            f"Allocation covers {len(allocation)} patients but cohort has {len(cohort)}"
        )
    survived = allocation.survived
    life_years_saved = float(cohort.life_years_remaining[survived].sum())
    total = cohort.total_life_years
    return TrialResult(
        policy=allocation.policy,
        trial=trial,
        lives_saved=int(survived.sum()),
        life_years_saved=life_years_saved,
        proportion_life_years_saved=life_years_saved / total if total > 0 else 0.0,
        n_granted=allocation.n_granted,
        n_patients=len(cohort),
    )


@dataclass
class PolicyComparisonReport:
    """Per-policy sequences of trial results.

    Every policy's list is ordered by trial index, and trial ``i`` of every
    policy was evaluated on the same cohort.

    Attributes:
        results: Mapping from policy name to its TrialResults.
        random_seed: Root seed the trials were derived from.
        n_patients: Cohort size per trial.
        n_resources: Ventilators per trial.
    """
    results: Dict[str, List[TrialResult]] = field(default_factory=dict)
    random_seed: Optional[int] = None
    n_patients: int = 0
    n_resources: int = 0

    def record(self, result: TrialResult) -> None:
        """Append one trial result under its policy."""
        self.results.setdefault(result.policy, []).append(result)

    def extend(self, results: Iterable[TrialResult]) -> None:
        for result in results:
            self.record(result)

    @property
    def policies(self) -> List[str]:
        return list(self.results)

    @property
    def n_trials(self) -> int:
        return max((len(v) for v in self.results.values()), default=0)

    def lives_saved(self, policy: str) -> List[int]:
        """Lives saved per trial for a policy."""
        return [r.lives_saved for r in self.results[policy]]

    def life_years_saved(self, policy: str) -> List[float]:
        """Proportion of life-years saved per trial for a policy."""
        return [r.proportion_life_years_saved for r in self.results[policy]]

    def metric(self, policy: str, metric: str) -> np.ndarray:
        """Any TrialResult attribute as an array over trials."""
        return np.array([getattr(r, metric) for r in self.results[policy]])

    def to_dataframe(self) -> pd.DataFrame:
        """Long format: one row per (policy, trial)."""
        columns = [
            "policy", "trial", "lives_saved", "life_years_saved",
            "proportion_life_years_saved", "n_granted", "n_patients",
        ]
        rows = [
            {c: getattr(r, c) for c in columns}
            for policy_results in self.results.values()
            for r in policy_results
        ]
        return pd.DataFrame(rows, columns=columns)
