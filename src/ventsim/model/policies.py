"""Ventilator allocation policies.

Every policy shares one contract: given a cohort and K ventilators it
builds a total priority order over the patients, grants the first K and
tags each granted patient by its latent survival outcome. Policies differ
only in the sort keys they contribute; a fresh uniform lottery per patient
is always the final key, so ties are broken at random on every call.

Example usage:
    from ventsim.model.policies import allocate, get_policy

    allocation = allocate(cohort, "tiered_lottery", n_resources=250, rng=rng)
    print(allocation.lives_saved)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Type, Union

import numpy as np

from ventsim.core.entities import AllocationOutcome, ComorbidityState
from ventsim.core.errors import InvalidConfiguration
from ventsim.model.patient import Cohort

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Allocation:
    """Result of applying a policy to a cohort.

    Attributes:
        policy: Name of the policy applied.
        n_resources: Ventilators available (K).
        order: Patient indices in priority order (a permutation of the cohort).
        outcome_codes: AllocationOutcome value per patient, in cohort order.
        lottery: Lottery draws used to break ties, in cohort order.
    """
    policy: str
    n_resources: int
    order: np.ndarray
    outcome_codes: np.ndarray
    lottery: np.ndarray

    def __post_init__(self) -> None:
        for name in ("order", "outcome_codes", "lottery"):
            arr = np.array(getattr(self, name), copy=True)
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    def __len__(self) -> int:
        return len(self.outcome_codes)

    @property
    def outcomes(self) -> List[AllocationOutcome]:
        return [AllocationOutcome(int(c)) for c in self.outcome_codes]

    @property
    def granted(self) -> np.ndarray:
        """Boolean mask of patients given a ventilator."""
        return self.outcome_codes != AllocationOutcome.RESOURCE_DENIED

    @property
    def survived(self) -> np.ndarray:
        """Boolean mask of ventilated patients who survive."""
        return self.outcome_codes == AllocationOutcome.RESOURCE_GRANTED_SURVIVED

    @property
    def n_granted(self) -> int:
        return int(self.granted.sum())

    @property
    def lives_saved(self) -> int:
        return int(self.survived.sum())

    def labels(self) -> List[str]:
        """Display label per patient, in cohort order."""
        return [o.label for o in self.outcomes]


class AllocationPolicy(ABC):
    """Abstract base class for allocation policies.

    Subclasses set ``name`` and implement ``priority_keys``. Lower key
    values are served first. Policies that can refuse some patients
    outright override ``eligible``.
    """

    name: str = ""
    description: str = ""

    @abstractmethod
    def priority_keys(self, cohort: Cohort) -> List[np.ndarray]:
        """Sort keys, most significant first (ascending = served first)."""

    def eligible(self, cohort: Cohort) -> np.ndarray:
        """Patients who may receive a ventilator at all."""
        return np.ones(len(cohort), dtype=bool)

    def rank(self, cohort: Cohort, lottery: np.ndarray) -> np.ndarray:
        """Total priority order over the cohort, lottery as final tie-break.

        Ineligible patients are placed after every eligible patient.
        """
        keys = [~self.eligible(cohort)] + list(self.priority_keys(cohort)) + [lottery]
        # lexsort treats the last key as primary
        return np.lexsort(tuple(reversed(keys)))

    def allocate(
        self,
        cohort: Cohort,
        n_resources: int,
        rng: Optional[np.random.Generator] = None,
        lottery: Optional[np.ndarray] = None,
    ) -> Allocation:
        """Grant up to n_resources ventilators in priority order.

        Args:
            cohort: Patients to triage.
            n_resources: Ventilators available, 0 <= K <= N.
            rng: Generator for the lottery draw. A fresh unseeded generator
                is used if neither rng nor lottery is given.
            lottery: Explicit lottery values (one per patient). Reusing the
                same values reproduces the allocation exactly.

        Returns:
            Allocation aligned to cohort order.
        """
        n = len(cohort)
        if int(n_resources) != n_resources or not 0 <= n_resources <= n:
            raise InvalidConfiguration(
                f"n_resources must be an integer in [0, {n}], got {n_resources}"
            )
        n_resources = int(n_resources)

        if lottery is None:
            if rng is None:
                rng = np.random.default_rng()
            lottery = rng.random(n)
        else:
            lottery = np.asarray(lottery, dtype=float)
            if lottery.shape != (n,):
                raise InvalidConfiguration(
                    f"lottery must have one value per patient ({n}), got shape {lottery.shape}"
                )

        order = self.rank(cohort, lottery)
        n_served = min(n_resources, self._capacity(cohort, n))
        granted = np.zeros(n, dtype=bool)
        granted[order[:n_served]] = True

        codes = np.full(n, int(AllocationOutcome.RESOURCE_DENIED), dtype=np.int8)
        codes[granted & cohort.alive] = AllocationOutcome.RESOURCE_GRANTED_SURVIVED
        codes[granted & ~cohort.alive] = AllocationOutcome.RESOURCE_GRANTED_DIED

        return Allocation(
            policy=self.name,
            n_resources=n_resources,
            order=order,
            outcome_codes=codes,
            lottery=lottery,
        )

    def _capacity(self, cohort: Cohort, n: int) -> int:
        """Largest number of patients this policy will ever serve."""
        return n

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class SickestFirstPolicy(AllocationPolicy):
    """Highest severity score served first."""

    name = "sickest_first"
    description = "Sickest first"

    def priority_keys(self, cohort: Cohort) -> List[np.ndarray]:
        return [-cohort.severity_score]


class LotteryPolicy(AllocationPolicy):
    """Pure random order."""

    name = "lottery"
    description = "Lottery"

    def priority_keys(self, cohort: Cohort) -> List[np.ndarray]:
        return []


class YoungestFirstPolicy(AllocationPolicy):
    """Lowest age served first."""

    name = "youngest_first"
    description = "Youngest first"

    def priority_keys(self, cohort: Cohort) -> List[np.ndarray]:
        return [cohort.age]


class MaximizeSurvivalPolicy(AllocationPolicy):
    """Lowest severity score (highest short-term survival) served first."""

    name = "maximize_survival"
    description = "SOFA (continuous)"

    def priority_keys(self, cohort: Cohort) -> List[np.ndarray]:
        return [cohort.severity_score]


class MaximizeLifeYearsPolicy(AllocationPolicy):
    """Highest expected life-years (p_surv * life-years remaining) first."""

    name = "maximize_life_years"
    description = "Maximize life-years gained"

    def priority_keys(self, cohort: Cohort) -> List[np.ndarray]:
        return [-cohort.expected_life_years]


class TieredLotteryPolicy(AllocationPolicy):
    """Severity tiers served in order, lottery within each tier.

    Scores below the first threshold form tier 0, below the second tier 1,
    and everything else tier 2 (the "no ventilator" tier of the New York
    guidelines).

    By default the last tier is only reached once tiers 0 and 1 are fully
    served, so exactly min(K, N) patients are ventilated as under every
    other policy. This is how the New York scheme plays out when the
    lottery orders patients within the whole queue. Pass
    ``exclude_lowest_tier=True`` for the strict reading in which tier 2
    receives nothing and spare ventilators stay unused.

    Args:
        thresholds: Upper (exclusive) severity bounds of tiers 0 and 1.
        exclude_lowest_tier: If True, the last tier is never served even
            when ventilators remain. Otherwise spare capacity reaches it
            in lottery order once the better tiers are exhausted.
    """

    name = "tiered_lottery"
    description = "New York"

    def __init__(self, thresholds: Tuple[int, int] = (7, 12), exclude_lowest_tier: bool = False):
        if len(thresholds) != 2 or thresholds[0] > thresholds[1]:
            raise InvalidConfiguration(f"thresholds must be two ascending values, got {thresholds}")
        self.thresholds = tuple(thresholds)
        self.exclude_lowest_tier = exclude_lowest_tier

    def tiers(self, cohort: Cohort) -> np.ndarray:
        """Tier per patient: 0 = highest priority, 2 = no ventilator."""
        return np.digitize(cohort.severity_score, self.thresholds, right=False)

    def priority_keys(self, cohort: Cohort) -> List[np.ndarray]:
        return [self.tiers(cohort)]

    def eligible(self, cohort: Cohort) -> np.ndarray:
        if self.exclude_lowest_tier:
            return self.tiers(cohort) < len(self.thresholds)
        return super().eligible(cohort)

    def _capacity(self, cohort: Cohort, n: int) -> int:
        return int(self.eligible(cohort).sum())

    def __repr__(self) -> str:
        return (f"TieredLotteryPolicy(thresholds={self.thresholds}, "
                f"exclude_lowest_tier={self.exclude_lowest_tier})")


class ScoredTiebreakPolicy(AllocationPolicy):
    """Points for severity plus comorbidity, age bucket breaks ties.

    Lower totals are served first. Severity points are 1 + the number of
    ``severity_thresholds`` the score reaches; age points are 1 + the number
    of ``age_thresholds`` the age exceeds.

    Args:
        severity_thresholds: Scores at which severity points step up.
        comorbidity_points: Points for (NONE, MAJOR, SEVERE).
        age_thresholds: Upper (inclusive) ages of each age bucket but the last.
    """

    name = "scored_tiebreak"
    description = "Scored tiebreak"

    def __init__(
        self,
        severity_thresholds: Sequence[int] = (6, 9, 12),
        comorbidity_points: Sequence[int] = (0, 2, 4),
        age_thresholds: Sequence[float] = (40, 60, 75),
    ):
        if list(severity_thresholds) != sorted(severity_thresholds):
            raise InvalidConfiguration("severity_thresholds must be ascending")
        if list(age_thresholds) != sorted(age_thresholds):
            raise InvalidConfiguration("age_thresholds must be ascending")
        if len(comorbidity_points) != len(ComorbidityState):
            raise InvalidConfiguration(
                f"comorbidity_points needs one value per state ({len(ComorbidityState)})"
            )
        self.severity_thresholds = tuple(severity_thresholds)
        self.comorbidity_points = tuple(comorbidity_points)
        self.age_thresholds = tuple(age_thresholds)

    def scores(self, cohort: Cohort) -> np.ndarray:
        severity_points = 1 + np.digitize(cohort.severity_score, self.severity_thresholds)
        penalty = np.asarray(self.comorbidity_points)[cohort.comorbidity.astype(int)]
        return severity_points + penalty

    def age_buckets(self, cohort: Cohort) -> np.ndarray:
        return 1 + np.digitize(cohort.age, self.age_thresholds, right=True)

    def priority_keys(self, cohort: Cohort) -> List[np.ndarray]:
        return [self.scores(cohort), self.age_buckets(cohort)]

    def __repr__(self) -> str:
        return (f"ScoredTiebreakPolicy(severity_thresholds={self.severity_thresholds}, "
                f"comorbidity_points={self.comorbidity_points}, "
                f"age_thresholds={self.age_thresholds})")


POLICIES: Dict[str, Type[AllocationPolicy]] = {
    cls.name: cls
    for cls in (
        SickestFirstPolicy,
        LotteryPolicy,
        YoungestFirstPolicy,
        MaximizeSurvivalPolicy,
        MaximizeLifeYearsPolicy,
        TieredLotteryPolicy,
        ScoredTiebreakPolicy,
    )
}


def get_policy(policy: Union[str, AllocationPolicy]) -> AllocationPolicy:
    """Resolve a policy name (or pass through an instance).

    Raises:
        InvalidConfiguration: If the name is not registered.
    """
    if isinstance(policy, AllocationPolicy):
        return policy
    try:
        return POLICIES[policy]()
    except KeyError:
        logger.warning(f"Unknown allocation policy requested: {policy!r}")
        raise InvalidConfiguration(
            f"Unknown policy {policy!r}; choose from {sorted(POLICIES)}"
        ) from None


def resolve_policies(
    policies: Optional[Sequence[Union[str, AllocationPolicy]]] = None,
) -> List[AllocationPolicy]:
    """Resolve a policy selection; None or empty selects every registered policy."""
    if not policies:
        policies = list(POLICIES)
    resolved = [get_policy(p) for p in policies]
    names = [p.name for p in resolved]
    if len(set(names)) != len(names):
        raise InvalidConfiguration(f"Duplicate policy names in {names}")
    return resolved


def allocate(
    cohort: Cohort,
    policy: Union[str, AllocationPolicy],
    n_resources: int,
    rng: Optional[np.random.Generator] = None,
    lottery: Optional[np.ndarray] = None,
) -> Allocation:
    """Allocate n_resources ventilators within a cohort under a named policy."""
    return get_policy(policy).allocate(cohort, n_resources, rng=rng, lottery=lottery)
