"""Scenario configuration dataclasses."""

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import numpy as np

from ventsim.core.calibration import CAPPED_SEVERITY
from ventsim.core.errors import InvalidConfiguration


@dataclass(frozen=True)
class CohortParams:
    """Calibration constants for cohort generation.

    Every constant the generator uses lives here and is passed explicitly;
    nothing is read from module-level state.

    Attributes:
        sofa_intercept: Mean severity score at ``age_centre`` with no comorbidity.
        age_slope: Change in mean severity per year of age.
        age_centre: Age at which the mean equals ``sofa_intercept``.
        sofa_sd: Standard deviation of the severity distribution.
        severity_lower: Lower clamp bound for severity scores.
        severity_upper: Upper clamp bound (20 is the ">=20" bucket).
        major_age_coef, major_intercept: Logit for MAJOR vs NONE comorbidity.
        severe_age_coef, severe_intercept: Logit for SEVERE vs NONE comorbidity.
        major_sofa_offset: Added to the mean severity for MAJOR comorbidity.
        severe_sofa_offset: Added to the mean severity for SEVERE comorbidity.
        max_life_span: Age against which remaining life-years are measured.
        major_life_years_fraction: Share of remaining years kept with MAJOR comorbidity.
        severe_life_years: Fixed remaining life-years with SEVERE comorbidity.
        model_comorbidity: If False, every patient has no comorbidity.
    """

    # Severity score model
    sofa_intercept: float = 7.0
    age_slope: float = 0.1
    age_centre: float = 65.0
    sofa_sd: float = 3.5
    severity_lower: int = 3
    severity_upper: int = CAPPED_SEVERITY

    # Comorbidity multinomial logit (NONE is the reference category)
    major_age_coef: float = 0.03
    major_intercept: float = -2.5
    severe_age_coef: float = 0.04
    severe_intercept: float = -4.5
    major_sofa_offset: float = 1.0
    severe_sofa_offset: float = 2.0

    # Life-years remaining
    max_life_span: float = 100.0
    major_life_years_fraction: float = 0.75
    severe_life_years: float = 1.0

    model_comorbidity: bool = True

    def __post_init__(self) -> None:
        """Validate every constant before any sampling can happen."""
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if f.name == "model_comorbidity":
                continue
            if not np.isfinite(value):
                raise InvalidConfiguration(f"{f.name} must be finite, got {value}")

        if self.sofa_sd <= 0:
            raise InvalidConfiguration(f"sofa_sd must be positive, got {self.sofa_sd}")
        if int(self.severity_lower) != self.severity_lower or int(self.severity_upper) != self.severity_upper:
            raise InvalidConfiguration("Severity bounds must be integers")
        if not 0 <= self.severity_lower < self.severity_upper <= CAPPED_SEVERITY:
            raise InvalidConfiguration(
                f"Severity bounds must satisfy 0 <= lower < upper <= {CAPPED_SEVERITY}, "
                f"got [{self.severity_lower}, {self.severity_upper}]"
            )
        if self.max_life_span <= 0:
            raise InvalidConfiguration("max_life_span must be positive")
        if not 0 <= self.major_life_years_fraction <= 1:
            raise InvalidConfiguration(
                f"major_life_years_fraction must lie in [0, 1], got {self.major_life_years_fraction}"
            )
        if self.severe_life_years < 0:
            raise InvalidConfiguration("severe_life_years must be non-negative")

    def replace(self, **changes: Any) -> "CohortParams":
        """Return a validated copy with some constants changed."""
        return dataclasses.replace(self, **changes)


@dataclass
class Scenario:
    """Configuration for a policy comparison experiment.

    Attributes:
        n_patients: Cohort size N per trial.
        n_resources: Ventilators available K. Ignored if scarcity_ratio is set.
        scarcity_ratio: Optional K/N; sets n_resources = round(ratio * N).
        policies: Names of the policies to compare. Empty means all registered.
        n_trials: Number of independent trials.
        random_seed: Root seed. None draws fresh entropy at run time.
        params: Calibration constants for cohort generation.
    """

    n_patients: int = 500
    n_resources: int = 250
    scarcity_ratio: Optional[float] = None
    policies: Tuple[str, ...] = ()
    n_trials: int = 100
    random_seed: Optional[int] = 42
    params: CohortParams = field(default_factory=CohortParams)

    def __post_init__(self) -> None:
        self.policies = tuple(self.policies)
        if self.scarcity_ratio is not None:
            if not (np.isfinite(self.scarcity_ratio) and 0 <= self.scarcity_ratio <= 1):
                raise InvalidConfiguration(
                    f"scarcity_ratio must lie in [0, 1], got {self.scarcity_ratio}"
                )
            self.n_resources = int(round(self.scarcity_ratio * self.n_patients))
        self._validate()

    def _validate(self) -> None:
        validate_run(self.n_patients, self.n_resources, self.n_trials, self.random_seed)
        if len(set(self.policies)) != len(self.policies):
            raise InvalidConfiguration(f"Duplicate policy names in {self.policies}")

    @property
    def resource_ratio(self) -> float:
        """Ventilators per patient (K/N)."""
        return self.n_resources / self.n_patients

    def clone_with_seed(self, new_seed: Optional[int]) -> "Scenario":
        """Create a copy of this scenario with a different root seed."""
        return Scenario(
            n_patients=self.n_patients,
            n_resources=self.n_resources,
            policies=self.policies,
            n_trials=self.n_trials,
            random_seed=new_seed,
            params=self.params,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data representation (e.g. for JSON/YAML config files)."""
        return {
            "n_patients": self.n_patients,
            "n_resources": self.n_resources,
            "policies": list(self.policies),
            "n_trials": self.n_trials,
            "random_seed": self.random_seed,
            "params": dataclasses.asdict(self.params),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Scenario":
        """Build from the output of to_dict (unknown keys are rejected)."""
        data = dict(data)
        params = CohortParams(**data.pop("params", {}))
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise InvalidConfiguration(f"Unknown scenario fields: {sorted(unknown)}")
        return cls(params=params, **data)


def validate_run(
    n_patients: int, n_resources: int, n_trials: int = 1, seed: Optional[int] = None
) -> None:
    """Check population size, resource count, trial count and root seed.

    Raises:
        InvalidConfiguration: If N <= 0, K outside [0, N], n_trials <= 0
            or a negative seed.
    """
    if int(n_patients) != n_patients or n_patients <= 0:
        raise InvalidConfiguration(f"n_patients must be a positive integer, got {n_patients}")
    if int(n_resources) != n_resources or not 0 <= n_resources <= n_patients:
        raise InvalidConfiguration(
            f"n_resources must be an integer in [0, {n_patients}], got {n_resources}"
        )
    if int(n_trials) != n_trials or n_trials <= 0:
        raise InvalidConfiguration(f"n_trials must be a positive integer, got {n_trials}")
    if seed is not None and (int(seed) != seed or seed < 0):
        raise InvalidConfiguration(f"seed must be a non-negative integer, got {seed}")
