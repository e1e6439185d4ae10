"""Synthetic ICU cohort generation.

A cohort is drawn in a fixed sequence of steps so that a seeded generator
always reproduces the same population:

1. One multinomial draw partitions N across the age bands.
2. Ages are drawn uniformly within each band (band order).
3. Comorbidity state is drawn from a multinomial logit on age.
4. Severity is drawn from a truncated normal whose mean depends on age
   and comorbidity, then rounded and clamped to the table's buckets.
5. Survival probability is looked up from the severity table.
6. One uniform draw per patient fixes the latent survival outcome.
7. Life-years remaining follow from age and comorbidity.
"""

from typing import Optional

import numpy as np
from scipy import stats

from ventsim.core.calibration import AgeOutcomeTable, SeverityOutcomeTable
from ventsim.core.entities import ComorbidityState
from ventsim.core.errors import InvalidConfiguration
from ventsim.core.scenario import CohortParams
from ventsim.model.patient import Cohort


def generate_cohort(
    age_table: AgeOutcomeTable,
    severity_table: SeverityOutcomeTable,
    n_patients: int,
    params: Optional[CohortParams] = None,
    rng: Optional[np.random.Generator] = None,
    seed: Optional[int] = None,
) -> Cohort:
    """Draw one synthetic patient population.

    Args:
        age_table: Age bands and their ICU admission weights.
        severity_table: Severity bucket mortality rates.
        n_patients: Cohort size N (must be positive).
        params: Calibration constants. Defaults to CohortParams().
        rng: Generator to draw from. Takes precedence over seed.
        seed: Seed for a fresh generator if rng is not given.

    Returns:
        Cohort of exactly n_patients patients.

    Raises:
        InvalidConfiguration: Bad N or coefficients yielding invalid probabilities.
        LookupFailure: Severity table does not cover the clamp range.
    """
    if params is None:
        params = CohortParams()

    # Fail fast: everything is checked before the first draw
    if int(n_patients) != n_patients or n_patients <= 0:
        raise InvalidConfiguration(f"n_patients must be a positive integer, got {n_patients}")
    n_patients = int(n_patients)
    severity_table.check_coverage(params.severity_lower, params.severity_upper)
    if params.model_comorbidity:
        _check_comorbidity_model(age_table, params)

    if rng is None:
        rng = np.random.default_rng(seed)

    band_counts = rng.multinomial(n_patients, age_table.probabilities)
    ages = np.concatenate([
        rng.uniform(band.min_age, band.max_age, size=count)
        for band, count in zip(age_table.bands, band_counts)
    ])
    band_index = np.repeat(np.arange(len(age_table)), band_counts)

    comorbidity = sample_comorbidity(ages, params, rng)
    severity = sample_severity(ages, comorbidity, params, rng)
    p_surv = severity_table.survival_probability(severity)

    survival_draw = rng.random(n_patients)
    alive = survival_draw < p_surv

    return Cohort(
        age_bands=age_table.labels,
        band_counts=band_counts,
        band_index=band_index,
        age=ages,
        comorbidity=comorbidity,
        severity_score=severity,
        survival_probability=p_surv,
        survival_draw=survival_draw,
        alive=alive,
        life_years_remaining=life_years_remaining(ages, comorbidity, params),
    )


def comorbidity_probabilities(ages: np.ndarray, params: CohortParams) -> np.ndarray:
    """Softmax probabilities over (NONE, MAJOR, SEVERE) for each age.

    Returns:
        Array of shape (len(ages), 3); rows sum to 1.
    """
    ages = np.asarray(ages, dtype=float)
    z = np.column_stack([
        np.zeros_like(ages),
        params.major_age_coef * ages + params.major_intercept,
        params.severe_age_coef * ages + params.severe_intercept,
    ])
    z -= z.max(axis=1, keepdims=True)
    expz = np.exp(z)
    return expz / expz.sum(axis=1, keepdims=True)


def sample_comorbidity(
    ages: np.ndarray, params: CohortParams, rng: np.random.Generator
) -> np.ndarray:
    """Draw a comorbidity state per patient (one uniform per patient)."""
    if not params.model_comorbidity:
        return np.full(len(ages), int(ComorbidityState.NONE), dtype=np.int8)

    cumulative = np.cumsum(comorbidity_probabilities(ages, params), axis=1)
    u = rng.random(len(ages))
    state = (u >= cumulative[:, 0]).astype(np.int8) + (u >= cumulative[:, 1]).astype(np.int8)
    return state


def severity_mean(
    ages: np.ndarray, comorbidity: np.ndarray, params: CohortParams
) -> np.ndarray:
    """Mean severity score given age and comorbidity state."""
    offsets = np.array([0.0, params.major_sofa_offset, params.severe_sofa_offset])
    return (
        params.sofa_intercept
        + params.age_slope * (np.asarray(ages, dtype=float) - params.age_centre)
        + offsets[np.asarray(comorbidity, dtype=int)]
    )


def sample_severity(
    ages: np.ndarray,
    comorbidity: np.ndarray,
    params: CohortParams,
    rng: np.random.Generator,
) -> np.ndarray:
    """Draw integer severity scores clamped to [severity_lower, severity_upper].

    Draws from a normal truncated to the clamp bounds, then rounds half to
    even. The top bucket holds every score at or above severity_upper.
    """
    n = len(ages)
    if n == 0:
        return np.zeros(0, dtype=int)

    mean = severity_mean(ages, comorbidity, params)
    sd = params.sofa_sd
    lower, upper = params.severity_lower, params.severity_upper
    raw = stats.truncnorm.rvs(
        (lower - mean) / sd,
        (upper - mean) / sd,
        loc=mean,
        scale=sd,
        size=n,
        random_state=rng,
    )
    return np.clip(np.rint(raw), lower, upper).astype(int)


def life_years_remaining(
    ages: np.ndarray, comorbidity: np.ndarray, params: CohortParams
) -> np.ndarray:
    """Life-years gained on survival, by comorbidity state.

    NONE keeps all of (max_life_span - age), MAJOR keeps a fixed fraction of
    it and SEVERE gets a fixed small constant. Never negative.
    """
    remaining = np.maximum(params.max_life_span - np.asarray(ages, dtype=float), 0.0)
    comorbidity = np.asarray(comorbidity, dtype=int)
    return np.select(
        [comorbidity == ComorbidityState.NONE, comorbidity == ComorbidityState.MAJOR],
        [remaining, params.major_life_years_fraction * remaining],
        default=params.severe_life_years,
    )


def _check_comorbidity_model(age_table: AgeOutcomeTable, params: CohortParams) -> None:
    """Evaluate the logit at every band boundary.

    The linear predictors are monotone in age, so valid probabilities at
    the bounds imply valid probabilities for every sampled age.
    """
    bounds = np.array([[b.min_age, b.max_age] for b in age_table.bands], dtype=float).ravel()
    with np.errstate(over="ignore", invalid="ignore"):
        probs = comorbidity_probabilities(bounds, params)
    if not np.all(np.isfinite(probs)) or np.any(probs < 0):
        raise InvalidConfiguration(
            "Comorbidity coefficients produce invalid probabilities for the age table"
        )
