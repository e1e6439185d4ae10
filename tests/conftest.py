"""Pytest fixtures for ventsim tests."""

import numpy as np
import pytest

from ventsim.core.calibration import default_age_table, default_severity_table
from ventsim.core.scenario import CohortParams
from ventsim.model.cohort import generate_cohort
from ventsim.model.patient import Cohort


@pytest.fixture
def default_seed() -> int:
    """Default random seed for reproducible tests."""
    return 42


@pytest.fixture
def age_table():
    return default_age_table()


@pytest.fixture
def severity_table():
    return default_severity_table()


@pytest.fixture
def params() -> CohortParams:
    return CohortParams()


@pytest.fixture
def cohort(age_table, severity_table, params, default_seed) -> Cohort:
    """A 300-patient cohort from the default tables."""
    return generate_cohort(age_table, severity_table, 300, params=params, seed=default_seed)


def _make_cohort(
    ages,
    severity,
    alive=None,
    comorbidity=None,
    survival_probability=None,
    life_years=None,
) -> Cohort:
    """Hand-built cohort with a single age band, for deterministic policy tests."""
    ages = np.asarray(ages, dtype=float)
    n = len(ages)
    severity = np.asarray(severity, dtype=int)
    if alive is None:
        alive = np.ones(n, dtype=bool)
    if comorbidity is None:
        comorbidity = np.zeros(n, dtype=np.int8)
    if survival_probability is None:
        survival_probability = 1.0 - severity / 25.0
    if life_years is None:
        life_years = 100.0 - ages
    return Cohort(
        age_bands=("all",),
        band_counts=np.array([n]),
        band_index=np.zeros(n, dtype=int),
        age=ages,
        comorbidity=np.asarray(comorbidity),
        severity_score=severity,
        survival_probability=np.asarray(survival_probability, dtype=float),
        survival_draw=np.zeros(n),
        alive=np.asarray(alive, dtype=bool),
        life_years_remaining=np.asarray(life_years, dtype=float),
    )


@pytest.fixture
def make_cohort():
    """Factory for hand-built cohorts."""
    return _make_cohort
