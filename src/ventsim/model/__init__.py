"""Model layer: patients, cohort generation, allocation policies."""

from ventsim.model.patient import Cohort, Patient
from ventsim.model.cohort import generate_cohort
from ventsim.model.policies import (
    Allocation,
    AllocationPolicy,
    POLICIES,
    allocate,
    get_policy,
)

__all__ = [
    "Cohort",
    "Patient",
    "generate_cohort",
    "Allocation",
    "AllocationPolicy",
    "POLICIES",
    "allocate",
    "get_policy",
]
