"""Patient and cohort definitions."""

from dataclasses import dataclass, fields
from typing import Iterator, Tuple

import numpy as np
import pandas as pd

from ventsim.core.calibration import CAPPED_SEVERITY
from ventsim.core.entities import ComorbidityState
from ventsim.core.errors import InvalidConfiguration


@dataclass(frozen=True)
class Patient:
    """One simulated critically-ill patient.

    Attributes:
        id: Position of the patient within its cohort.
        age: Age in years (uniform within the age band).
        age_band: Label of the age band the patient was drawn from.
        comorbidity: Chronic illness burden.
        severity_score: Severity bucket (20 means ">=20").
        survival_probability: 1 - mortality for the severity bucket.
        survival_draw: Uniform draw fixing the latent outcome.
        alive: Latent survival outcome if ventilated.
        life_years_remaining: Life-years gained if the patient survives.
    """

    id: int
    age: float
    age_band: str
    comorbidity: ComorbidityState
    severity_score: int
    survival_probability: float
    survival_draw: float
    alive: bool
    life_years_remaining: float

    @property
    def severity_label(self) -> str:
        return f">={CAPPED_SEVERITY}" if self.severity_score >= CAPPED_SEVERITY else str(self.severity_score)


@dataclass(frozen=True, eq=False)
class Cohort:
    """A trial's patient population stored column-wise.

    Arrays are aligned by patient position and made read-only at
    construction, so the latent outcomes can be shared by every policy
    evaluated on this cohort without risk of resampling.

    Attributes:
        age_bands: Band labels, in table order.
        band_counts: Number of patients drawn from each band (sums to N).
        band_index: Index into age_bands for each patient.
    """

    age_bands: Tuple[str, ...]
    band_counts: np.ndarray
    band_index: np.ndarray
    age: np.ndarray
    comorbidity: np.ndarray
    severity_score: np.ndarray
    survival_probability: np.ndarray
    survival_draw: np.ndarray
    alive: np.ndarray
    life_years_remaining: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "age_bands", tuple(self.age_bands))
        n = len(self.age)
        for f in fields(self):
            if f.name == "age_bands":
                continue
            arr = np.array(getattr(self, f.name), copy=True)
            if f.name != "band_counts" and len(arr) != n:
                raise InvalidConfiguration(
                    f"Cohort column {f.name} has length {len(arr)}, expected {n}"
                )
            arr.setflags(write=False)
            object.__setattr__(self, f.name, arr)
        if int(self.band_counts.sum()) != n:
            raise InvalidConfiguration("Band counts do not sum to the cohort size")

    def __len__(self) -> int:
        return len(self.age)

    def __getitem__(self, i: int) -> Patient:
        if not -len(self) <= i < len(self):
            raise IndexError(f"Patient index {i} out of range")
        i = i % len(self)
        return Patient(
            id=i,
            age=float(self.age[i]),
            age_band=self.age_bands[self.band_index[i]],
            comorbidity=ComorbidityState(int(self.comorbidity[i])),
            severity_score=int(self.severity_score[i]),
            survival_probability=float(self.survival_probability[i]),
            survival_draw=float(self.survival_draw[i]),
            alive=bool(self.alive[i]),
            life_years_remaining=float(self.life_years_remaining[i]),
        )

    def __iter__(self) -> Iterator[Patient]:
        for i in range(len(self)):
            yield self[i]

    @property
    def n_alive(self) -> int:
        """Patients whose latent outcome is survival."""
        return int(self.alive.sum())

    @property
    def total_life_years(self) -> float:
        """Potential life-years across the whole cohort."""
        return float(self.life_years_remaining.sum())

    @property
    def expected_life_years(self) -> np.ndarray:
        """survival_probability * life_years_remaining per patient."""
        return self.survival_probability * self.life_years_remaining

    def to_dataframe(self) -> pd.DataFrame:
        """One row per patient, in cohort order."""
        return pd.DataFrame({
            "age_group": pd.Categorical(
                [self.age_bands[i] for i in self.band_index], categories=list(self.age_bands)
            ),
            "age": self.age,
            "comorbidity": [ComorbidityState(int(c)).name.lower() for c in self.comorbidity],
            "severity_score": self.severity_score,
            "survival_probability": self.survival_probability,
            "survival_draw": self.survival_draw,
            "alive": self.alive,
            "life_years_remaining": self.life_years_remaining,
        })
