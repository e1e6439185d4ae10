"""Core foundation layer: entities, errors, calibration tables, scenario configuration."""

from ventsim.core.calibration import (
    AgeBand,
    AgeOutcomeTable,
    SeverityBucket,
    SeverityOutcomeTable,
    default_age_table,
    default_severity_table,
)
from ventsim.core.entities import AllocationOutcome, ComorbidityState
from ventsim.core.errors import InvalidConfiguration, LookupFailure, VentSimError
from ventsim.core.scenario import CohortParams, Scenario

__all__ = [
    "AgeBand",
    "AgeOutcomeTable",
    "SeverityBucket",
    "SeverityOutcomeTable",
    "default_age_table",
    "default_severity_table",
    "AllocationOutcome",
    "ComorbidityState",
    "InvalidConfiguration",
    "LookupFailure",
    "VentSimError",
    "CohortParams",
    "Scenario",
]
