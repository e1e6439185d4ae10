"""Exception types raised by the simulator."""


class VentSimError(Exception):
    """Base class for simulator errors."""


class InvalidConfiguration(VentSimError, ValueError):
    """Raised when run parameters or calibration tables are unusable.

    Detected before any sampling starts, so no partial cohort is ever
    produced. Covers non-positive population sizes, resource counts outside
    [0, N], malformed or non-normalising tables, unknown policy names and
    coefficient combinations that would yield NaN probabilities.
    """


class LookupFailure(VentSimError, LookupError):
    """Raised when a severity bucket has no matching mortality row.

    This indicates a defect in the calibration data, not a transient
    condition, and should be fixed by correcting the table.
    """
