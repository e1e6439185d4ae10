"""Core entity definitions for the simulation.

Enums shared across the code base, placed here to avoid circular imports.
"""

from enum import IntEnum


class ComorbidityState(IntEnum):
    """Chronic illness burden. Higher value = heavier burden."""
    NONE = 0
    MAJOR = 1
    SEVERE = 2


class AllocationOutcome(IntEnum):
    """Per-patient result of applying an allocation policy."""
    RESOURCE_GRANTED_SURVIVED = 0
    RESOURCE_GRANTED_DIED = 1
    RESOURCE_DENIED = 2

    @property
    def label(self) -> str:
        """Display label used in outcome tables."""
        return OUTCOME_LABELS[self]

    @property
    def granted(self) -> bool:
        """Whether the patient received the resource."""
        return self is not AllocationOutcome.RESOURCE_DENIED


OUTCOME_LABELS = {
    AllocationOutcome.RESOURCE_GRANTED_SURVIVED: "ventilator (survival)",
    AllocationOutcome.RESOURCE_GRANTED_DIED: "ventilator (death)",
    AllocationOutcome.RESOURCE_DENIED: "palliative care",
}
