"""
Partitions of the persisted clinical state.

The clinical store persists a fixed set of top-level partitions. Each is
either SENSITIVE (patient-identifying or clinical, encrypted at rest) or
PLAIN (structure and preferences, stored in the clear). Names outside the
known set pass through untouched and are never encrypted.

At the serialization boundary every present partition becomes one of:
  SealedPartition: a sensitive partition now held as ciphertext text
  PlainPartition:  any partition held as its structured value
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


class Sensitivity(Enum):
    """Whether a partition is encrypted at rest."""
    SENSITIVE = "sensitive"
    PLAIN = "plain"


class Partition(str, Enum):
    """Known partitions of the clinical store."""
    PATIENTS = "patients"
    ASSESSMENTS = "assessments"
    VITALS = "vitals"
    GOALS = "goals"
    EDUCATION = "education"
    CONFIG = "config"
    WELCOMED = "welcomed"
    TOUR_COMPLETED = "tourCompleted"


DEFAULT_SENSITIVE = frozenset({
    Partition.PATIENTS,
    Partition.ASSESSMENTS,
    Partition.VITALS,
})

# Key under which a persist middleware nests the state: {"state": ..., "version": N}
STATE_KEY = "state"


@dataclass(frozen=True)
class SealedPartition:
    """A sensitive partition replaced by its ciphertext string."""
    name: str
    ciphertext: str

    @property
    def stored_value(self) -> str:
        return self.ciphertext


@dataclass(frozen=True)
class PlainPartition:
    """A partition stored as its own structured value."""
    name: str
    value: Any

    @property
    def stored_value(self) -> Any:
        return self.value


PartitionValue = Union[SealedPartition, PlainPartition]


def classify(name: str, sensitive: frozenset = DEFAULT_SENSITIVE) -> Sensitivity:
    """Classify a partition name. Unknown names are always PLAIN."""
    try:
        partition = Partition(name)
    except ValueError:
        return Sensitivity.PLAIN
    return Sensitivity.SENSITIVE if partition in sensitive else Sensitivity.PLAIN


def locate_partitions(state: dict) -> dict:
    """
    Return the dict that holds the partitions of a state object.

    A persist middleware wraps state as {"state": {...}, "version": N};
    in that shape partitions live under "state". Otherwise they are the
    top-level keys of the object itself.
    """
    inner = state.get(STATE_KEY)
    if isinstance(inner, dict):
        return inner
    return state


def replace_partitions(state: dict, partitions: dict) -> dict:
    """Shallow copy of state with its partition container swapped for partitions."""
    if isinstance(state.get(STATE_KEY), dict):
        result = dict(state)
        result[STATE_KEY] = partitions
        return result
    return partitions


def assemble(container: dict, values: list[PartitionValue]) -> dict:
    """Apply partition values onto a copy of their container, keeping key order."""
    result = dict(container)
    for value in values:
        result[value.name] = value.stored_value
    return result
