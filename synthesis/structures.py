# structures.py
"""Data structures shared by the profiler, the strategies and the synthesizer."""
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from . import config
from .predicates import Predicate


@dataclass(frozen=True)
class DerivedField:
    """Categorical partition key cut out of a compound string field."""
    name: str
    source: str
    separator: str
    index: int

    def derive(self, value):
        if not isinstance(value, str):
            return None
        parts = value.split(self.separator)
        try:
            return parts[self.index]
        except IndexError:
            return None


@dataclass(frozen=True)
class EntitySchema:
    """Role of each well-known entity attribute used for filtering."""
    numeric_fields: Tuple[str, ...] = ()
    categorical_fields: Tuple[str, ...] = ()
    boolean_fields: Tuple[str, ...] = ()
    timestamp_field: Optional[str] = None
    derived_fields: Tuple[DerivedField, ...] = ()
    id_field: str = config.ID_FIELD

    def grouped_fields(self):
        """Every field profiled with its own grouping pass, derived ones included."""
        return list(self.categorical_fields) + [d.name for d in self.derived_fields]

    def derived(self, name):
        for derived in self.derived_fields:
            if derived.name == name:
                return derived
        return None


USER_SCHEMA = EntitySchema(
    numeric_fields=('age', 'salary'),
    categorical_fields=('status', 'department', 'location'),
    boolean_fields=('isManager',),
    timestamp_field='joinDate',
    derived_fields=(DerivedField('emailDomain', 'email', '@', 1),),
)


@dataclass(frozen=True)
class NumericStats:
    min: Any
    max: Any
    avg: float

    @property
    def span(self):
        return self.max - self.min

    @property
    def integral(self):
        """True when both bounds are integers (ranges are then rounded)."""
        return isinstance(self.min, int) and isinstance(self.max, int) \
            and not isinstance(self.min, bool)


@dataclass(frozen=True)
class DistributionSnapshot:
    """Read-only summary of a collection at profiling time."""
    total_count: int
    numeric_stats: Dict[str, NumericStats] = field(default_factory=dict)
    categorical_counts: Dict[str, Dict[Any, int]] = field(default_factory=dict)
    boolean_true_counts: Dict[str, int] = field(default_factory=dict)
    timestamp_range: Optional[Tuple[Any, Any]] = None


@dataclass(frozen=True)
class Candidate:
    """One synthesis attempt: the proposed predicate and its observed count."""
    predicate: Predicate
    count: int
    strategy: str
    distance: int


@dataclass(frozen=True)
class SynthesisResult:
    predicate: Predicate
    count: int
    target_count: int
    margin: int = 0
    attempts: int = 0
    strategy: Optional[str] = None
    history: Tuple[Candidate, ...] = ()

    @property
    def within_margin(self):
        return within_margin(self.count, self.target_count, self.margin)


def margin_of_error(target_count, ratio=config.MARGIN_RATIO):
    return math.ceil(target_count * ratio)


def within_margin(count, target_count, margin):
    return target_count <= count <= target_count + margin


def distance_from_range(count, low, high):
    """0 inside [low, high], otherwise the gap to the nearer bound."""
    if count < low:
        return low - count
    if count > high:
        return count - high
    return 0
