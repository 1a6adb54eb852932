"""
paramflow.lattice
=================

The validation lattice and the per-block analysis state built on it.

Theory
------
A dataflow lattice ``(L, ⊑, ⊥, ⊤, ⊔)`` is a partially ordered set with a
least element, a greatest element and a join.  The validation lattice is
the four-element diamond::

              MAYBE_VALIDATED
               /           \\
        VALIDATED      NOT_VALIDATED
               \\           /
                  UNKNOWN

``UNKNOWN`` means "not yet observed on this path", ``MAYBE_VALIDATED``
means "validated on some paths only", which is still hazardous.

The analysis state is the map lattice ``AbstractLocation → L`` with a
pointwise join; keys absent from the map read as ``UNKNOWN``.

Public API
----------
    Lattice             - abstract base for lattice definitions
    ValidationState     - the four lattice elements
    ValidationLattice   - the diamond above
    AnalysisState       - location → ValidationState map at a block boundary
    StateLattice        - the map lattice over AnalysisState
"""

from __future__ import annotations

import abc
import copy
import enum
from typing import (
    Callable,
    Dict,
    Generic,
    Iterable,
    Iterator,
    Mapping,
    Optional,
    Tuple,
    TypeVar,
)

from paramflow.locations import AbstractLocation

L = TypeVar("L")          # Lattice value type


# ===========================================================================
# LATTICE: ABSTRACT BASE
# ===========================================================================

class Lattice(abc.ABC, Generic[L]):
    """Abstract base class for a dataflow lattice.

    A lattice must provide ``bottom()``, ``top()``, ``join(a, b)`` and
    ``leq(a, b)``.  ``eq`` and ``copy_value`` have defaults.
    """

    @abc.abstractmethod
    def bottom(self) -> L:
        """Return the least element ⊥."""
        ...

    @abc.abstractmethod
    def top(self) -> L:
        """Return the greatest element ⊤."""
        ...

    @abc.abstractmethod
    def join(self, a: L, b: L) -> L:
        """Return the least upper bound ``a ⊔ b``."""
        ...

    @abc.abstractmethod
    def leq(self, a: L, b: L) -> bool:
        """Return ``True`` iff ``a ⊑ b``."""
        ...

    def eq(self, a: L, b: L) -> bool:
        """Equality: ``a = b`` iff ``a ⊑ b`` and ``b ⊑ a``."""
        return self.leq(a, b) and self.leq(b, a)

    def is_bottom(self, a: L) -> bool:
        return self.eq(a, self.bottom())

    def join_all(self, values: Iterable[L]) -> L:
        """Join a sequence of values."""
        result = self.bottom()
        for v in values:
            result = self.join(result, v)
        return result

    def copy_value(self, v: L) -> L:
        """Return a deep copy of a lattice value.

        Default uses ``copy.deepcopy``.  Override for performance.
        """
        return copy.deepcopy(v)


# ===========================================================================
# VALIDATION LATTICE
# ===========================================================================

class ValidationState(enum.Enum):
    """Validation state of one abstract location."""

    UNKNOWN = "⊥"
    VALIDATED = "validated"
    NOT_VALIDATED = "not-validated"
    MAYBE_VALIDATED = "maybe-validated"

    @property
    def is_hazardous(self) -> bool:
        return self in (ValidationState.NOT_VALIDATED, ValidationState.MAYBE_VALIDATED)


# Pre-computed join table
_VALIDATION_JOIN: Dict[Tuple[ValidationState, ValidationState], ValidationState] = {}


def _build_validation_join() -> None:
    V = ValidationState
    for s in V:
        _VALIDATION_JOIN[(V.UNKNOWN, s)] = s
        _VALIDATION_JOIN[(s, V.UNKNOWN)] = s
        _VALIDATION_JOIN[(V.MAYBE_VALIDATED, s)] = V.MAYBE_VALIDATED
        _VALIDATION_JOIN[(s, V.MAYBE_VALIDATED)] = V.MAYBE_VALIDATED
        _VALIDATION_JOIN[(s, s)] = s
    # Incomparable pair
    _VALIDATION_JOIN[(V.VALIDATED, V.NOT_VALIDATED)] = V.MAYBE_VALIDATED
    _VALIDATION_JOIN[(V.NOT_VALIDATED, V.VALIDATED)] = V.MAYBE_VALIDATED


_build_validation_join()


class ValidationLattice(Lattice[ValidationState]):
    """``UNKNOWN ⊑ {VALIDATED, NOT_VALIDATED} ⊑ MAYBE_VALIDATED``."""

    def bottom(self) -> ValidationState:
        return ValidationState.UNKNOWN

    def top(self) -> ValidationState:
        return ValidationState.MAYBE_VALIDATED

    def join(self, a: ValidationState, b: ValidationState) -> ValidationState:
        return _VALIDATION_JOIN[(a, b)]

    def leq(self, a: ValidationState, b: ValidationState) -> bool:
        if a is ValidationState.UNKNOWN:
            return True
        if b is ValidationState.MAYBE_VALIDATED:
            return True
        return a is b

    def copy_value(self, v: ValidationState) -> ValidationState:
        return v


VALIDATION_LATTICE = ValidationLattice()


def merge(a: ValidationState, b: ValidationState) -> ValidationState:
    """Least upper bound of two validation states."""
    return _VALIDATION_JOIN[(a, b)]


# ===========================================================================
# ANALYSIS STATE
# ===========================================================================

class AnalysisState(Mapping[AbstractLocation, ValidationState]):
    """Location → validation state at one block boundary.

    Only locations accepted by the ``is_tracked`` predicate are stored;
    writes to anything else are dropped.  Reads of absent keys return
    ``UNKNOWN``.  Equality is structural and ignores ``UNKNOWN`` entries,
    since they are indistinguishable from absent ones.

    Parameters
    ----------
    values : mapping, optional
        Initial contents (filtered through *is_tracked*).
    is_tracked : callable(AbstractLocation) → bool, optional
        Trackability predicate; defaults to "track everything".
    """

    __slots__ = ("_values", "_is_tracked")

    def __init__(
        self,
        values: Optional[Mapping[AbstractLocation, ValidationState]] = None,
        is_tracked: Optional[Callable[[AbstractLocation], bool]] = None,
    ) -> None:
        self._is_tracked = is_tracked
        self._values: Dict[AbstractLocation, ValidationState] = {}
        for loc, value in (values or {}).items():
            self[loc] = value

    # ----- Mapping protocol -------------------------------------------------

    def __getitem__(self, location: AbstractLocation) -> ValidationState:
        return self._values[location]

    def __iter__(self) -> Iterator[AbstractLocation]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def get(  # type: ignore[override]
        self,
        location: AbstractLocation,
        default: ValidationState = ValidationState.UNKNOWN,
    ) -> ValidationState:
        return self._values.get(location, default)

    # ----- mutation ---------------------------------------------------------

    def is_tracked(self, location: AbstractLocation) -> bool:
        return self._is_tracked is None or self._is_tracked(location)

    def __setitem__(self, location: AbstractLocation, value: ValidationState) -> None:
        if self.is_tracked(location):
            self._values[location] = value

    def set_all(
        self, locations: Iterable[AbstractLocation], value: ValidationState
    ) -> None:
        for loc in locations:
            self[loc] = value

    def discard(self, location: AbstractLocation) -> None:
        self._values.pop(location, None)

    # ----- lattice operations -----------------------------------------------

    def hazardous_locations(self) -> Iterator[AbstractLocation]:
        """Locations currently NOT_VALIDATED or MAYBE_VALIDATED."""
        return (loc for loc, v in self._values.items() if v.is_hazardous)

    def is_hazardous(self, location: AbstractLocation) -> bool:
        return self.get(location).is_hazardous

    def clone(self) -> "AnalysisState":
        twin = AnalysisState(is_tracked=self._is_tracked)
        twin._values = dict(self._values)
        return twin

    def merge(self, other: "AnalysisState") -> "AnalysisState":
        """Pointwise join; returns a new state."""
        result = self.clone()
        for loc, value in other._values.items():
            result._values[loc] = merge(result.get(loc), value)
        return result

    def _significant(self) -> Dict[AbstractLocation, ValidationState]:
        return {
            loc: v for loc, v in self._values.items()
            if v is not ValidationState.UNKNOWN
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AnalysisState):
            return NotImplemented
        return self._significant() == other._significant()

    def __ne__(self, other: object) -> bool:
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        body = ", ".join(f"{loc!r}: {v.name}" for loc, v in self._values.items())
        return f"AnalysisState({{{body}}})"


class StateLattice(Lattice[AnalysisState]):
    """Map lattice over :class:`AnalysisState` with a shared trackability
    predicate; the solver's view of the per-block states."""

    def __init__(
        self, is_tracked: Optional[Callable[[AbstractLocation], bool]] = None
    ) -> None:
        self.is_tracked = is_tracked

    def bottom(self) -> AnalysisState:
        return AnalysisState(is_tracked=self.is_tracked)

    def top(self) -> AnalysisState:
        raise NotImplementedError(
            "StateLattice.top() is not representable (open location domain)"
        )

    def join(self, a: AnalysisState, b: AnalysisState) -> AnalysisState:
        return a.merge(b)

    def leq(self, a: AnalysisState, b: AnalysisState) -> bool:
        vl = VALIDATION_LATTICE
        return all(vl.leq(v, b.get(loc)) for loc, v in a.items())

    def eq(self, a: AnalysisState, b: AnalysisState) -> bool:
        return a == b

    def copy_value(self, v: AnalysisState) -> AnalysisState:
        return v.clone()


__all__ = [
    "Lattice",
    "ValidationState",
    "ValidationLattice",
    "VALIDATION_LATTICE",
    "merge",
    "AnalysisState",
    "StateLattice",
]
