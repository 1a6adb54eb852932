"""
paramflow.locations
===================

Abstract location model and the points-to collaborator interface.

Layers
------
  AbstractLocation  — immutable handle of one storage cell
  PointsToValue     — what an operation may point to
  PointsToOracle    — protocol of the external points-to analysis
  SimplePointsTo    — parameter-only oracle with explicit overrides, for
                      hosts without a real points-to analysis (and tests)

Locations are created by the points-to collaborator and only ever
*referenced* by the analysis state.  Equality is by value: two handles
with the same owning symbol and key denote the same cell.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import (
    Any,
    Dict,
    FrozenSet,
    Hashable,
    Iterable,
    Optional,
    Protocol,
    runtime_checkable,
)

from paramflow.operations import Operation, OperationKind
from paramflow.symbols import ParameterSymbol


# ---------------------------------------------------------------------------
# 0. Abstract locations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AbstractLocation:
    """One abstract storage cell.

    Attributes
    ----------
    key : hashable
        Collaborator-defined identity (allocation site, field path, …).
    symbol : optional
        Owning symbol, e.g. the :class:`ParameterSymbol` whose argument
        value lives here.  Used to decide trackability.
    """

    key: Hashable
    symbol: Optional[Any] = None

    @classmethod
    def for_parameter(cls, parameter: ParameterSymbol) -> "AbstractLocation":
        """The location of the value a parameter holds on entry."""
        return cls(("parameter", id(parameter)), parameter)

    @property
    def parameter(self) -> Optional[ParameterSymbol]:
        return self.symbol if isinstance(self.symbol, ParameterSymbol) else None

    def __repr__(self) -> str:
        if self.parameter is not None:
            return f"Loc({self.parameter.name})"
        return f"Loc({self.key!r})"


# ---------------------------------------------------------------------------
# 1. Points-to values
# ---------------------------------------------------------------------------

class PointsToKind(enum.Enum):
    KNOWN = "known"              # locations is exact
    UNKNOWN = "unknown"          # could be anything
    NO_LOCATION = "no-location"  # not a reference (value type, literal, …)


@dataclass(frozen=True)
class PointsToValue:
    kind: PointsToKind
    locations: FrozenSet[AbstractLocation] = frozenset()

    @classmethod
    def known(cls, locations: Iterable[AbstractLocation]) -> "PointsToValue":
        return cls(PointsToKind.KNOWN, frozenset(locations))

    @property
    def is_known(self) -> bool:
        return self.kind is PointsToKind.KNOWN


UNKNOWN_POINTS_TO = PointsToValue(PointsToKind.UNKNOWN)
NO_LOCATION = PointsToValue(PointsToKind.NO_LOCATION)


# ---------------------------------------------------------------------------
# 2. Collaborator protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class PointsToOracle(Protocol):
    """What the analysis needs from a points-to analysis."""

    def points_to(self, operation: Operation) -> PointsToValue:
        """Locations *operation*'s value may refer to."""
        ...

    def parameter_points_to(self, parameter: ParameterSymbol) -> PointsToValue:
        """Locations a parameter refers to on procedure entry."""
        ...


class SimplePointsTo:
    """Points-to oracle that only knows about parameters.

    Parameter references resolve to :meth:`AbstractLocation.for_parameter`,
    arguments and conversions look through to their value, and
    value-typed parameters have no location.  Everything else has no
    location unless an override says otherwise, so hosts can describe
    aliasing (``q = p``) explicitly.

    Parameters
    ----------
    overrides : dict, optional
        Map from operation to the :class:`PointsToValue` to report for it.
    """

    def __init__(
        self, overrides: Optional[Dict[Operation, PointsToValue]] = None
    ) -> None:
        self._overrides: Dict[int, PointsToValue] = {}
        for op, value in (overrides or {}).items():
            self.set(op, value)

    def set(self, operation: Operation, value: PointsToValue) -> None:
        self._overrides[id(operation)] = value

    def alias(self, operation: Operation, parameter: ParameterSymbol) -> None:
        """Record that *operation* refers to *parameter*'s entry value."""
        self.set(operation, self.parameter_points_to(parameter))

    def points_to(self, operation: Operation) -> PointsToValue:
        override = self._overrides.get(id(operation))
        if override is not None:
            return override
        kind = operation.kind
        if kind is OperationKind.PARAMETER_REFERENCE and operation.parameter:
            return self.parameter_points_to(operation.parameter)
        if kind in (OperationKind.ARGUMENT, OperationKind.CONVERSION):
            if operation.value is not None:
                return self.points_to(operation.value)
        return NO_LOCATION

    def parameter_points_to(self, parameter: ParameterSymbol) -> PointsToValue:
        if not parameter.is_reference_type:
            return NO_LOCATION
        return PointsToValue.known([AbstractLocation.for_parameter(parameter)])


__all__ = [
    "AbstractLocation",
    "PointsToKind",
    "PointsToValue",
    "UNKNOWN_POINTS_TO",
    "NO_LOCATION",
    "PointsToOracle",
    "SimplePointsTo",
]
