"""
paramflow.collaborators
=======================

Interfaces of the external analyses the engine consumes, plus small
mapping-backed implementations for hosts that already have the facts in
hand (and for tests).

    ControlFlowGraphProvider  — procedure → ControlFlowGraph | None
    NullabilityOracle         — companion null analysis
    WellKnownTypeProvider     — name → TypeSymbol
    AttributeOracle           — "validates non-null" contract check
    Collaborators             — the bundle handed to the analysis

The points-to protocol lives in :mod:`paramflow.locations` next to the
location model it produces.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import (
    Callable,
    Dict,
    Iterable,
    Optional,
    Protocol,
    runtime_checkable,
)

from paramflow.ctrlflow_graph import ControlFlowGraph
from paramflow.locations import PointsToOracle, SimplePointsTo
from paramflow.operations import Operation
from paramflow.symbols import MethodSymbol, ParameterSymbol, TypeSymbol

# Names looked up through the well-known type provider.
STRING_TYPE = "System.String"
EXCEPTION_TYPE = "System.Exception"
SERIALIZATION_INFO_TYPE = "System.Runtime.Serialization.SerializationInfo"


class Nullability(enum.Enum):
    """Companion null-analysis fact at a program point."""

    NOT_NULL = "not-null"
    MAYBE_NULL = "maybe-null"
    UNSET = "unset"          # no fact available


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

@runtime_checkable
class ControlFlowGraphProvider(Protocol):
    def get_control_flow_graph(
        self, procedure: MethodSymbol
    ) -> Optional[ControlFlowGraph]:
        """The procedure's CFG, or ``None`` when it has no analysable body."""
        ...


@runtime_checkable
class NullabilityOracle(Protocol):
    def nullability(self, operation: Operation) -> Nullability:
        """Null-ness of *operation*'s value where it is evaluated."""
        ...

    def nullability_at_exit(self, parameter: ParameterSymbol) -> Nullability:
        """Null-ness of *parameter* at entry of the exit block."""
        ...

    def nullability_at_unhandled_throws(
        self, parameter: ParameterSymbol
    ) -> Nullability:
        """Merged null-ness of *parameter* over every unhandled throw;
        ``UNSET`` if the procedure has none."""
        ...


@runtime_checkable
class WellKnownTypeProvider(Protocol):
    def well_known_type(self, name: str) -> Optional[TypeSymbol]:
        ...


AttributeOracle = Callable[[ParameterSymbol], bool]


# ---------------------------------------------------------------------------
# Mapping-backed implementations
# ---------------------------------------------------------------------------

class MappingCfgProvider:
    """CFGs registered up front, keyed by procedure identity."""

    def __init__(self, graphs: Iterable[ControlFlowGraph] = ()) -> None:
        self._graphs: Dict[int, ControlFlowGraph] = {}
        for g in graphs:
            self.register(g)

    def register(self, cfg: ControlFlowGraph) -> ControlFlowGraph:
        self._graphs[id(cfg.procedure)] = cfg
        return cfg

    def get_control_flow_graph(
        self, procedure: MethodSymbol
    ) -> Optional[ControlFlowGraph]:
        return self._graphs.get(id(procedure))


class MappingNullability:
    """Nullability facts given explicitly; everything else is ``UNSET``."""

    def __init__(self) -> None:
        self._at_operation: Dict[int, Nullability] = {}
        self._at_exit: Dict[int, Nullability] = {}
        self._at_throws: Dict[int, Nullability] = {}

    def set(self, operation: Operation, value: Nullability) -> None:
        self._at_operation[id(operation)] = value

    def set_exit(
        self,
        parameter: ParameterSymbol,
        at_exit: Nullability,
        at_unhandled_throws: Nullability = Nullability.UNSET,
    ) -> None:
        self._at_exit[id(parameter)] = at_exit
        self._at_throws[id(parameter)] = at_unhandled_throws

    def nullability(self, operation: Operation) -> Nullability:
        return self._at_operation.get(id(operation), Nullability.UNSET)

    def nullability_at_exit(self, parameter: ParameterSymbol) -> Nullability:
        return self._at_exit.get(id(parameter), Nullability.UNSET)

    def nullability_at_unhandled_throws(
        self, parameter: ParameterSymbol
    ) -> Nullability:
        return self._at_throws.get(id(parameter), Nullability.UNSET)


class WellKnownTypes:
    """Name → type registry."""

    def __init__(self, types: Iterable[TypeSymbol] = ()) -> None:
        self._types: Dict[str, TypeSymbol] = {t.name: t for t in types}

    def add(self, typ: TypeSymbol) -> TypeSymbol:
        self._types[typ.name] = typ
        return typ

    def well_known_type(self, name: str) -> Optional[TypeSymbol]:
        return self._types.get(name)


def attribute_name_oracle(attribute_name: str) -> AttributeOracle:
    """Oracle matching a parameter attribute by class name, ignoring case.

    ``"ValidatedNotNull"`` and ``"ValidatedNotNullAttribute"`` both match
    when *attribute_name* is ``"ValidatedNotNullAttribute"``.
    """
    full = attribute_name.lower()
    short = full[: -len("attribute")] if full.endswith("attribute") else full

    def has_attribute(parameter: ParameterSymbol) -> bool:
        for attr in parameter.attributes:
            name = attr.rsplit(".", 1)[-1].lower()
            if name == full or name == short:
                return True
        return False

    return has_attribute


@dataclass
class Collaborators:
    """Everything the engine consumes from the outside world.

    Attributes
    ----------
    cfg_provider : ControlFlowGraphProvider
    points_to : PointsToOracle
        Defaults to :class:`SimplePointsTo`.
    nullability : NullabilityOracle
        Defaults to an empty :class:`MappingNullability`.
    well_known_types : WellKnownTypeProvider
        Defaults to an empty registry (no idiom recognition).
    has_validates_non_null_attribute : AttributeOracle, optional
        ``None`` means "match by the configured attribute name".
    """

    cfg_provider: ControlFlowGraphProvider
    points_to: PointsToOracle = field(default_factory=SimplePointsTo)
    nullability: NullabilityOracle = field(default_factory=MappingNullability)
    well_known_types: WellKnownTypeProvider = field(default_factory=WellKnownTypes)
    has_validates_non_null_attribute: Optional[AttributeOracle] = None


def standard_well_known_types(extra: Iterable[TypeSymbol] = ()) -> WellKnownTypes:
    """Registry with the string, exception and serialization-info types."""
    registry = WellKnownTypes([
        TypeSymbol(STRING_TYPE),
        TypeSymbol(EXCEPTION_TYPE),
        TypeSymbol(SERIALIZATION_INFO_TYPE),
    ])
    for typ in extra:
        registry.add(typ)
    return registry


__all__ = [
    "STRING_TYPE",
    "EXCEPTION_TYPE",
    "SERIALIZATION_INFO_TYPE",
    "Nullability",
    "ControlFlowGraphProvider",
    "NullabilityOracle",
    "WellKnownTypeProvider",
    "AttributeOracle",
    "MappingCfgProvider",
    "MappingNullability",
    "WellKnownTypes",
    "attribute_name_oracle",
    "Collaborators",
    "standard_well_known_types",
]
