"""
paramflow.validation_visitor
============================

Transfer function of the parameter-validation analysis.

For one procedure, :class:`ParameterValidationVisitor` supplies

* :meth:`~ParameterValidationVisitor.initial_state` — the entry state
  (every trackable parameter ``NOT_VALIDATED``, or ``VALIDATED`` if it
  carries the validates-non-null attribute);
* :meth:`~ParameterValidationVisitor.transfer` — the block transfer
  handed to :class:`~paramflow.dataflow_engine.ForwardSolver`.

Operations are visited children-first (evaluation order).  Each kind is
looked up in one dispatch table; kinds without an entry leave the state
untouched.  After every operation the generic hazard check runs: if the
parent is about to dereference the operation's value and that value
may still be an unvalidated parameter, a hazard is recorded in the
procedure's :class:`~paramflow.interproc_analysis.HazardAccumulator`.

Validation idioms
-----------------
``String.IsNull*(x)``
    Static, single-parameter predicate on the string type: ``x`` is
    validated.
``new SomeException(info, ...)`` / ``GetObjectData(info, ...)``
    On a type deriving from the exception type, a constructor or the
    serialization hook whose first parameter is the serialization-info
    type validates its first argument.
Private callees
    Arguments bound to a parameter the callee dereferences unvalidated
    are hazards at the call site.
Lambdas and local functions
    A nested function shares the enclosing scope, so its hazards on
    enclosing parameters are attributed to the caller at the nested
    use-site.

Exit reconciliation (``validated_via_unhandled_throw``)
    A parameter that is non-null at the normal exit, but may be null
    where an unhandled exception is thrown, was guarded by a throw; its
    locations are validated in the exit state.  Only procedures with a
    throw outside every try region take part.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Set

from paramflow.collaborators import (
    EXCEPTION_TYPE,
    SERIALIZATION_INFO_TYPE,
    STRING_TYPE,
    Collaborators,
    Nullability,
    attribute_name_oracle,
)
from paramflow.config import AnalysisOptions
from paramflow.ctrlflow_graph import BasicBlock, ControlFlowGraph
from paramflow.interproc_analysis import HazardAccumulator, HazardousUsageMap
from paramflow.lattice import AnalysisState, ValidationState
from paramflow.locations import AbstractLocation, PointsToKind
from paramflow.operations import Operation, OperationKind
from paramflow.symbols import MethodKind, MethodSymbol, ParameterSymbol

logger = logging.getLogger(__name__)

SummaryLookup = Callable[[MethodSymbol], Optional[HazardousUsageMap]]

_Handler = Callable[["ParameterValidationVisitor", Operation, AnalysisState], None]


class ParameterValidationVisitor:
    """Per-procedure transfer function.

    Parameters
    ----------
    cfg : ControlFlowGraph
        Graph of the procedure under analysis.
    collaborators : Collaborators
    options : AnalysisOptions
    hazards : HazardAccumulator
        Receives every hazard found while solving this procedure.
    summary_of : callable(MethodSymbol) → HazardousUsageMap | None, optional
        Interprocedural lookup; ``None`` disables callee summaries.
    """

    def __init__(
        self,
        cfg: ControlFlowGraph,
        collaborators: Collaborators,
        options: AnalysisOptions,
        hazards: HazardAccumulator,
        summary_of: Optional[SummaryLookup] = None,
    ) -> None:
        self.cfg = cfg
        self.procedure: MethodSymbol = cfg.procedure
        self.collaborators = collaborators
        self.options = options
        self.hazards = hazards
        self.summary_of = summary_of
        self._reconciles = bool(
            options.validated_via_unhandled_throw and cfg.unhandled_throw_blocks()
        )

        self._owners: FrozenSet[int] = frozenset(
            id(m) for m in self.procedure.enclosing_methods()
        )
        self._has_attribute = (
            collaborators.has_validates_non_null_attribute
            or attribute_name_oracle(options.validated_not_null_attribute)
        )
        wkt = collaborators.well_known_types
        self._string_type = wkt.well_known_type(STRING_TYPE)
        self._exception_type = wkt.well_known_type(EXCEPTION_TYPE)
        self._serialization_info_type = wkt.well_known_type(SERIALIZATION_INFO_TYPE)

    # ------------------------------------------------------------------
    # Trackability
    # ------------------------------------------------------------------

    def trackable_parameters(self) -> List[ParameterSymbol]:
        """Reference-typed parameters of this procedure and, for nested
        functions, of every enclosing procedure."""
        return [
            p
            for m in self.procedure.enclosing_methods()
            for p in m.parameters
            if p.is_reference_type
        ]

    def is_trackable(self, parameter: Optional[ParameterSymbol]) -> bool:
        return (
            parameter is not None
            and parameter.is_reference_type
            and parameter.containing_method is not None
            and id(parameter.containing_method) in self._owners
        )

    def is_tracked(self, location: AbstractLocation) -> bool:
        return self.is_trackable(location.parameter)

    def new_state(self) -> AnalysisState:
        return AnalysisState(is_tracked=self.is_tracked)

    # ------------------------------------------------------------------
    # Location resolution
    # ------------------------------------------------------------------

    def _parameter_locations(self, parameter: ParameterSymbol) -> Set[AbstractLocation]:
        ptv = self.collaborators.points_to.parameter_points_to(parameter)
        if ptv.is_known:
            return set(ptv.locations)
        if ptv.kind is PointsToKind.UNKNOWN:
            return {AbstractLocation.for_parameter(parameter)}
        return set()

    def _locations(self, op: Operation) -> Set[AbstractLocation]:
        """Tracked locations *op*'s value may refer to.

        An unknown points-to value falls back to the location of the
        parameter the operation reads; if it reads none, the value is not
        attributed to any parameter.
        """
        ptv = self.collaborators.points_to.points_to(op)
        if ptv.is_known:
            return {loc for loc in ptv.locations if self.is_tracked(loc)}
        if ptv.kind is PointsToKind.NO_LOCATION:
            return set()
        parameter = op.referenced_parameter()
        if parameter is None or not self.is_trackable(parameter):
            return set()
        return self._parameter_locations(parameter) or {
            AbstractLocation.for_parameter(parameter)
        }

    def _not_validated(
        self, op: Operation, state: AnalysisState
    ) -> List[AbstractLocation]:
        return sorted(
            (loc for loc in self._locations(op) if state.is_hazardous(loc)),
            key=_location_order,
        )

    # ------------------------------------------------------------------
    # Entry seeding
    # ------------------------------------------------------------------

    def initial_state(self) -> AnalysisState:
        state = self.new_state()
        for parameter in self.trackable_parameters():
            ptv = self.collaborators.points_to.parameter_points_to(parameter)
            if ptv.kind is PointsToKind.NO_LOCATION:
                continue
            value = (
                ValidationState.VALIDATED
                if self._has_attribute(parameter)
                else ValidationState.NOT_VALIDATED
            )
            state.set_all(self._parameter_locations(parameter), value)
        return state

    # ------------------------------------------------------------------
    # Block transfer
    # ------------------------------------------------------------------

    def transfer(self, block: BasicBlock, state: AnalysisState) -> AnalysisState:
        for top in block.operations:
            for op in top.walk():
                self.visit(op, state)
        if block.is_exit and self._reconciles:
            self._reconcile_escapes(state)
        return state

    def visit(self, op: Operation, state: AnalysisState) -> None:
        handler = self._HANDLERS.get(op.kind)
        if handler is not None:
            handler(self, op, state)
        if _is_hazardous_if_null(op):
            self._check_hazard(op, self._not_validated(op, state))

    # ------------------------------------------------------------------
    # Hazards
    # ------------------------------------------------------------------

    def _check_hazard(self, op: Operation, locations: Iterable[AbstractLocation]) -> None:
        locations = list(locations)
        if not locations:
            return
        if self.collaborators.nullability.nullability(op) is Nullability.NOT_NULL:
            return
        self._record(op.syntax, locations)

    def _record(self, syntax, locations: Iterable[AbstractLocation]) -> None:
        for loc in locations:
            parameter = loc.parameter
            if parameter is not None and self.hazards.record(parameter, syntax):
                logger.debug(
                    "%r: hazardous use of %s at %r", self.procedure, parameter.name, syntax
                )

    # ------------------------------------------------------------------
    # Invocations
    # ------------------------------------------------------------------

    def _on_invocation(self, op: Operation, state: AnalysisState) -> None:
        method = op.method
        if method is None:
            return
        if method.is_nested_function:
            self._process_nested(method, state)
        else:
            self._process_regular(method, op.arguments, state)

    def _on_object_creation(self, op: Operation, state: AnalysisState) -> None:
        if op.method is not None:
            self._process_regular(op.method, op.arguments, state)

    def _process_regular(
        self, method: MethodSymbol, arguments: List[Operation], state: AnalysisState
    ) -> None:
        opts = self.options
        if self._string_type is not None and method.containing_type is self._string_type:
            if (
                method.is_static
                and method.name.startswith(opts.null_check_prefix)
                and len(method.parameters) == 1
                and len(arguments) == 1
            ):
                self._validate(arguments[0], state)
            return

        if (
            method.parameters
            and arguments
            and self._exception_type is not None
            and method.containing_type.derives_from(self._exception_type)
        ):
            first = method.parameters[0]
            if (
                self._serialization_info_type is not None
                and first.type is self._serialization_info_type
            ):
                if method.kind is MethodKind.CONSTRUCTOR or (
                    method.kind is MethodKind.ORDINARY
                    and method.name.lower() == opts.serialization_method_name.lower()
                ):
                    self._validate(arguments[0], state)
            return

        if self.summary_of is None or method.is_externally_visible:
            return
        summary = self.summary_of(method)
        if not summary:
            return
        for arg in arguments:
            callee_param = _bound_parameter(method, arguments, arg)
            if callee_param is not None and callee_param in summary:
                self._check_hazard(arg, self._not_validated(arg, state))

    def _process_nested(self, method: MethodSymbol, state: AnalysisState) -> None:
        if self.summary_of is None:
            return
        summary = self.summary_of(method)
        if not summary:
            return
        hazardous = sorted(state.hazardous_locations(), key=_location_order)
        if not hazardous:
            return
        for parameter, syntax in summary.items():
            if parameter in self.hazards:
                continue
            self._record(syntax, [loc for loc in hazardous if loc.parameter is parameter])

    def _validate(self, op: Operation, state: AnalysisState) -> None:
        state.set_all(
            self._not_validated(op, state),
            ValidationState.VALIDATED,
        )

    # ------------------------------------------------------------------
    # Exit reconciliation
    # ------------------------------------------------------------------

    def _reconcile_escapes(self, state: AnalysisState) -> None:
        nullability = self.collaborators.nullability
        for parameter in self.trackable_parameters():
            escaped = [
                loc for loc in self._parameter_locations(parameter)
                if state.is_hazardous(loc)
            ]
            if not escaped:
                continue
            if nullability.nullability_at_exit(parameter) is not Nullability.NOT_NULL:
                continue
            at_throws = nullability.nullability_at_unhandled_throws(parameter)
            if at_throws in (Nullability.UNSET, Nullability.NOT_NULL):
                continue
            logger.debug(
                "%r: %s validated via unhandled throw", self.procedure, parameter.name
            )
            state.set_all(escaped, ValidationState.VALIDATED)

    _HANDLERS: Dict[OperationKind, _Handler] = {
        OperationKind.INVOCATION: _on_invocation,
        OperationKind.OBJECT_CREATION: _on_object_creation,
    }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _is_hazardous_if_null(op: Operation) -> bool:
    """Is *op*'s value dereferenced by its parent?"""
    if op.kind is OperationKind.CONDITIONAL_ACCESS_INSTANCE:
        return False
    parent = op.parent
    if parent is None:
        return False
    if parent.is_member_reference:
        return parent.instance is op
    if parent.kind is OperationKind.ARRAY_ELEMENT_REFERENCE:
        return parent.array_reference is op
    if parent.kind is OperationKind.INVOCATION:
        return parent.instance is op
    return False


def _bound_parameter(
    method: MethodSymbol, arguments: List[Operation], arg: Operation
) -> Optional[ParameterSymbol]:
    if arg.parameter is not None:
        return arg.parameter
    for ordinal, candidate in enumerate(arguments):
        if candidate is arg:
            return method.parameter_at(ordinal)
    return None


def _location_order(loc: AbstractLocation):
    p = loc.parameter
    if p is None:
        return (1, 0, repr(loc.key))
    return (0, p.ordinal, p.name)


__all__ = ["ParameterValidationVisitor", "SummaryLookup"]
