"""
paramflow.operations
====================

The abstract operation tree the front end attaches to CFG blocks.

An :class:`Operation` is a tagged variant: its :class:`OperationKind`
decides which child slots are meaningful.  The transfer function
dispatches on the kind through a single table instead of a visitor class
hierarchy.

Each operation knows its syntactic ``parent`` (set when the parent is
constructed), which is what the hazard check needs to decide whether a
value is about to be dereferenced.

Child slots by kind
-------------------
    PARAMETER_REFERENCE       parameter
    LOCAL_REFERENCE           name
    FIELD/PROPERTY/EVENT/METHOD_REFERENCE
                              instance, name
    ARRAY_ELEMENT_REFERENCE   array_reference, indices
    INVOCATION                method, instance, arguments
    OBJECT_CREATION           method (constructor), arguments
    ARGUMENT                  value, parameter (the callee's parameter)
    CONDITIONAL_ACCESS        value (receiver), when_not_null
    CONDITIONAL_ACCESS_INSTANCE   (placeholder for the receiver)
    ASSIGNMENT                target, value
    CONVERSION / EXPRESSION_STATEMENT / RETURN / THROW
                              value
    BINARY                    operands
    ANONYMOUS_FUNCTION        method (the lambda symbol)

Helpers at the bottom of the module build well-formed trees.
"""

from __future__ import annotations

import enum
import functools
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence

from paramflow.symbols import MethodSymbol, ParameterSymbol, TypeSymbol


class OperationKind(enum.Enum):
    """Discriminator of the operation variant."""

    PARAMETER_REFERENCE = "parameter-reference"
    LOCAL_REFERENCE = "local-reference"
    FIELD_REFERENCE = "field-reference"
    PROPERTY_REFERENCE = "property-reference"
    EVENT_REFERENCE = "event-reference"
    METHOD_REFERENCE = "method-reference"
    ARRAY_ELEMENT_REFERENCE = "array-element-reference"
    INVOCATION = "invocation"
    OBJECT_CREATION = "object-creation"
    ARGUMENT = "argument"
    CONDITIONAL_ACCESS = "conditional-access"
    CONDITIONAL_ACCESS_INSTANCE = "conditional-access-instance"
    ASSIGNMENT = "assignment"
    CONVERSION = "conversion"
    EXPRESSION_STATEMENT = "expression-statement"
    RETURN = "return"
    THROW = "throw"
    BINARY = "binary"
    LITERAL = "literal"
    ANONYMOUS_FUNCTION = "anonymous-function"
    OTHER = "other"


MEMBER_REFERENCE_KINDS = frozenset({
    OperationKind.FIELD_REFERENCE,
    OperationKind.PROPERTY_REFERENCE,
    OperationKind.EVENT_REFERENCE,
    OperationKind.METHOD_REFERENCE,
})


@functools.total_ordering
@dataclass(frozen=True)
class SyntaxNode:
    """Source span of an operation.  Ordered by ``span_start``."""

    span_start: int
    span_end: int = -1
    text: str = ""

    def __lt__(self, other: "SyntaxNode") -> bool:
        if not isinstance(other, SyntaxNode):
            return NotImplemented
        return (self.span_start, self.span_end) < (other.span_start, other.span_end)

    def __repr__(self) -> str:
        if self.text:
            return f"Syntax({self.span_start}:{self.text!r})"
        return f"Syntax({self.span_start})"


@dataclass(eq=False)
class Operation:
    """One node of the operation tree.  See the module docstring for slots."""

    kind: OperationKind
    syntax: Optional[SyntaxNode] = None
    type: Optional[TypeSymbol] = None
    name: str = ""
    instance: Optional["Operation"] = None
    array_reference: Optional["Operation"] = None
    indices: List["Operation"] = field(default_factory=list)
    target: Optional["Operation"] = None
    value: Optional["Operation"] = None
    arguments: List["Operation"] = field(default_factory=list)
    operands: List["Operation"] = field(default_factory=list)
    when_not_null: Optional["Operation"] = None
    method: Optional[MethodSymbol] = None
    parameter: Optional[ParameterSymbol] = None
    parent: Optional["Operation"] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        for child in self.children():
            child.parent = self

    def children(self) -> Iterator["Operation"]:
        """Child operations in evaluation order."""
        if self.instance is not None:
            yield self.instance
        if self.array_reference is not None:
            yield self.array_reference
        yield from self.indices
        if self.target is not None:
            yield self.target
        if self.value is not None:
            yield self.value
        yield from self.arguments
        yield from self.operands
        if self.when_not_null is not None:
            yield self.when_not_null

    def walk(self) -> Iterator["Operation"]:
        """Post-order traversal: children first, then this operation."""
        for child in self.children():
            yield from child.walk()
        yield self

    @property
    def is_member_reference(self) -> bool:
        return self.kind in MEMBER_REFERENCE_KINDS

    def referenced_parameter(self) -> Optional[ParameterSymbol]:
        """The parameter this value reads, looking through arguments and
        conversions; ``None`` for anything else."""
        op: Optional[Operation] = self
        while op is not None:
            if op.kind is OperationKind.PARAMETER_REFERENCE:
                return op.parameter
            if op.kind in (OperationKind.ARGUMENT, OperationKind.CONVERSION):
                op = op.value
                continue
            return None
        return None

    def __repr__(self) -> str:
        where = f"@{self.syntax.span_start}" if self.syntax else ""
        return f"Operation({self.kind.value}{where})"


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def _syntax(pos: Optional[int], text: str = "") -> Optional[SyntaxNode]:
    return None if pos is None else SyntaxNode(pos, text=text)


def parameter_reference(
    parameter: ParameterSymbol, pos: Optional[int] = None
) -> Operation:
    return Operation(
        OperationKind.PARAMETER_REFERENCE,
        syntax=_syntax(pos, parameter.name),
        type=parameter.type,
        parameter=parameter,
    )


def local_reference(
    name: str, pos: Optional[int] = None, type: Optional[TypeSymbol] = None
) -> Operation:
    return Operation(
        OperationKind.LOCAL_REFERENCE, syntax=_syntax(pos, name),
        type=type, name=name,
    )


def member_reference(
    instance: Optional[Operation],
    name: str,
    pos: Optional[int] = None,
    kind: OperationKind = OperationKind.PROPERTY_REFERENCE,
) -> Operation:
    if kind not in MEMBER_REFERENCE_KINDS:
        raise ValueError(f"{kind} is not a member reference kind")
    return Operation(kind, syntax=_syntax(pos, name), name=name, instance=instance)


def array_element(
    array: Operation, indices: Sequence[Operation], pos: Optional[int] = None
) -> Operation:
    return Operation(
        OperationKind.ARRAY_ELEMENT_REFERENCE, syntax=_syntax(pos),
        array_reference=array, indices=list(indices),
    )


def argument(
    value: Operation, parameter: Optional[ParameterSymbol] = None
) -> Operation:
    return Operation(
        OperationKind.ARGUMENT, syntax=value.syntax,
        value=value, parameter=parameter,
    )


def _bind_arguments(
    method: MethodSymbol, values: Sequence[Operation]
) -> List[Operation]:
    bound = []
    for ordinal, value in enumerate(values):
        if value.kind is OperationKind.ARGUMENT:
            bound.append(value)
        else:
            bound.append(argument(value, method.parameter_at(ordinal)))
    return bound


def invocation(
    method: MethodSymbol,
    arguments: Sequence[Operation] = (),
    instance: Optional[Operation] = None,
    pos: Optional[int] = None,
) -> Operation:
    """Call *method*.  Plain values are wrapped in ARGUMENT operations bound
    to the callee parameter of the same ordinal."""
    return Operation(
        OperationKind.INVOCATION, syntax=_syntax(pos, method.name),
        method=method, instance=instance,
        arguments=_bind_arguments(method, arguments),
    )


def object_creation(
    constructor: MethodSymbol,
    arguments: Sequence[Operation] = (),
    pos: Optional[int] = None,
) -> Operation:
    return Operation(
        OperationKind.OBJECT_CREATION, syntax=_syntax(pos),
        type=constructor.containing_type, method=constructor,
        arguments=_bind_arguments(constructor, arguments),
    )


def conditional_access(
    receiver: Operation, when_not_null: Operation, pos: Optional[int] = None
) -> Operation:
    """``receiver?.<when_not_null>``; *when_not_null* must use a
    :func:`conditional_instance` as its receiver."""
    return Operation(
        OperationKind.CONDITIONAL_ACCESS, syntax=_syntax(pos),
        value=receiver, when_not_null=when_not_null,
    )


def conditional_instance(pos: Optional[int] = None) -> Operation:
    return Operation(OperationKind.CONDITIONAL_ACCESS_INSTANCE, syntax=_syntax(pos))


def assignment(
    target: Operation, value: Operation, pos: Optional[int] = None
) -> Operation:
    return Operation(
        OperationKind.ASSIGNMENT, syntax=_syntax(pos), target=target, value=value,
    )


def statement(value: Operation) -> Operation:
    return Operation(
        OperationKind.EXPRESSION_STATEMENT, syntax=value.syntax, value=value,
    )


def throw(value: Optional[Operation] = None, pos: Optional[int] = None) -> Operation:
    return Operation(OperationKind.THROW, syntax=_syntax(pos), value=value)


def binary(
    left: Operation, right: Operation, pos: Optional[int] = None, text: str = ""
) -> Operation:
    return Operation(
        OperationKind.BINARY, syntax=_syntax(pos, text), operands=[left, right],
    )


def literal(text: str = "null", pos: Optional[int] = None) -> Operation:
    return Operation(OperationKind.LITERAL, syntax=_syntax(pos, text), name=text)


__all__ = [
    "OperationKind",
    "MEMBER_REFERENCE_KINDS",
    "SyntaxNode",
    "Operation",
    "parameter_reference",
    "local_reference",
    "member_reference",
    "array_element",
    "argument",
    "invocation",
    "object_creation",
    "conditional_access",
    "conditional_instance",
    "assignment",
    "statement",
    "throw",
    "binary",
    "literal",
]
