"""
paramflow.symbols
=================

Read-only symbol model supplied by the front end: types, methods and
parameters.

Symbols are compared by identity.  The analysis never mutates them; it
only reads names, kinds and ownership and uses parameters as keys of the
hazardous-usage summaries.

Public API
----------
    Accessibility    - declared accessibility of a type or member
    MethodKind       - ordinary / constructor / lambda / local function
    TypeSymbol       - a named type with an optional base type
    ParameterSymbol  - one formal parameter
    MethodSymbol     - a procedure (the unit of analysis)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple


class Accessibility(enum.Enum):
    """Declared accessibility."""

    PUBLIC = "public"
    PROTECTED = "protected"
    PROTECTED_INTERNAL = "protected internal"
    INTERNAL = "internal"
    PRIVATE_PROTECTED = "private protected"
    PRIVATE = "private"


# Accessibilities reachable from outside the defining assembly.
_EXTERNAL = frozenset({
    Accessibility.PUBLIC,
    Accessibility.PROTECTED,
    Accessibility.PROTECTED_INTERNAL,
})


class MethodKind(enum.Enum):
    """What kind of procedure a :class:`MethodSymbol` is."""

    ORDINARY = "ordinary"
    CONSTRUCTOR = "constructor"
    LAMBDA = "lambda"
    LOCAL_FUNCTION = "local-function"


@dataclass(eq=False)
class TypeSymbol:
    """A named type.

    Attributes
    ----------
    name : str
        Fully-qualified name, e.g. ``"System.String"``.
    is_reference_type : bool
        Only parameters of reference type are tracked.
    base_type : TypeSymbol, optional
        Direct base type.
    accessibility : Accessibility
    containing_type : TypeSymbol, optional
        Enclosing type for nested types.
    """

    name: str
    is_reference_type: bool = True
    base_type: Optional["TypeSymbol"] = None
    accessibility: Accessibility = Accessibility.PUBLIC
    containing_type: Optional["TypeSymbol"] = None

    def base_types_and_self(self) -> Iterator["TypeSymbol"]:
        current: Optional[TypeSymbol] = self
        seen = set()
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            yield current
            current = current.base_type

    def derives_from(self, candidate: Optional["TypeSymbol"]) -> bool:
        """``True`` if *candidate* is this type or one of its bases."""
        if candidate is None:
            return False
        return any(t is candidate for t in self.base_types_and_self())

    @property
    def is_externally_visible(self) -> bool:
        current: Optional[TypeSymbol] = self
        while current is not None:
            if current.accessibility not in _EXTERNAL:
                return False
            current = current.containing_type
        return True

    def __repr__(self) -> str:
        return f"TypeSymbol({self.name})"


@dataclass(eq=False)
class ParameterSymbol:
    """A formal parameter.

    ``containing_method`` is filled in by :class:`MethodSymbol` when the
    parameter is attached to it.
    """

    name: str
    type: TypeSymbol
    ordinal: int = 0
    attributes: Tuple[str, ...] = ()
    containing_method: Optional["MethodSymbol"] = field(
        default=None, repr=False
    )

    @property
    def is_reference_type(self) -> bool:
        return self.type.is_reference_type

    def __repr__(self) -> str:
        owner = self.containing_method.name if self.containing_method else "?"
        return f"ParameterSymbol({owner}.{self.name})"


@dataclass(eq=False)
class MethodSymbol:
    """A procedure.

    Attributes
    ----------
    name : str
    containing_type : TypeSymbol
    parameters : list of ParameterSymbol
        Ordinals and ``containing_method`` are assigned on construction.
    kind : MethodKind
    is_static, is_virtual, is_abstract, is_override : bool
    accessibility : Accessibility
    containing_method : MethodSymbol, optional
        The enclosing procedure of a lambda or local function.
    """

    name: str
    containing_type: TypeSymbol
    parameters: List[ParameterSymbol] = field(default_factory=list)
    kind: MethodKind = MethodKind.ORDINARY
    is_static: bool = False
    is_virtual: bool = False
    is_abstract: bool = False
    is_override: bool = False
    accessibility: Accessibility = Accessibility.PUBLIC
    containing_method: Optional["MethodSymbol"] = field(
        default=None, repr=False
    )

    def __post_init__(self) -> None:
        for ordinal, param in enumerate(self.parameters):
            param.ordinal = ordinal
            param.containing_method = self

    @property
    def is_nested_function(self) -> bool:
        return self.kind in (MethodKind.LAMBDA, MethodKind.LOCAL_FUNCTION)

    @property
    def is_externally_visible(self) -> bool:
        if self.is_nested_function:
            return False
        if self.accessibility not in _EXTERNAL:
            return False
        return self.containing_type.is_externally_visible

    @property
    def is_overridable(self) -> bool:
        return self.is_virtual or self.is_abstract or self.is_override

    def enclosing_methods(self) -> Iterator["MethodSymbol"]:
        """This method followed by every enclosing procedure, innermost first."""
        current: Optional[MethodSymbol] = self
        while current is not None:
            yield current
            current = current.containing_method

    def parameter_at(self, ordinal: int) -> Optional[ParameterSymbol]:
        if 0 <= ordinal < len(self.parameters):
            return self.parameters[ordinal]
        return None

    def __repr__(self) -> str:
        return f"MethodSymbol({self.containing_type.name}.{self.name})"


__all__ = [
    "Accessibility",
    "MethodKind",
    "TypeSymbol",
    "ParameterSymbol",
    "MethodSymbol",
]
