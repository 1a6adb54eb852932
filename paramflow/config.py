"""
paramflow.config
================

Analysis options.

The solvers in this package take their knobs as keyword arguments with
defaults; :class:`AnalysisOptions` bundles the ones that the facade
threads through every procedure of a run, so that one frozen value
describes the whole configuration.

Usage::

    from paramflow.config import AnalysisOptions

    opts = AnalysisOptions(max_call_chain=4)
    opts = AnalysisOptions.from_mapping({"interprocedural": False})
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from paramflow.errors import ConfigurationError, ErrorCode


@dataclass(frozen=True)
class AnalysisOptions:
    """Options for one analysis run.

    Attributes
    ----------
    max_iterations : int
        Block-visit budget per procedure.  Exceeding it makes the
        procedure's result incomplete (no hazards reported).
    max_seconds : float, optional
        Wall-clock budget per procedure; ``None`` disables it.
    interprocedural : bool
        Consult summaries of private callees and nested functions.
    max_call_chain : int
        Deepest chain of on-demand callee analyses.  Deeper requests get
        the empty summary.
    validated_via_unhandled_throw : bool
        Apply the exit-time policy that treats "non-null at every normal
        exit, possibly null at an unhandled throw" as validation.
    validated_not_null_attribute : str
        Attribute class name that marks a parameter as validated on entry.
    null_check_prefix : str
        Name prefix of the static string null-check predicates.
    serialization_method_name : str
        Name of the exception serialization hook whose first argument is
        considered validated.
    """

    max_iterations: int = 10_000
    max_seconds: Optional[float] = None
    interprocedural: bool = True
    max_call_chain: int = 8
    validated_via_unhandled_throw: bool = True
    validated_not_null_attribute: str = "ValidatedNotNullAttribute"
    null_check_prefix: str = "IsNull"
    serialization_method_name: str = "GetObjectData"

    def __post_init__(self) -> None:
        if self.max_iterations <= 0:
            raise ConfigurationError(
                ErrorCode.INVALID_OPTION_VALUE,
                "max_iterations must be positive",
                "max_iterations",
            )
        if self.max_seconds is not None and self.max_seconds <= 0:
            raise ConfigurationError(
                ErrorCode.INVALID_OPTION_VALUE,
                "max_seconds must be positive or None",
                "max_seconds",
            )
        if self.max_call_chain < 0:
            raise ConfigurationError(
                ErrorCode.INVALID_OPTION_VALUE,
                "max_call_chain must not be negative",
                "max_call_chain",
            )

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "AnalysisOptions":
        """Build options from a plain mapping (e.g. a parsed config file).

        Raises
        ------
        ConfigurationError
            For unknown keys or values of the wrong type.
        """
        fields = {f.name: f for f in dataclasses.fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in values.items():
            if key not in fields:
                raise ConfigurationError(
                    ErrorCode.UNKNOWN_OPTION,
                    f"unknown analysis option '{key}'",
                    key,
                )
            kwargs[key] = _coerce(key, value, fields[key].default)
        return cls(**kwargs)

    def replace(self, **changes: Any) -> "AnalysisOptions":
        return dataclasses.replace(self, **changes)


def _coerce(key: str, value: Any, default: Any) -> Any:
    if key == "max_seconds":
        if value is None:
            return None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    elif isinstance(default, bool):
        if isinstance(value, bool):
            return value
    elif isinstance(default, int):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif isinstance(default, str):
        if isinstance(value, str) and value:
            return value
    raise ConfigurationError(
        ErrorCode.INVALID_OPTION_VALUE,
        f"invalid value {value!r} for option '{key}'",
        key,
    )


DEFAULT_OPTIONS = AnalysisOptions()

__all__ = ["AnalysisOptions", "DEFAULT_OPTIONS"]
