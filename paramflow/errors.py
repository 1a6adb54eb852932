# paramflow/errors.py
"""
paramflow Error Types
=====================

The analysis is advisory: most failure modes are approximation policies
(see :mod:`paramflow.analysis`) and never reach the caller.  The types
below exist so those policies have something precise to catch, and so
that configuration mistakes fail loudly.

Error Hierarchy:
────────────────
    ParamflowError (base)
    ├── ConfigurationError      - invalid AnalysisOptions (escapes to callers)
    ├── MalformedGraphError     - CFG failed structural validation
    └── AnalysisBudgetExceeded  - iteration / wall-clock budget overrun

Error Codes:
────────────
  - PF-1xxx: configuration
  - PF-2xxx: control-flow graph
  - PF-3xxx: analysis budget
"""

from __future__ import annotations

from enum import Enum, unique
from typing import Any, Optional


@unique
class ErrorCode(Enum):
    """Stable identifiers for every error raised by the package."""

    # Configuration (1xxx)
    UNKNOWN_OPTION = 1001
    INVALID_OPTION_VALUE = 1002

    # Control-flow graph (2xxx)
    MISSING_ENTRY_OR_EXIT = 2001
    FOREIGN_BLOCK = 2002
    DANGLING_EDGE = 2003

    # Budget (3xxx)
    ITERATION_BUDGET = 3001
    TIME_BUDGET = 3002

    @property
    def code(self) -> str:
        return f"PF-{self.value:04d}"


class ParamflowError(Exception):
    """Base class for all paramflow errors.

    Parameters
    ----------
    code : ErrorCode
        Machine-readable identifier.
    message : str
        Human-readable description.
    subject : Any, optional
        The object the error is about (a procedure, a block, an option
        name).  Kept for logging; never mutated.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        subject: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.subject = subject

    def __str__(self) -> str:
        if self.subject is None:
            return f"{self.code.code}: {self.message}"
        return f"{self.code.code}: {self.message} [{self.subject!r}]"


class ConfigurationError(ParamflowError):
    """Raised for unknown or ill-typed analysis options."""


class MalformedGraphError(ParamflowError):
    """Raised by :meth:`ControlFlowGraph.validate` for inconsistent graphs."""


class AnalysisBudgetExceeded(ParamflowError):
    """Raised by the solver when a procedure exceeds its budget.

    Attributes
    ----------
    iterations : int
        Block visits performed before the budget tripped.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        subject: Optional[Any] = None,
        iterations: int = 0,
    ) -> None:
        super().__init__(code, message, subject)
        self.iterations = iterations


__all__ = [
    "ErrorCode",
    "ParamflowError",
    "ConfigurationError",
    "MalformedGraphError",
    "AnalysisBudgetExceeded",
]
