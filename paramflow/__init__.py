"""
paramflow — Parameter Validation Dataflow Analysis
==================================================

Flow-sensitive, interprocedural analysis that finds reference-typed
parameters dereferenced before they are proven non-null on every path.
The result for each procedure is a map from parameter to the earliest
unguarded use-site, the raw material of a "missing null check"
diagnostic.

The front end (CFG construction, points-to and null analyses) is out of
scope: hosts supply it through the protocols in
:mod:`paramflow.collaborators` and :mod:`paramflow.locations`.

Modules
-------
errors
    Error hierarchy and codes.
config
    ``AnalysisOptions``.
symbols
    Types, methods and parameters.
operations
    The operation tree attached to CFG blocks.
ctrlflow_graph
    Basic blocks, edges, exception regions.
locations
    Abstract locations and the points-to protocol.
collaborators
    Remaining collaborator protocols and mapping-backed defaults.
lattice
    Validation lattice and per-block analysis state.
dataflow_engine
    Forward worklist fixed-point solver.
interproc_analysis
    Hazard summaries, summary cache, summarizer.
validation_visitor
    The transfer function.
analysis
    ``ParameterValidationAnalysis`` and ``analyze()``.

Quick start
-----------
>>> from paramflow import analyze, Collaborators, MappingCfgProvider
>>> result = analyze(method, Collaborators(MappingCfgProvider([cfg])))
>>> dict(result.hazardous_usages)
{ParameterSymbol(M.p): Syntax(12:'p')}
"""

from __future__ import annotations

import importlib
import logging
import sys
from typing import TYPE_CHECKING, List

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.1.0"
__author__ = "paramflow contributors"
__license__ = "MIT"
__all__: List[str] = []          # populated incrementally below

_log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Internal registry: module_name → names re-exported at package level.
# Order matters: leaves first.
# ---------------------------------------------------------------------------

_MODULES = {
    "errors": [
        "ErrorCode",
        "ParamflowError",
        "ConfigurationError",
        "MalformedGraphError",
        "AnalysisBudgetExceeded",
    ],
    "config": [
        "AnalysisOptions",
        "DEFAULT_OPTIONS",
    ],
    "symbols": [
        "Accessibility",
        "MethodKind",
        "TypeSymbol",
        "ParameterSymbol",
        "MethodSymbol",
    ],
    "operations": [
        "OperationKind",
        "SyntaxNode",
        "Operation",
    ],
    "ctrlflow_graph": [
        "EdgeKind",
        "RegionKind",
        "BasicBlock",
        "CFGEdge",
        "ControlFlowGraph",
    ],
    "locations": [
        "AbstractLocation",
        "PointsToKind",
        "PointsToValue",
        "PointsToOracle",
        "SimplePointsTo",
    ],
    "collaborators": [
        "Nullability",
        "Collaborators",
        "MappingCfgProvider",
        "MappingNullability",
        "WellKnownTypes",
        "standard_well_known_types",
    ],
    "lattice": [
        "ValidationState",
        "ValidationLattice",
        "AnalysisState",
        "StateLattice",
    ],
    "dataflow_engine": [
        "DataflowResult",
        "ForwardSolver",
    ],
    "interproc_analysis": [
        "HazardousUsageMap",
        "HazardAccumulator",
        "SummaryCache",
        "Transient",
        "InterproceduralSummarizer",
    ],
    "validation_visitor": [
        "ParameterValidationVisitor",
    ],
    "analysis": [
        "ParameterValidationResult",
        "ParameterValidationAnalysis",
        "analyze",
    ],
}


def _import_names(module_rel_name: str, names: List[str]) -> None:
    """Import *names* from a submodule and bind them in the package namespace."""
    fq_name = f"{__name__}.{module_rel_name}"
    try:
        mod = importlib.import_module(fq_name)
    except ImportError as exc:
        raise ImportError(
            f"paramflow: submodule '{module_rel_name}' failed to import: {exc}"
        ) from exc

    current_module = sys.modules[__name__]
    for name in names:
        obj = getattr(mod, name, None)
        if obj is None:
            raise AttributeError(
                f"paramflow.{module_rel_name} does not export '{name}'"
            )
        setattr(current_module, name, obj)
        __all__.append(name)

    # paramflow.lattice.AnalysisState works as well as paramflow.AnalysisState
    setattr(current_module, module_rel_name, mod)
    if module_rel_name not in __all__:
        __all__.append(module_rel_name)


for _mod, _names in _MODULES.items():
    _import_names(_mod, _names)

del _mod, _names

# ---------------------------------------------------------------------------
# Package-level utilities
# ---------------------------------------------------------------------------


def list_submodules() -> List[str]:
    """Return the names of all submodules in the package."""
    return sorted(_MODULES)


def substrate_info() -> dict:
    """Return a dict of metadata about the package, for diagnostics."""
    loaded = []
    missing = []
    for mod_name in list_submodules():
        if f"{__name__}.{mod_name}" in sys.modules:
            loaded.append(mod_name)
        else:
            missing.append(mod_name)
    return {
        "package": __name__,
        "version": __version__,
        "python": sys.version,
        "loaded_submodules": loaded,
        "missing_submodules": missing,
        "all_exports": list(__all__),
    }


__all__ += ["list_submodules", "substrate_info", "__version__"]

if TYPE_CHECKING:
    from .analysis import (
        ParameterValidationAnalysis as ParameterValidationAnalysis,
        ParameterValidationResult as ParameterValidationResult,
        analyze as analyze,
    )
    from .collaborators import (
        Collaborators as Collaborators,
        MappingCfgProvider as MappingCfgProvider,
        MappingNullability as MappingNullability,
        Nullability as Nullability,
        WellKnownTypes as WellKnownTypes,
        standard_well_known_types as standard_well_known_types,
    )
    from .config import (
        AnalysisOptions as AnalysisOptions,
        DEFAULT_OPTIONS as DEFAULT_OPTIONS,
    )
    from .ctrlflow_graph import (
        BasicBlock as BasicBlock,
        CFGEdge as CFGEdge,
        ControlFlowGraph as ControlFlowGraph,
        EdgeKind as EdgeKind,
        RegionKind as RegionKind,
    )
    from .dataflow_engine import (
        DataflowResult as DataflowResult,
        ForwardSolver as ForwardSolver,
    )
    from .errors import (
        AnalysisBudgetExceeded as AnalysisBudgetExceeded,
        ConfigurationError as ConfigurationError,
        ErrorCode as ErrorCode,
        MalformedGraphError as MalformedGraphError,
        ParamflowError as ParamflowError,
    )
    from .interproc_analysis import (
        HazardAccumulator as HazardAccumulator,
        HazardousUsageMap as HazardousUsageMap,
        InterproceduralSummarizer as InterproceduralSummarizer,
        SummaryCache as SummaryCache,
        Transient as Transient,
    )
    from .lattice import (
        AnalysisState as AnalysisState,
        StateLattice as StateLattice,
        ValidationLattice as ValidationLattice,
        ValidationState as ValidationState,
    )
    from .locations import (
        AbstractLocation as AbstractLocation,
        PointsToKind as PointsToKind,
        PointsToOracle as PointsToOracle,
        PointsToValue as PointsToValue,
        SimplePointsTo as SimplePointsTo,
    )
    from .operations import (
        Operation as Operation,
        OperationKind as OperationKind,
        SyntaxNode as SyntaxNode,
    )
    from .symbols import (
        Accessibility as Accessibility,
        MethodKind as MethodKind,
        MethodSymbol as MethodSymbol,
        ParameterSymbol as ParameterSymbol,
        TypeSymbol as TypeSymbol,
    )
    from .validation_visitor import (
        ParameterValidationVisitor as ParameterValidationVisitor,
    )
