"""
paramflow.analysis
==================

Entry point of the parameter-validation ("missing null check") analysis.

    ParameterValidationAnalysis  — one analysis run over many procedures
    ParameterValidationResult    — per-procedure outcome
    analyze()                    — convenience wrapper

A run owns (or is handed) a :class:`~paramflow.interproc_analysis.SummaryCache`;
every procedure analysed during the run, whether requested by the host
or pulled in as a callee, is computed once and reused afterwards.

Failure policy
--------------
The analysis is advisory.  A procedure without a control-flow graph,
with a malformed one, or whose fixed point does not fit the configured
budget produces an *incomplete* result with no hazards and a logged
warning.  Only :class:`~paramflow.errors.ConfigurationError` reaches the
caller.

Usage::

    collab = Collaborators(cfg_provider=MappingCfgProvider([cfg]))
    result = analyze(method, collab)
    for parameter, site in result.hazardous_usages.items():
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from paramflow.collaborators import Collaborators
from paramflow.config import DEFAULT_OPTIONS, AnalysisOptions
from paramflow.dataflow_engine import DataflowResult, ForwardSolver
from paramflow.errors import AnalysisBudgetExceeded, MalformedGraphError
from paramflow.interproc_analysis import (
    EMPTY_USAGES,
    HazardAccumulator,
    HazardousUsageMap,
    InterproceduralSummarizer,
    SummaryCache,
)
from paramflow.lattice import StateLattice
from paramflow.symbols import MethodSymbol
from paramflow.validation_visitor import ParameterValidationVisitor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParameterValidationResult:
    """Outcome for one procedure.

    Attributes
    ----------
    procedure : MethodSymbol
    hazardous_usages : HazardousUsageMap
        Parameter → earliest unguarded dereference.
    complete : bool
        ``False`` when the procedure could not be analysed (no CFG,
        malformed CFG, budget overrun); ``hazardous_usages`` is then
        empty.
    dataflow : DataflowResult, optional
        The solver's per-block states, when the analysis completed.
    """

    procedure: MethodSymbol
    hazardous_usages: HazardousUsageMap = EMPTY_USAGES
    complete: bool = True
    dataflow: Optional[DataflowResult] = None

    @property
    def has_hazards(self) -> bool:
        return len(self.hazardous_usages) > 0


class ParameterValidationAnalysis:
    """One analysis run.

    Parameters
    ----------
    collaborators : Collaborators
    options : AnalysisOptions or mapping, optional
        A mapping is converted with :meth:`AnalysisOptions.from_mapping`.
    cache : SummaryCache, optional
        Share one cache between several runs over the same program to
        reuse their results.
    """

    def __init__(
        self,
        collaborators: Collaborators,
        options: Optional[Union[AnalysisOptions, Mapping[str, Any]]] = None,
        cache: Optional[SummaryCache] = None,
    ) -> None:
        if options is None:
            options = DEFAULT_OPTIONS
        elif not isinstance(options, AnalysisOptions):
            options = AnalysisOptions.from_mapping(options)
        self.collaborators = collaborators
        self.options: AnalysisOptions = options
        self.cache = cache if cache is not None else SummaryCache()
        self.summarizer = InterproceduralSummarizer(
            self._analyze_body,
            self.cache,
            collaborators.cfg_provider,
            max_call_chain=options.max_call_chain,
        )

    def analyze(self, procedure: MethodSymbol) -> ParameterValidationResult:
        """Hazardous parameter usages of *procedure* (cached per run)."""
        result = self.summarizer.result_of(procedure)
        if result is None:
            # Host re-entered a procedure that is still being computed.
            return ParameterValidationResult(procedure, complete=False)
        return result

    def _analyze_body(self, procedure: MethodSymbol) -> ParameterValidationResult:
        cfg = self.collaborators.cfg_provider.get_control_flow_graph(procedure)
        if cfg is None:
            logger.warning("%r: no control-flow graph, skipping", procedure)
            return ParameterValidationResult(procedure, complete=False)
        try:
            cfg.validate()
        except MalformedGraphError as exc:
            logger.warning("%r: malformed control-flow graph: %s", procedure, exc)
            return ParameterValidationResult(procedure, complete=False)

        logger.debug("analysing %r", procedure)
        hazards = HazardAccumulator()
        visitor = ParameterValidationVisitor(
            cfg,
            self.collaborators,
            self.options,
            hazards,
            summary_of=(
                self.summarizer.summary_of if self.options.interprocedural else None
            ),
        )
        solver = ForwardSolver(
            cfg,
            StateLattice(visitor.is_tracked),
            visitor.transfer,
            initial_state=visitor.initial_state(),
            max_iterations=self.options.max_iterations,
            max_seconds=self.options.max_seconds,
        )
        try:
            dataflow = solver.solve()
        except AnalysisBudgetExceeded as exc:
            logger.warning("%r: analysis incomplete: %s", procedure, exc)
            return ParameterValidationResult(procedure, complete=False)

        usages = hazards.freeze()
        logger.debug(
            "%r: %d hazardous parameter(s) after %d block visits",
            procedure, len(usages), dataflow.iterations,
        )
        return ParameterValidationResult(procedure, usages, True, dataflow)


def analyze(
    procedure: MethodSymbol,
    collaborators: Collaborators,
    options: Optional[Union[AnalysisOptions, Mapping[str, Any]]] = None,
    cache: Optional[SummaryCache] = None,
) -> ParameterValidationResult:
    """Analyse a single procedure.  See :class:`ParameterValidationAnalysis`."""
    return ParameterValidationAnalysis(collaborators, options, cache).analyze(procedure)


__all__ = [
    "ParameterValidationResult",
    "ParameterValidationAnalysis",
    "analyze",
]
