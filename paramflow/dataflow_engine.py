"""
paramflow.dataflow_engine
=========================

Forward fixed-point solver over a :class:`~paramflow.ctrlflow_graph.ControlFlowGraph`.

Theory
------
Given a lattice ``L`` of finite height and a monotone transfer function
``f_B : L → L`` for each block ``B``, the solver computes

    IN[B]  = ⊔ { OUT[P] | P ∈ pred(B), P already processed }
    OUT[B] = f_B(IN[B])

starting from ``IN[entry] = init``.  The worklist is ordered by reverse
post-order, so every block is first visited after its forward
predecessors; back edges make their targets re-enter the worklist until
no ``OUT`` changes.  Change detection uses the lattice's structural
equality, never object identity.

Termination follows from the finite height of the validation lattice:
each ``OUT[B]`` can grow at most three times per tracked location.  The
``max_iterations`` and ``max_seconds`` bounds exist for pathological
inputs and raise :class:`~paramflow.errors.AnalysisBudgetExceeded`
rather than return a partial fixed point.

Usage::

    solver = ForwardSolver(cfg, StateLattice(), visitor.transfer,
                           initial_state=visitor.initial_state())
    result = solver.solve()
    result.exit_state
"""

from __future__ import annotations

import heapq
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Generic, List, Optional, Set, TypeVar

from paramflow.ctrlflow_graph import BasicBlock, ControlFlowGraph
from paramflow.errors import AnalysisBudgetExceeded, ErrorCode
from paramflow.lattice import Lattice

logger = logging.getLogger(__name__)

L = TypeVar("L")


# ===========================================================================
# RESULT CONTAINER
# ===========================================================================

@dataclass
class DataflowResult(Generic[L]):
    """Container for dataflow analysis results.

    Attributes
    ----------
    facts_in : dict
        Map from block → merged state at block entry.
    facts_out : dict
        Map from block → state after the block's transfer.
    iterations : int
        Number of block visits performed.
    converged : bool
        Whether the worklist drained.
    elapsed_seconds : float
        Wall-clock time.
    exit_block : BasicBlock, optional
        The graph's exit block, used by :attr:`exit_state`.
    """
    facts_in: Dict[BasicBlock, L] = field(default_factory=dict)
    facts_out: Dict[BasicBlock, L] = field(default_factory=dict)
    iterations: int = 0
    converged: bool = False
    elapsed_seconds: float = 0.0
    exit_block: Optional[BasicBlock] = None

    def fact_at(self, block: BasicBlock, *, before: bool = True) -> Optional[L]:
        """Return the state at *block*'s entry (``before=True``) or exit."""
        if before:
            return self.facts_in.get(block)
        return self.facts_out.get(block)

    @property
    def exit_state(self) -> Optional[L]:
        """Output of the exit block; ``None`` if the exit is unreachable."""
        if self.exit_block is None:
            return None
        return self.facts_out.get(self.exit_block)


# ===========================================================================
# FORWARD SOLVER
# ===========================================================================

class ForwardSolver(Generic[L]):
    """Worklist fixed-point engine for forward block-level analyses.

    Parameters
    ----------
    cfg : ControlFlowGraph
    lattice : Lattice[L]
        Supplies ``bottom``, ``join``, ``eq`` and ``copy_value``.
    transfer : callable(BasicBlock, L) → L
        Block transfer function.  Receives a private copy of the input
        state and may mutate it.
    initial_state : L, optional
        ``IN[entry]``; defaults to ``lattice.bottom()``.
    max_iterations : int
        Upper bound on block visits.
    max_seconds : float, optional
        Upper bound on wall-clock time.
    """

    def __init__(
        self,
        cfg: ControlFlowGraph,
        lattice: Lattice[L],
        transfer: Callable[[BasicBlock, L], L],
        initial_state: Optional[L] = None,
        max_iterations: int = 10_000,
        max_seconds: Optional[float] = None,
    ) -> None:
        self.cfg = cfg
        self.lattice = lattice
        self.transfer = transfer
        self.initial_state = (
            initial_state if initial_state is not None else lattice.bottom()
        )
        self.max_iterations = max_iterations
        self.max_seconds = max_seconds

    def solve(self) -> DataflowResult[L]:
        """Run to the fixed point.

        Raises
        ------
        AnalysisBudgetExceeded
            When ``max_iterations`` or ``max_seconds`` is exhausted first.
        """
        t0 = time.monotonic()
        lat = self.lattice
        order = self.cfg.reverse_postorder()
        rank: Dict[int, int] = {id(b): i for i, b in enumerate(order)}

        facts_in: Dict[BasicBlock, L] = {}
        facts_out: Dict[BasicBlock, L] = {}

        # Min-heap on RPO rank gives a stable, predecessor-first order.
        worklist: List[int] = [0]
        queued: Set[int] = {0}
        iterations = 0

        while worklist:
            index = heapq.heappop(worklist)
            queued.discard(index)
            block = order[index]

            iterations += 1
            if iterations > self.max_iterations:
                raise AnalysisBudgetExceeded(
                    ErrorCode.ITERATION_BUDGET,
                    f"fixed point not reached after {self.max_iterations} block visits",
                    self.cfg.procedure,
                    iterations=iterations - 1,
                )
            if self.max_seconds is not None and time.monotonic() - t0 > self.max_seconds:
                raise AnalysisBudgetExceeded(
                    ErrorCode.TIME_BUDGET,
                    f"fixed point not reached within {self.max_seconds}s",
                    self.cfg.procedure,
                    iterations=iterations - 1,
                )

            merged = self._merge_incoming(block, facts_out)
            facts_in[block] = merged

            first_visit = block not in facts_out
            new_out = self.transfer(block, lat.copy_value(merged))
            changed = first_visit or not lat.eq(new_out, facts_out[block])
            facts_out[block] = new_out
            if not changed:
                continue

            for succ in self.cfg.successors_of(block):
                succ_index = rank.get(id(succ))
                if succ_index is not None and succ_index not in queued:
                    heapq.heappush(worklist, succ_index)
                    queued.add(succ_index)

        elapsed = time.monotonic() - t0
        logger.debug(
            "%r: fixed point after %d block visits (%.4fs)",
            self.cfg, iterations, elapsed,
        )
        return DataflowResult(
            facts_in=facts_in,
            facts_out=facts_out,
            iterations=iterations,
            converged=True,
            elapsed_seconds=elapsed,
            exit_block=self.cfg.exit,
        )

    # ----- Internal helpers -------------------------------------------------

    def _merge_incoming(self, block: BasicBlock, facts_out: Dict[BasicBlock, L]) -> L:
        """Join the outputs of already-processed predecessors (and the entry
        seed for the entry block)."""
        incoming = [
            facts_out[pred]
            for pred in self.cfg.predecessors_of(block)
            if pred in facts_out
        ]
        if block is self.cfg.entry:
            incoming.insert(0, self.initial_state)
        return self.lattice.join_all(incoming)


def run_forward_analysis(
    cfg: ControlFlowGraph,
    lattice: Lattice[L],
    transfer: Callable[[BasicBlock, L], L],
    initial_state: Optional[L] = None,
    **kwargs,
) -> DataflowResult[L]:
    """Convenience wrapper: build a :class:`ForwardSolver` and solve."""
    return ForwardSolver(cfg, lattice, transfer, initial_state, **kwargs).solve()


__all__ = [
    "DataflowResult",
    "ForwardSolver",
    "run_forward_analysis",
]
