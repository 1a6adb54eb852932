# tests/test_dataflow_engine.py
"""
Tests for the forward worklist solver, using the bare validation lattice
and block-keyed transfer functions.
"""

import itertools

import pytest

import paramflow.dataflow_engine as engine

from paramflow.ctrlflow_graph import ControlFlowGraph, EdgeKind
from paramflow.dataflow_engine import ForwardSolver, run_forward_analysis
from paramflow.errors import AnalysisBudgetExceeded, ErrorCode
from paramflow.lattice import VALIDATION_LATTICE, ValidationState
from paramflow.symbols import MethodSymbol, TypeSymbol

V = ValidationState


def _graph():
    return ControlFlowGraph(MethodSymbol("M", TypeSymbol("T")))


def _setting(block, value):
    """Transfer that forces *value* in *block* and is identity elsewhere."""
    def transfer(b, state):
        return value if b is block else state
    return transfer


class TestForwardSolver:

    def test_straight_line(self):
        cfg = _graph()
        body = cfg.add_block()
        cfg.add_edge(cfg.entry, body)
        cfg.add_edge(body, cfg.exit)
        result = run_forward_analysis(
            cfg, VALIDATION_LATTICE, _setting(body, V.VALIDATED),
            initial_state=V.NOT_VALIDATED,
        )
        assert result.converged
        assert result.fact_at(body) is V.NOT_VALIDATED
        assert result.fact_at(body, before=False) is V.VALIDATED
        assert result.exit_state is V.VALIDATED
        assert result.iterations == 3

    def test_diamond_merges_to_maybe(self):
        cfg = _graph()
        cond, then, other, join = (cfg.add_block() for _ in range(4))
        cfg.add_edge(cfg.entry, cond)
        cfg.add_edge(cond, then, EdgeKind.BRANCH_TRUE)
        cfg.add_edge(cond, other, EdgeKind.BRANCH_FALSE)
        cfg.add_edge(then, join)
        cfg.add_edge(other, join)
        cfg.add_edge(join, cfg.exit)
        result = ForwardSolver(
            cfg, VALIDATION_LATTICE, _setting(then, V.VALIDATED),
            initial_state=V.NOT_VALIDATED,
        ).solve()
        assert result.fact_at(join) is V.MAYBE_VALIDATED
        assert result.exit_state is V.MAYBE_VALIDATED

    def test_blocks_visited_in_reverse_postorder(self):
        cfg = _graph()
        cond, then, other, join = (cfg.add_block() for _ in range(4))
        cfg.add_edge(cfg.entry, cond)
        cfg.add_edge(cond, then)
        cfg.add_edge(cond, other)
        cfg.add_edge(then, join)
        cfg.add_edge(other, join)
        cfg.add_edge(join, cfg.exit)
        seen = []

        def transfer(block, state):
            seen.append(block)
            return state

        ForwardSolver(cfg, VALIDATION_LATTICE, transfer).solve()
        assert seen.index(join) > seen.index(then)
        assert seen.index(join) > seen.index(other)
        assert seen.count(join) == 1

    def test_loop_reaches_fixed_point(self):
        cfg = _graph()
        head, body, after = cfg.add_block(), cfg.add_block(), cfg.add_block()
        cfg.add_edge(cfg.entry, head)
        cfg.add_edge(head, body, EdgeKind.BRANCH_TRUE)
        cfg.add_edge(body, head, EdgeKind.BACK_EDGE)
        cfg.add_edge(head, after, EdgeKind.BRANCH_FALSE)
        cfg.add_edge(after, cfg.exit)
        result = ForwardSolver(
            cfg, VALIDATION_LATTICE, _setting(body, V.VALIDATED),
            initial_state=V.NOT_VALIDATED,
        ).solve()
        assert result.converged
        assert result.fact_at(head) is V.MAYBE_VALIDATED
        assert result.fact_at(after) is V.MAYBE_VALIDATED
        # blocks × lattice height bounds the work
        assert result.iterations <= len(cfg.blocks) * 3

    def test_unreachable_blocks_are_not_visited(self):
        cfg = _graph()
        body, dead = cfg.add_block(), cfg.add_block()
        cfg.add_edge(cfg.entry, body)
        cfg.add_edge(body, cfg.exit)
        cfg.add_edge(dead, cfg.exit)
        result = ForwardSolver(cfg, VALIDATION_LATTICE, lambda b, s: s).solve()
        assert dead not in result.facts_out

    def test_unreachable_exit(self):
        cfg = _graph()
        body = cfg.add_block()
        cfg.add_edge(cfg.entry, body)
        result = ForwardSolver(cfg, VALIDATION_LATTICE, lambda b, s: s).solve()
        assert result.exit_state is None

    def test_iteration_budget(self):
        cfg = _graph()
        a, b = cfg.add_block(), cfg.add_block()
        cfg.add_edge(cfg.entry, a)
        cfg.add_edge(a, b)
        cfg.add_edge(b, cfg.exit)
        solver = ForwardSolver(
            cfg, VALIDATION_LATTICE, lambda blk, s: s, max_iterations=2,
        )
        with pytest.raises(AnalysisBudgetExceeded) as info:
            solver.solve()
        assert info.value.code is ErrorCode.ITERATION_BUDGET
        assert info.value.iterations == 2
        assert info.value.subject is cfg.procedure

    def test_time_budget(self, monkeypatch):
        cfg = _graph()
        a = cfg.add_block()
        cfg.add_edge(cfg.entry, a)
        cfg.add_edge(a, cfg.exit)
        clock = itertools.chain([0.0, 0.0], itertools.repeat(10.0))
        monkeypatch.setattr(engine.time, "monotonic", lambda: next(clock))
        solver = ForwardSolver(
            cfg, VALIDATION_LATTICE, lambda b, s: s, max_seconds=1.0,
        )
        with pytest.raises(AnalysisBudgetExceeded) as info:
            solver.solve()
        assert info.value.code is ErrorCode.TIME_BUDGET
        assert info.value.iterations == 1
