# tests/test_ctrlflow_graph.py
"""
Tests for ControlFlowGraph construction, ordering and validation.
"""

import pytest

from paramflow.ctrlflow_graph import (
    BasicBlock,
    CFGEdge,
    ControlFlowGraph,
    EdgeKind,
    RegionKind,
)
from paramflow.errors import ErrorCode, MalformedGraphError
from paramflow.operations import literal, statement, throw
from paramflow.symbols import MethodSymbol, TypeSymbol


@pytest.fixture
def cfg():
    return ControlFlowGraph(MethodSymbol("M", TypeSymbol("T")))


def _diamond(cfg):
    cond, then, other, join = (cfg.add_block() for _ in range(4))
    cfg.add_edge(cfg.entry, cond)
    cfg.add_edge(cond, then, EdgeKind.BRANCH_TRUE)
    cfg.add_edge(cond, other, EdgeKind.BRANCH_FALSE)
    cfg.add_edge(then, join)
    cfg.add_edge(other, join)
    cfg.add_edge(join, cfg.exit, EdgeKind.RETURN)
    return cond, then, other, join


class TestStructure:

    def test_entry_and_exit(self, cfg):
        assert cfg.entry.is_entry and cfg.entry.ordinal == 0
        assert cfg.exit.is_exit and cfg.exit.ordinal == 1
        assert cfg.blocks == [cfg.entry, cfg.exit]

    def test_add_edge_wires_both_ends(self, cfg):
        body = cfg.add_block()
        e = cfg.add_edge(cfg.entry, body)
        assert cfg.entry.successors == [e]
        assert body.predecessors == [e]
        assert cfg.successors_of(cfg.entry) == [body]
        assert cfg.predecessors_of(body) == [cfg.entry]

    def test_reverse_postorder(self, cfg):
        cond, then, other, join = _diamond(cfg)
        order = cfg.reverse_postorder()
        assert order[0] is cfg.entry
        assert order[-1] is cfg.exit
        assert order.index(cond) < order.index(then) < order.index(join)
        assert order.index(other) < order.index(join)

    def test_reverse_postorder_skips_unreachable(self, cfg):
        dead = cfg.add_block()
        cfg.add_edge(cfg.entry, cfg.exit)
        cfg.add_edge(dead, cfg.exit)
        assert dead not in cfg.reverse_postorder()

    def test_reachable_from(self, cfg):
        cond, then, _, join = _diamond(cfg)
        assert cfg.reachable_from(then) == {then.ordinal, join.ordinal, cfg.exit.ordinal}

    def test_label(self, cfg):
        body = cfg.add_block([statement(literal()) for _ in range(5)])
        assert cfg.entry.label() == "[entry]"
        assert body.label().endswith("…")


class TestUnhandledThrows:

    def test_throw_outside_try(self, cfg):
        raiser = cfg.add_block([throw(pos=3)])
        cfg.add_edge(cfg.entry, raiser)
        assert cfg.unhandled_throw_blocks() == [raiser]

    def test_throw_inside_try_is_handled(self, cfg):
        guarded = cfg.add_block([throw(pos=3)])
        handler = cfg.add_block()
        cfg.add_region(RegionKind.TRY, [guarded])
        cfg.add_region(RegionKind.CATCH, [handler])
        assert cfg.is_handled(guarded)
        assert not cfg.is_handled(handler)
        assert cfg.unhandled_throw_blocks() == []


class TestValidate:

    def test_well_formed(self, cfg):
        _diamond(cfg)
        cfg.validate()

    def test_foreign_block(self, cfg):
        other = ControlFlowGraph(cfg.procedure).add_block()
        cfg.add_edge(cfg.entry, other)
        with pytest.raises(MalformedGraphError) as info:
            cfg.validate()
        assert info.value.code is ErrorCode.FOREIGN_BLOCK

    def test_dangling_edge(self, cfg):
        body = cfg.add_block()
        body.successors.append(CFGEdge(body, cfg.exit))
        with pytest.raises(MalformedGraphError) as info:
            cfg.validate()
        assert info.value.code is ErrorCode.DANGLING_EDGE

    def test_missing_exit(self, cfg):
        cfg.exit = BasicBlock(99, kind="exit")
        with pytest.raises(MalformedGraphError) as info:
            cfg.validate()
        assert info.value.code is ErrorCode.MISSING_ENTRY_OR_EXIT


class TestDot:

    def test_to_dot(self, cfg):
        _diamond(cfg)
        dot = cfg.to_dot(title="M")
        assert dot.startswith("digraph CFG {")
        assert 'label="M";' in dot
        assert "color=green" in dot
        assert dot.rstrip().endswith("}")
