"""
paramflow.ctrlflow_graph
========================

Intraprocedural control-flow graph of abstract operations.

The front end builds one :class:`ControlFlowGraph` per procedure: a
synthetic entry block, a synthetic exit block, and basic blocks holding
top-level :class:`~paramflow.operations.Operation` trees in source order.
Edges carry their control-flow meaning; exceptional control flow that
leaves the procedure has no edge at all, which is why the exit block's
predecessors are exactly the normal returns.

Public API
----------
    EdgeKind          - classification of an edge
    RegionKind        - try / catch / finally
    BasicBlock        - a block of operations
    CFGEdge           - a directed edge between two blocks
    ExceptionRegion   - blocks covered by a try, catch or finally
    ControlFlowGraph  - the graph for one procedure

Typical usage::

    cfg = ControlFlowGraph(method)
    body = cfg.add_block([statement(invocation(...))])
    cfg.add_edge(cfg.entry, body)
    cfg.add_edge(body, cfg.exit, EdgeKind.RETURN)
    cfg.validate()
"""

from __future__ import annotations

import enum
from typing import Dict, Iterable, List, Optional, Set

from paramflow.errors import ErrorCode, MalformedGraphError
from paramflow.operations import Operation, OperationKind

# ---------------------------------------------------------------------------
# Edge / region kinds
# ---------------------------------------------------------------------------


class EdgeKind(enum.Enum):
    """Classification of a CFG edge."""

    FALL_THROUGH = "fall-through"
    BRANCH_TRUE = "branch-true"
    BRANCH_FALSE = "branch-false"
    BACK_EDGE = "back-edge"
    RETURN = "return"
    EXCEPTION = "exception"


class RegionKind(enum.Enum):
    TRY = "try"
    CATCH = "catch"
    FINALLY = "finally"


# ---------------------------------------------------------------------------
# BasicBlock
# ---------------------------------------------------------------------------

class BasicBlock:
    """A basic block.

    Attributes
    ----------
    ordinal : int
        Position within the owning graph (entry is 0, exit is 1).
    operations : list[Operation]
        Top-level operations in source order.  Empty for entry/exit.
    kind : str
        ``"entry"``, ``"exit"`` or ``"body"``.
    successors, predecessors : list[CFGEdge]
    """

    __slots__ = ("ordinal", "operations", "kind", "successors", "predecessors")

    def __init__(
        self,
        ordinal: int,
        operations: Optional[List[Operation]] = None,
        kind: str = "body",
    ) -> None:
        self.ordinal = ordinal
        self.operations: List[Operation] = list(operations or [])
        self.kind = kind
        self.successors: List[CFGEdge] = []
        self.predecessors: List[CFGEdge] = []

    @property
    def is_entry(self) -> bool:
        return self.kind == "entry"

    @property
    def is_exit(self) -> bool:
        return self.kind == "exit"

    def label(self) -> str:
        if not self.operations:
            return f"[{self.kind}]"
        parts = [op.kind.value for op in self.operations[:4]]
        if len(self.operations) > 4:
            parts.append("…")
        return " ; ".join(parts)

    def __repr__(self) -> str:
        return f"BB{self.ordinal}({self.kind}, {len(self.operations)} ops)"


# ---------------------------------------------------------------------------
# CFGEdge
# ---------------------------------------------------------------------------

class CFGEdge:
    """A directed edge in the CFG."""

    __slots__ = ("src", "dst", "kind")

    def __init__(
        self,
        src: BasicBlock,
        dst: BasicBlock,
        kind: EdgeKind = EdgeKind.FALL_THROUGH,
    ) -> None:
        self.src = src
        self.dst = dst
        self.kind = kind

    def __repr__(self) -> str:
        return (
            f"CFGEdge(BB{self.src.ordinal} -> BB{self.dst.ordinal}, "
            f"kind={self.kind.value!r})"
        )


class ExceptionRegion:
    """Blocks covered by one try, catch or finally clause."""

    __slots__ = ("kind", "blocks")

    def __init__(self, kind: RegionKind, blocks: Iterable[BasicBlock]) -> None:
        self.kind = kind
        self.blocks: List[BasicBlock] = list(blocks)

    def __contains__(self, block: BasicBlock) -> bool:
        return any(b is block for b in self.blocks)

    def __repr__(self) -> str:
        ids = ",".join(str(b.ordinal) for b in self.blocks)
        return f"ExceptionRegion({self.kind.value}: {ids})"


# ---------------------------------------------------------------------------
# ControlFlowGraph
# ---------------------------------------------------------------------------

class ControlFlowGraph:
    """Control-flow graph of a single procedure.

    Attributes
    ----------
    procedure : MethodSymbol
    entry, exit : BasicBlock
    blocks : list[BasicBlock]
        All blocks, entry and exit included.
    edges : list[CFGEdge]
    regions : list[ExceptionRegion]
    """

    def __init__(self, procedure) -> None:
        self.procedure = procedure
        self.entry = BasicBlock(0, kind="entry")
        self.exit = BasicBlock(1, kind="exit")
        self.blocks: List[BasicBlock] = [self.entry, self.exit]
        self.edges: List[CFGEdge] = []
        self.regions: List[ExceptionRegion] = []

    # ----- graph mutation ---------------------------------------------------

    def add_block(self, operations: Optional[List[Operation]] = None) -> BasicBlock:
        block = BasicBlock(len(self.blocks), operations)
        self.blocks.append(block)
        return block

    def add_edge(
        self,
        src: BasicBlock,
        dst: BasicBlock,
        kind: EdgeKind = EdgeKind.FALL_THROUGH,
    ) -> CFGEdge:
        """Create an edge and wire up predecessor/successor lists."""
        e = CFGEdge(src, dst, kind)
        self.edges.append(e)
        src.successors.append(e)
        dst.predecessors.append(e)
        return e

    def add_region(
        self, kind: RegionKind, blocks: Iterable[BasicBlock]
    ) -> ExceptionRegion:
        region = ExceptionRegion(kind, blocks)
        self.regions.append(region)
        return region

    # ----- queries ----------------------------------------------------------

    def successors_of(self, block: BasicBlock) -> List[BasicBlock]:
        return [e.dst for e in block.successors]

    def predecessors_of(self, block: BasicBlock) -> List[BasicBlock]:
        return [e.src for e in block.predecessors]

    def reachable_from(self, start: BasicBlock) -> Set[int]:
        """Ordinals of the blocks reachable from *start*."""
        visited: Set[int] = set()
        worklist = [start]
        while worklist:
            b = worklist.pop()
            if b.ordinal in visited:
                continue
            visited.add(b.ordinal)
            for e in b.successors:
                worklist.append(e.dst)
        return visited

    def reverse_postorder(self) -> List[BasicBlock]:
        """Reachable blocks in reverse post-order from the entry.

        Iterative DFS so deep graphs do not hit the recursion limit;
        successors are explored in edge order, which keeps the order
        stable between runs.
        """
        visited: Set[int] = {self.entry.ordinal}
        order: List[BasicBlock] = []
        stack: List[tuple] = [(self.entry, iter(self.successors_of(self.entry)))]
        while stack:
            block, succs = stack[-1]
            advanced = False
            for succ in succs:
                if succ.ordinal not in visited:
                    visited.add(succ.ordinal)
                    stack.append((succ, iter(self.successors_of(succ))))
                    advanced = True
                    break
            if not advanced:
                stack.pop()
                order.append(block)
        order.reverse()
        return order

    def is_handled(self, block: BasicBlock) -> bool:
        """``True`` if *block* lies inside a try region."""
        return any(
            r.kind is RegionKind.TRY and block in r for r in self.regions
        )

    def unhandled_throw_blocks(self) -> List[BasicBlock]:
        """Blocks that throw out of the procedure: a THROW operation outside
        every try region."""
        return [
            b for b in self.blocks
            if not self.is_handled(b)
            and any(op.kind is OperationKind.THROW for op in b.operations)
        ]

    def validate(self) -> None:
        """Check structural consistency.

        Raises
        ------
        MalformedGraphError
            If the entry/exit are missing from the block list, an edge
            touches a block that does not belong to this graph, or a
            block's edge lists disagree with :attr:`edges`.
        """
        owned: Dict[int, BasicBlock] = {id(b): b for b in self.blocks}
        if id(self.entry) not in owned or id(self.exit) not in owned:
            raise MalformedGraphError(
                ErrorCode.MISSING_ENTRY_OR_EXIT,
                "entry or exit block is not part of the graph",
                self.procedure,
            )
        for e in self.edges:
            if id(e.src) not in owned or id(e.dst) not in owned:
                raise MalformedGraphError(
                    ErrorCode.FOREIGN_BLOCK,
                    f"edge {e!r} touches a block outside the graph",
                    self.procedure,
                )
        for b in self.blocks:
            for e in b.successors:
                if e.src is not b or e not in self.edges:
                    raise MalformedGraphError(
                        ErrorCode.DANGLING_EDGE,
                        f"BB{b.ordinal} lists an unregistered successor edge",
                        self.procedure,
                    )
            for e in b.predecessors:
                if e.dst is not b or e not in self.edges:
                    raise MalformedGraphError(
                        ErrorCode.DANGLING_EDGE,
                        f"BB{b.ordinal} lists an unregistered predecessor edge",
                        self.procedure,
                    )

    # ----- serialisation helpers --------------------------------------------

    def to_dot(self, title: Optional[str] = None) -> str:
        """Return a Graphviz DOT representation of this CFG."""
        lines = ["digraph CFG {"]
        if title:
            lines.append(f'  label="{title}";')
        lines.append("  node [shape=box, fontname=monospace, fontsize=10];")
        for b in self.blocks:
            lbl = b.label().replace('"', '\\"')
            color = ""
            if b.is_entry:
                color = ', style=filled, fillcolor="#ccffcc"'
            elif b.is_exit:
                color = ', style=filled, fillcolor="#ffcccc"'
            lines.append(f'  BB{b.ordinal} [label="BB{b.ordinal}\\n{lbl}"{color}];')
        for e in self.edges:
            style = ""
            if e.kind == EdgeKind.BRANCH_TRUE:
                style = ', color=green, fontcolor=green'
            elif e.kind == EdgeKind.BRANCH_FALSE:
                style = ', color=red, fontcolor=red'
            elif e.kind == EdgeKind.BACK_EDGE:
                style = ', style=dashed, color=blue, fontcolor=blue'
            lines.append(
                f'  BB{e.src.ordinal} -> BB{e.dst.ordinal} '
                f'[label="{e.kind.value}"{style}];'
            )
        lines.append("}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        name = getattr(self.procedure, "name", "<unknown>")
        return (
            f"ControlFlowGraph(procedure={name!r}, blocks={len(self.blocks)}, "
            f"edges={len(self.edges)})"
        )


__all__ = [
    "EdgeKind",
    "RegionKind",
    "BasicBlock",
    "CFGEdge",
    "ExceptionRegion",
    "ControlFlowGraph",
]
