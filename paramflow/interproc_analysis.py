"""
paramflow/interproc_analysis.py
===============================

Interprocedural layer: per-procedure hazard summaries and the cache that
shares them between callers.

A procedure's *summary* is its :class:`HazardousUsageMap`: for every
parameter it dereferences without proving it validated, the earliest
such use-site.  Callers consult the summary of a private callee (or of a
lambda / local function they invoke) instead of re-analysing its body.

Design principles
-----------------
* **Lazy computation & caching** — summaries are computed on demand the
  first time a caller asks, and memoised in an explicit
  :class:`SummaryCache` that the host passes in.  There is no
  process-wide state, so independent runs never interfere.
* **Accumulate, then freeze** — while a procedure's fixed point is being
  computed its hazards live in a mutable :class:`HazardAccumulator`;
  only the frozen :class:`HazardousUsageMap` ever leaves the procedure.
* **Conservative cycles** — a procedure already on the current call
  chain (or being computed by a thread that is, transitively, waiting on
  us) answers recursive requests with the empty summary.
* **Only complete results are stored**: a result built on a summary the
  call-chain limit cut off is handed back but not cached, so every stored
  result is the one the procedure gets when analysed on its own.

Public API (quick reference)
----------------------------
    HazardousUsageMap         — immutable parameter → earliest use-site
    HazardAccumulator         — mutable builder for one procedure
    Transient                 — a computed value the cache must not keep
    SummaryCache              — thread-safe, first-requester-computes store
    InterproceduralSummarizer — applicability rules + call-chain tracking
"""

from __future__ import annotations

import contextlib
import logging
import threading
from typing import (
    Any,
    Callable,
    Dict,
    Hashable,
    Iterator,
    List,
    Mapping,
    Optional,
    Set,
)

from paramflow.collaborators import ControlFlowGraphProvider
from paramflow.operations import SyntaxNode
from paramflow.symbols import MethodSymbol, ParameterSymbol

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# §1  HAZARD MAPS
# ═══════════════════════════════════════════════════════════════════════════

def _position(syntax: Optional[SyntaxNode]) -> float:
    return float("inf") if syntax is None else syntax.span_start


class HazardousUsageMap(Mapping[ParameterSymbol, Optional[SyntaxNode]]):
    """Immutable map from parameter to its earliest hazardous use-site.

    A parameter appears at most once.  Iteration follows source order of
    the use-sites, so two maps built from the same facts compare and
    print identically.
    """

    __slots__ = ("_entries",)

    def __init__(
        self, entries: Optional[Mapping[ParameterSymbol, Optional[SyntaxNode]]] = None
    ) -> None:
        items = sorted(
            (entries or {}).items(),
            key=lambda kv: (_position(kv[1]), kv[0].ordinal, kv[0].name),
        )
        self._entries: Dict[ParameterSymbol, Optional[SyntaxNode]] = dict(items)

    def __getitem__(self, parameter: ParameterSymbol) -> Optional[SyntaxNode]:
        return self._entries[parameter]

    def __iter__(self) -> Iterator[ParameterSymbol]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __hash__(self) -> int:
        return hash(tuple((id(p), s) for p, s in self._entries.items()))

    def parameters(self) -> List[ParameterSymbol]:
        return list(self._entries)

    def __repr__(self) -> str:
        body = ", ".join(f"{p.name}: {s!r}" for p, s in self._entries.items())
        return f"HazardousUsageMap({{{body}}})"


EMPTY_USAGES = HazardousUsageMap()


class HazardAccumulator:
    """Mutable hazard builder for the procedure currently being solved."""

    def __init__(self) -> None:
        self._entries: Dict[ParameterSymbol, Optional[SyntaxNode]] = {}

    def record(
        self, parameter: ParameterSymbol, syntax: Optional[SyntaxNode]
    ) -> bool:
        """Record a hazard; keeps the smaller position.  Returns ``True``
        if the entry was added or moved earlier."""
        if parameter in self._entries:
            if _position(syntax) >= _position(self._entries[parameter]):
                return False
        self._entries[parameter] = syntax
        return True

    def __contains__(self, parameter: object) -> bool:
        return parameter in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def freeze(self) -> HazardousUsageMap:
        return HazardousUsageMap(self._entries)


# ═══════════════════════════════════════════════════════════════════════════
# §2  SUMMARY CACHE
# ═══════════════════════════════════════════════════════════════════════════

class Transient:
    """Wraps a computed value that must be returned but not stored.

    :meth:`SummaryCache.get_or_compute` unwraps it, hands the value to the
    requester and releases the key, so the next request computes afresh.
    """

    __slots__ = ("value",)

    def __init__(self, value: Any) -> None:
        self.value = value

    def __repr__(self) -> str:
        return f"Transient({self.value!r})"


class SummaryCache:
    """Keyed store of completed per-procedure results.

    The first thread to request a key computes it; other threads asking
    for the same key block until it is stored.  A request that cannot
    be satisfied without waiting on itself (same-thread recursion, or a
    wait-for cycle through other threads) gets *default* instead, and
    that default is never stored.  Neither is a value that *compute*
    returns wrapped in :class:`Transient`.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._done: Dict[Hashable, Any] = {}
        self._owners: Dict[Hashable, int] = {}
        self._waiting_for: Dict[int, Hashable] = {}
        self.hits = 0
        self.misses = 0
        self.cycle_defaults = 0
        self.transient = 0

    def get_or_compute(
        self, key: Hashable, compute: Callable[[], Any], default: Any = None
    ) -> Any:
        me = threading.get_ident()
        with self._cond:
            while True:
                if key in self._done:
                    self.hits += 1
                    return self._done[key]
                owner = self._owners.get(key)
                if owner is None:
                    self._owners[key] = me
                    self.misses += 1
                    break
                if self._closes_cycle(me, key):
                    self.cycle_defaults += 1
                    logger.debug("cycle on %r: returning default", key)
                    return default
                self._waiting_for[me] = key
                try:
                    self._cond.wait()
                finally:
                    del self._waiting_for[me]

        try:
            value = compute()
        except BaseException:
            with self._cond:
                del self._owners[key]
                self._cond.notify_all()
            raise

        with self._cond:
            if isinstance(value, Transient):
                self.transient += 1
                value = value.value
            else:
                self._done[key] = value
            del self._owners[key]
            self._cond.notify_all()
        return value

    def _closes_cycle(self, me: int, key: Hashable) -> bool:
        """Would waiting for *key* make *me* wait on itself?"""
        seen: Set[int] = set()
        owner = self._owners.get(key)
        while owner is not None and owner not in seen:
            if owner == me:
                return True
            seen.add(owner)
            blocked_on = self._waiting_for.get(owner)
            if blocked_on is None:
                return False
            owner = self._owners.get(blocked_on)
        return False

    def get(self, key: Hashable) -> Any:
        with self._cond:
            return self._done.get(key)

    def __contains__(self, key: object) -> bool:
        with self._cond:
            return key in self._done

    def __len__(self) -> int:
        with self._cond:
            return len(self._done)

    def clear(self) -> None:
        with self._cond:
            self._done.clear()
            self.hits = self.misses = self.cycle_defaults = self.transient = 0


# ═══════════════════════════════════════════════════════════════════════════
# §3  SUMMARIZER
# ═══════════════════════════════════════════════════════════════════════════

class InterproceduralSummarizer:
    """Decides which callees get summarised and computes them on demand.

    Parameters
    ----------
    analyze_body : callable(MethodSymbol) → result
        Runs the intraprocedural analysis of one procedure.  The result
        must expose ``hazardous_usages``.
    cache : SummaryCache
    cfg_provider : ControlFlowGraphProvider
    max_call_chain : int
        Deepest chain of on-demand callee analyses below the procedure
        the host asked for.
    """

    def __init__(
        self,
        analyze_body: Callable[[MethodSymbol], Any],
        cache: SummaryCache,
        cfg_provider: ControlFlowGraphProvider,
        max_call_chain: int = 8,
    ) -> None:
        self._analyze_body = analyze_body
        self.cache = cache
        self.cfg_provider = cfg_provider
        self.max_call_chain = max_call_chain
        self._local = threading.local()

    # ---- call chain ---------------------------------------------------

    def call_chain(self) -> List[MethodSymbol]:
        chain = getattr(self._local, "chain", None)
        if chain is None:
            chain = self._local.chain = []
        return chain

    def _truncated(self) -> Set[int]:
        """Ids of chain procedures whose analysis hit the depth limit."""
        marks = getattr(self._local, "truncated", None)
        if marks is None:
            marks = self._local.truncated = set()
        return marks

    @contextlib.contextmanager
    def _entered(self, procedure: MethodSymbol) -> Iterator[None]:
        chain = self.call_chain()
        marks = self._truncated()
        chain.append(procedure)
        marks.discard(id(procedure))
        try:
            yield
        finally:
            chain.pop()
            marks.discard(id(procedure))

    # ---- queries ------------------------------------------------------

    def is_summarizable(self, callee: MethodSymbol) -> bool:
        """Nested functions always qualify; other callees only when they
        are neither externally visible nor overridable."""
        if not callee.is_nested_function:
            if callee.is_externally_visible or callee.is_overridable:
                return False
        return self.cfg_provider.get_control_flow_graph(callee) is not None

    def result_of(self, procedure: MethodSymbol) -> Any:
        """Cached result of *procedure*, computing it if needed.  ``None``
        if the request closes a cycle.

        A result that depends on a depth-limited summary is returned but
        not cached, so the procedure's stored result never depends on
        which caller asked for it first.
        """
        def compute() -> Any:
            with self._entered(procedure):
                result = self._analyze_body(procedure)
                if id(procedure) in self._truncated():
                    logger.debug("%r: depth-limited result, not cached", procedure)
                    return Transient(result)
                return result

        if any(p is procedure for p in self.call_chain()):
            logger.debug("%r is on the call chain: empty summary", procedure)
            return None
        return self.cache.get_or_compute(procedure, compute, default=None)

    def summary_of(self, callee: MethodSymbol) -> Optional[HazardousUsageMap]:
        """The callee's hazard summary, or ``None`` if it does not qualify.

        Returns the empty map for recursive requests and for requests
        beyond ``max_call_chain``.  A cached summary is used at any depth.
        """
        if not self.is_summarizable(callee):
            return None
        chain = self.call_chain()
        if len(chain) > self.max_call_chain:
            cached = self.cache.get(callee)
            if cached is not None:
                return cached.hazardous_usages
            logger.debug(
                "call chain depth %d exceeds %d at %r: empty summary",
                len(chain), self.max_call_chain, callee,
            )
            # every procedure on the chain now depends on the cut-off
            self._truncated().update(id(p) for p in chain)
            return EMPTY_USAGES
        result = self.result_of(callee)
        if result is None:
            return EMPTY_USAGES
        return result.hazardous_usages


__all__ = [
    "HazardousUsageMap",
    "EMPTY_USAGES",
    "HazardAccumulator",
    "Transient",
    "SummaryCache",
    "InterproceduralSummarizer",
]
