# tests/test_interproc_analysis.py
"""
Tests for hazard summaries, the summary cache and the summarizer.
"""

import threading

import pytest

from paramflow.interproc_analysis import (
    EMPTY_USAGES,
    HazardAccumulator,
    HazardousUsageMap,
    InterproceduralSummarizer,
    SummaryCache,
    Transient,
)
from paramflow.operations import SyntaxNode
from paramflow.symbols import Accessibility
from tests.conftest import param

JOIN_TIMEOUT = 10


class TestHazardAccumulator:

    def test_keeps_earliest(self, world):
        m = world.method("M")
        p = param(m, "p")
        acc = HazardAccumulator()
        assert acc.record(p, SyntaxNode(40))
        assert acc.record(p, SyntaxNode(15))
        assert not acc.record(p, SyntaxNode(60))
        assert acc.freeze()[p] == SyntaxNode(15)

    def test_missing_syntax_loses_to_any_position(self, world):
        m = world.method("M")
        p = param(m, "p")
        acc = HazardAccumulator()
        acc.record(p, None)
        acc.record(p, SyntaxNode(99))
        assert acc.freeze()[p] == SyntaxNode(99)

    def test_freeze_is_a_snapshot(self, world):
        m = world.method("M", ["a", "b"])
        acc = HazardAccumulator()
        acc.record(param(m, "a"), SyntaxNode(1))
        frozen = acc.freeze()
        acc.record(param(m, "b"), SyntaxNode(2))
        assert len(frozen) == 1
        assert len(acc) == 2


class TestHazardousUsageMap:

    def test_is_read_only(self, world):
        m = world.method("M")
        usages = HazardousUsageMap({param(m, "p"): SyntaxNode(3)})
        with pytest.raises(TypeError):
            usages[param(m, "p")] = SyntaxNode(1)

    def test_iterates_in_source_order(self, world):
        m = world.method("M", ["a", "b", "c"])
        a, b, c = (param(m, n) for n in "abc")
        usages = HazardousUsageMap({a: SyntaxNode(30), b: SyntaxNode(10), c: SyntaxNode(20)})
        assert list(usages) == [b, c, a]
        assert usages.parameters() == [b, c, a]

    def test_empty(self):
        assert len(EMPTY_USAGES) == 0
        assert not EMPTY_USAGES


class TestSummaryCache:

    def test_computes_once(self):
        cache = SummaryCache()
        calls = []

        def compute():
            calls.append(1)
            return "value"

        assert cache.get_or_compute("k", compute) == "value"
        assert cache.get_or_compute("k", compute) == "value"
        assert len(calls) == 1
        assert cache.hits == 1 and cache.misses == 1
        assert "k" in cache and len(cache) == 1

    def test_same_thread_recursion_gets_default(self):
        cache = SummaryCache()

        def compute():
            return ("outer", cache.get_or_compute("k", lambda: "inner", default="dflt"))

        assert cache.get_or_compute("k", compute) == ("outer", "dflt")
        assert cache.cycle_defaults == 1
        assert cache.get("k") == ("outer", "dflt")

    def test_failed_compute_releases_key(self):
        cache = SummaryCache()

        def boom():
            raise RuntimeError("nope")

        with pytest.raises(RuntimeError):
            cache.get_or_compute("k", boom)
        assert "k" not in cache
        assert cache.get_or_compute("k", lambda: 1) == 1

    def test_concurrent_requests_compute_once(self):
        cache = SummaryCache()
        started = threading.Event()
        release = threading.Event()
        calls = []

        def slow():
            calls.append(threading.get_ident())
            started.set()
            release.wait(JOIN_TIMEOUT)
            return "v"

        results = []
        first = threading.Thread(target=lambda: results.append(cache.get_or_compute("k", slow)))
        first.start()
        started.wait(JOIN_TIMEOUT)
        second = threading.Thread(target=lambda: results.append(cache.get_or_compute("k", slow)))
        second.start()
        release.set()
        first.join(JOIN_TIMEOUT)
        second.join(JOIN_TIMEOUT)
        assert results == ["v", "v"]
        assert len(calls) == 1

    def test_cross_thread_cycle_gets_default(self):
        cache = SummaryCache()
        both_owned = threading.Barrier(2, timeout=JOIN_TIMEOUT)
        results = {}

        def compute(other):
            def run():
                both_owned.wait()
                return cache.get_or_compute(other, lambda: "unused", default="dflt")
            return run

        def worker(mine, other):
            results[mine] = cache.get_or_compute(mine, compute(other))

        t1 = threading.Thread(target=worker, args=("x", "y"))
        t2 = threading.Thread(target=worker, args=("y", "x"))
        t1.start()
        t2.start()
        t1.join(JOIN_TIMEOUT)
        t2.join(JOIN_TIMEOUT)
        assert not t1.is_alive() and not t2.is_alive()
        # one thread breaks the cycle, the other waits for its result
        assert results == {"x": "dflt", "y": "dflt"}
        assert cache.cycle_defaults == 1

    def test_transient_value_is_returned_but_not_stored(self):
        cache = SummaryCache()
        assert cache.get_or_compute("k", lambda: Transient("partial")) == "partial"
        assert "k" not in cache
        assert cache.transient == 1
        assert cache.get_or_compute("k", lambda: "full") == "full"
        assert cache.get("k") == "full"
        assert cache.misses == 2

    def test_clear(self):
        cache = SummaryCache()
        cache.get_or_compute("k", lambda: 1)
        cache.clear()
        assert len(cache) == 0 and cache.misses == 0


class TestInterproceduralSummarizer:

    def _summarizer(self, world, analyze_body=None, **kwargs):
        def default_body(proc):
            raise AssertionError("not expected")
        return InterproceduralSummarizer(
            analyze_body or default_body, SummaryCache(), world.cfgs, **kwargs,
        )

    def test_externally_visible_callee_not_summarized(self, world):
        callee = world.method("Public")
        world.straight_line(callee)
        assert not self._summarizer(world).is_summarizable(callee)
        assert self._summarizer(world).summary_of(callee) is None

    def test_overridable_callee_not_summarized(self, world):
        callee = world.private("Hook", is_virtual=True)
        world.straight_line(callee)
        assert not self._summarizer(world).is_summarizable(callee)

    def test_callee_without_cfg_not_summarized(self, world):
        callee = world.private("Extern")
        assert not self._summarizer(world).is_summarizable(callee)

    def test_private_callee_and_lambda_summarized(self, world):
        callee = world.private("Helper")
        world.straight_line(callee)
        lam = world.lambda_in(world.method("Outer"))
        world.straight_line(lam)
        s = self._summarizer(world)
        assert s.is_summarizable(callee)
        assert s.is_summarizable(lam)

    def test_internal_member_of_public_type_summarized(self, world):
        callee = world.method("Helper", accessibility=Accessibility.INTERNAL)
        world.straight_line(callee)
        assert self._summarizer(world).is_summarizable(callee)

    def test_summary_is_cached(self, world):
        callee = world.private("Helper")
        world.straight_line(callee)
        calls = []

        class Result:
            hazardous_usages = HazardousUsageMap({param(callee, "p"): SyntaxNode(5)})

        def body(proc):
            calls.append(proc)
            return Result()

        s = self._summarizer(world, body)
        assert param(callee, "p") in s.summary_of(callee)
        assert param(callee, "p") in s.summary_of(callee)
        assert calls == [callee]
        assert s.call_chain() == []

    def test_recursive_request_gets_empty_summary(self, world):
        callee = world.private("Rec")
        world.straight_line(callee)
        seen = []
        holder = {}

        class Result:
            hazardous_usages = EMPTY_USAGES

        def body(proc):
            seen.append(holder["s"].summary_of(proc))
            return Result()

        s = holder["s"] = self._summarizer(world, body)
        s.summary_of(callee)
        assert seen == [EMPTY_USAGES]

    def test_depth_limit_returns_empty_without_caching(self, world):
        callee = world.private("Deep")
        world.straight_line(callee)
        s = self._summarizer(world, max_call_chain=0)
        s.call_chain().append(world.method("Root"))
        try:
            assert s.summary_of(callee) is EMPTY_USAGES
        finally:
            s.call_chain().pop()
        assert callee not in s.cache

    def test_depth_limit_leaves_callers_uncached(self, world):
        outer = world.private("Outer")
        world.straight_line(outer)
        inner = world.private("Inner")
        world.straight_line(inner)
        holder = {}

        class Result:
            hazardous_usages = EMPTY_USAGES

        def body(proc):
            if proc is outer:
                assert holder["s"].summary_of(inner) is EMPTY_USAGES
            return Result()

        s = holder["s"] = self._summarizer(world, body, max_call_chain=0)
        s.result_of(outer)
        assert outer not in s.cache and inner not in s.cache
        assert s.cache.transient == 1
        assert s.call_chain() == []

    def test_cached_summary_served_beyond_depth_limit(self, world):
        callee = world.private("Deep")
        world.straight_line(callee)

        class Result:
            hazardous_usages = HazardousUsageMap({param(callee, "p"): SyntaxNode(5)})

        s = self._summarizer(world, lambda proc: Result(), max_call_chain=0)
        s.result_of(callee)
        s.call_chain().append(world.method("Root"))
        try:
            assert param(callee, "p") in s.summary_of(callee)
        finally:
            s.call_chain().pop()
        assert s.cache.transient == 0
