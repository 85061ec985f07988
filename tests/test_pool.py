"""Tests for pools."""

import asyncio

import pytest

from atomflux import derived, hooks, pool


class TestPool:
    def test_get_creates_once_for_equal_params(self, timers):
        calls = []

        def factory(params):
            calls.append(params)
            return params["id"].upper()

        p = pool(factory, gc_time=1000)
        assert p.get({"id": "a"}) == "A"
        assert p.get({"id": "a"}) == "A"
        assert calls == [{"id": "a"}]
        assert p.get_atom({"id": "a"}) is p.get_atom({"id": "a"})
        assert len(p) == 1

    def test_reference_cache_keeps_one_object_per_entry(self, timers):
        p = pool(lambda params: params["id"], gc_time=1000)
        for _ in range(100):
            p.get({"id": "a"})
        same = {"id": "a"}
        p.get(same)
        assert p.get_atom(same) is p.get_atom({"id": "a"})
        assert len(p) == 1
        assert len(p._by_ref) == 1
        p.remove(same)
        assert len(p._by_ref) == 0

    def test_factory_arities(self, timers):
        assert pool(lambda: "none", gc_time=10).get(1) == "none"
        assert pool(lambda n: n * 2, gc_time=10).get(2) == 4
        assert pool(lambda n, ctx: (n, ctx.token.cancelled), gc_time=10).get(3) == (3, False)

    def test_set_has_remove(self, timers):
        p = pool(lambda n: n, gc_time=1000)
        p.set(1, 10)
        assert p.has(1)
        assert p.get(1) == 10
        p.set(1, lambda v: v + 1)
        assert p.get(1) == 11
        p.remove(1)
        assert not p.has(1)

    def test_lifecycle_events(self, timers):
        p = pool(lambda n: n * 10, gc_time=1000)
        events = []
        p.on(lambda ev: events.append((ev.type, ev.params, ev.value)))
        p.get(1)
        p.set(1, 5)
        p.remove(1)
        assert events == [("create", 1, 10), ("change", 1, 5), ("remove", 1, 5)]

    def test_remove_cancels_token_and_runs_cleanups(self, timers):
        seen = {}
        log = []

        def factory(n, ctx):
            seen["token"] = ctx.token
            ctx.on_cleanup(lambda: log.append("cleanup"))
            return n

        p = pool(factory, gc_time=1000)
        p.get(1)
        removed = []
        p.on_remove(1, lambda: removed.append(1))
        p.remove(1)
        assert seen["token"].cancelled
        assert log == ["cleanup"]
        assert removed == [1]

    def test_on_remove_for_missing_entry(self, timers):
        p = pool(lambda n: n, gc_time=1000)
        off = p.on_remove("missing", lambda: None)
        off()

    def test_clear_and_for_each(self, timers):
        p = pool(lambda n: n * n, gc_time=1000)
        p.get(2)
        p.get(3)
        seen = []
        p.for_each(lambda value, params: seen.append((params, value)))
        assert seen == [(2, 4), (3, 9)]
        p.clear()
        assert len(p) == 0

    def test_reset_reruns_factory(self, timers):
        calls = []

        def factory(n):
            calls.append(n)
            return len(calls)

        p = pool(factory, gc_time=1000)
        assert p.get("k") == 1
        p.reset("k")
        assert p.get("k") == 2

    def test_custom_params_equality(self, timers):
        p = pool(lambda s: s, gc_time=1000, equals=lambda a, b: a.lower() == b.lower())
        p.get("Key")
        assert p.has("KEY")

    def test_create_hook(self, timers):
        created = []
        hooks.configure(on_create=created.append)
        p = pool(lambda n: n, gc_time=1000, meta={"key": "users"})
        p.get(1)
        types = [info.type for info in created]
        assert types == ["pool", "mutable"]
        assert created[0].key == "users"

    def test_from_pool_in_selection(self, timers):
        p = pool(lambda n: n + 1, gc_time=1000)
        d = derived(lambda ctx: ctx.read(ctx.from_pool(p, 1)) * 10)
        assert d.value == 20
        p.set(1, 5)
        assert d.value == 50


class TestIdleEviction:
    def test_evicted_after_gc_time(self, timers):
        p = pool(lambda params: params["id"], gc_time=1000)
        removes = []
        p.on(lambda ev: removes.append(ev.params) if ev.type == "remove" else None)
        p.get({"id": "a"})
        timers.advance(999)
        assert p.has({"id": "a"})
        timers.advance(1)
        assert not p.has({"id": "a"})
        assert removes == [{"id": "a"}]
        timers.advance(5000)
        assert removes == [{"id": "a"}]

    def test_get_restarts_timer(self, timers):
        p = pool(lambda n: n, gc_time=1000)
        p.get(1)
        timers.advance(600)
        p.get(1)
        timers.advance(600)
        assert p.has(1)
        timers.advance(400)
        assert not p.has(1)

    @pytest.mark.asyncio
    async def test_not_evicted_while_loading(self, timers, drain):
        fut = asyncio.get_running_loop().create_future()
        p = pool(lambda n: fut, gc_time=1000)
        p.get(1)
        timers.advance(5000)
        assert p.has(1)
        fut.set_result("loaded")
        await drain()
        assert p.get(1) == "loaded"
        timers.advance(999)
        assert p.has(1)
        timers.advance(1)
        assert not p.has(1)
