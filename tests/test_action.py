"""Tests for action batching and transaction context manager."""

import pytest

from atomflux import action, atom, effect, get_pending_count, transaction


class TestAction:
    def test_batches_updates(self):
        a = atom(0)
        b = atom(0)
        log = []
        effect(lambda ctx: log.append((ctx.read(a), ctx.read(b))))
        assert log == [(0, 0)]

        @action
        def update_both():
            a.set(1)
            b.set(2)

        update_both()
        # Should see (1, 2) not intermediate (1, 0)
        assert log == [(0, 0), (1, 2)]

    def test_nested_actions(self):
        o = atom(0)
        log = []
        effect(lambda ctx: log.append(ctx.read(o)))

        @action
        def outer():
            o.set(1)

            @action
            def inner():
                o.set(2)

            inner()
            o.set(3)

        outer()
        # Only fires after outermost action completes
        assert log == [0, 3]

    def test_preserves_return_value(self):
        @action
        def compute():
            return 42

        assert compute() == 42

    def test_flushes_on_exception(self):
        o = atom(0)
        log = []
        o.on(lambda: log.append(o.value))

        @action
        def fail():
            o.set(1)
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            fail()
        assert log == [1]
        assert get_pending_count() == 0


class TestTransaction:
    def test_batches_updates(self):
        a = atom(0)
        b = atom(0)
        log = []
        effect(lambda ctx: log.append((ctx.read(a), ctx.read(b))))

        with transaction():
            a.set(10)
            b.set(20)

        assert log == [(0, 0), (10, 20)]

    def test_listener_deduplicated(self):
        o = atom(0)
        log = []
        o.on(lambda: log.append(o.value))

        with transaction():
            o.set(1)
            o.set(2)
            assert get_pending_count() == 1
            assert log == []

        assert log == [2]

    def test_nested_transactions(self):
        o = atom(0)
        log = []
        effect(lambda ctx: log.append(ctx.read(o)))

        with transaction():
            o.set(1)
            with transaction():
                o.set(2)
            o.set(3)

        assert log == [0, 3]

    def test_cascading_writes_are_batched(self):
        source = atom(0)
        a = atom(0)
        b = atom(0)
        seen = []
        source.on(lambda: (a.set(source.value), b.set(source.value)))
        effect(lambda ctx: seen.append((ctx.read(a), ctx.read(b))))

        with transaction():
            source.set(7)

        assert seen == [(0, 0), (7, 7)]
