"""Tests for the selection context."""

import asyncio

import pytest

from atomflux import AllAtomsRejectedError, ErrorState, ReadyState, UsageError, atom, select


def failing(error):
    def init():
        raise error

    return atom(init)


class TestRead:
    def test_value_and_dependencies(self):
        a, b = atom(1), atom(2)
        result = select(lambda ctx: ctx.read(a) + ctx.read(b))
        assert result.value == 3
        assert result.status == "ready"
        assert list(result.dependencies) == [a, b]

    def test_error_aborts_but_keeps_earlier_dependencies(self):
        a = atom(1)
        bad = failing(KeyError("k"))
        never = atom(3)
        result = select(lambda ctx: ctx.read(a) + ctx.read(bad) + ctx.read(never))
        assert isinstance(result.error, KeyError)
        assert list(result.dependencies) == [a, bad]

    @pytest.mark.asyncio
    async def test_loading_suspends(self):
        fut = asyncio.get_running_loop().create_future()
        a = atom(fut)
        result = select(lambda ctx: ctx.read(a))
        assert result.status == "loading"
        assert result.future is fut

    @pytest.mark.asyncio
    async def test_fallback_never_suspends(self):
        fut = asyncio.get_running_loop().create_future()
        a = atom(fut, fallback="guest")
        result = select(lambda ctx: ctx.read(a))
        assert result.value == "guest"

    def test_exception_in_selector(self):
        def fn(ctx):
            raise RuntimeError("x")

        assert isinstance(select(fn).error, RuntimeError)


class TestCombinators:
    def test_all(self):
        a, b = atom(1), atom(2)
        assert select(lambda ctx: ctx.all(a, b)).value == [1, 2]

    def test_all_first_error(self):
        err = ValueError()
        result = select(lambda ctx: ctx.all(atom(1), failing(err)))
        assert result.error is err

    @pytest.mark.asyncio
    async def test_all_suspends_on_combined_future(self, drain):
        loop = asyncio.get_running_loop()
        f1, f2 = loop.create_future(), loop.create_future()
        result = select(lambda ctx: ctx.all(atom(f1), atom(f2)))
        assert result.status == "loading"
        f1.set_result(1)
        await drain()
        assert not result.future.done()
        f2.set_result(2)
        await drain()
        assert result.future.done()

    @pytest.mark.asyncio
    async def test_race_first_ready(self):
        fut = asyncio.get_running_loop().create_future()
        result = select(lambda ctx: ctx.race(atom(fut), atom("b")))
        assert result.value == "b"

    def test_race_requires_inputs(self):
        assert isinstance(select(lambda ctx: ctx.race()).error, UsageError)

    def test_any_skips_errors(self):
        result = select(lambda ctx: ctx.any(failing(KeyError()), atom(2)))
        assert result.value == 2

    def test_any_all_rejected(self):
        e1, e2 = KeyError(), ValueError()
        result = select(lambda ctx: ctx.any(failing(e1), failing(e2)))
        assert isinstance(result.error, AllAtomsRejectedError)
        assert result.error.errors == [e1, e2]

    def test_any_no_inputs(self):
        assert isinstance(select(lambda ctx: ctx.any()).error, AllAtomsRejectedError)

    @pytest.mark.asyncio
    async def test_any_suspends_while_loading(self):
        fut = asyncio.get_running_loop().create_future()
        result = select(lambda ctx: ctx.any(failing(KeyError()), atom(fut)))
        assert result.status == "loading"

    def test_settled(self):
        err = KeyError()
        result = select(lambda ctx: ctx.settled(atom(1), failing(err)))
        assert result.value == [ReadyState(1), ErrorState(err)]

    @pytest.mark.asyncio
    async def test_state_never_suspends(self):
        fut = asyncio.get_running_loop().create_future()
        result = select(lambda ctx: ctx.state(atom(fut)).status)
        assert result.value == "loading"


class TestReady:
    def test_none_suspends_without_future(self):
        a = atom(None)
        result = select(lambda ctx: ctx.ready(a))
        assert result.status == "loading"
        assert result.future is None

    def test_value_passes(self):
        assert select(lambda ctx: ctx.ready(atom(0))).value == 0

    def test_selector(self):
        user = atom({"name": None})
        result = select(lambda ctx: ctx.ready(user, lambda u: u["name"]))
        assert result.status == "loading"
        user.set({"name": "ada"})
        assert select(lambda ctx: ctx.ready(user, lambda u: u["name"])).value == "ada"

    def test_fn_form(self):
        assert select(lambda ctx: ctx.ready(lambda: "x")).value == "x"

    @pytest.mark.asyncio
    async def test_fn_form_rejects_deferred(self):
        async def work():
            return 1

        result = select(lambda ctx: ctx.ready(lambda: work()))
        assert isinstance(result.error, UsageError)


class TestSafe:
    def test_error_pair(self):
        def fn(ctx):
            return ctx.safe(lambda: 1 / 0)

        error, value = select(fn).value
        assert isinstance(error, ZeroDivisionError)
        assert value is None

    def test_value_pair(self):
        assert select(lambda ctx: ctx.safe(lambda: 5)).value == (None, 5)

    @pytest.mark.asyncio
    async def test_suspension_passes_through(self):
        a = atom(asyncio.get_running_loop().create_future())
        result = select(lambda ctx: ctx.safe(lambda: ctx.read(a)))
        assert result.status == "loading"


class TestUsage:
    def test_context_outside_selection(self):
        saved = []
        select(lambda ctx: saved.append(ctx))
        with pytest.raises(UsageError):
            saved[0].read(atom(1))

    @pytest.mark.asyncio
    async def test_deferred_return_raises(self):
        async def work():
            return 1

        with pytest.raises(UsageError):
            select(lambda ctx: work())

    def test_use(self):
        result = select(lambda ctx: ctx.use(lambda c: c is ctx))
        assert result.value is True
