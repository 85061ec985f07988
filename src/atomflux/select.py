"""Selection context: one synchronous run of a reactive selector.

select(fn) calls ``fn(ctx)`` once and reports what happened: a value, an
error, or the future the run suspended on, plus every atom that ``fn``
read. Reading a loading atom raises Suspended, which aborts the run the
same way an exception does; the caller decides when to retry.

    result = select(lambda ctx: ctx.read(first) + " " + ctx.read(last))
    result.value, result.dependencies
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Literal, Optional, Protocol, TypeVar, Union

from atomflux import deferred
from atomflux.errors import AllAtomsRejectedError, Suspended, UsageError
from atomflux.state import AtomState, ErrorState, LoadingState, ReadyState

if TYPE_CHECKING:
    from atomflux.pool import Pool

T = TypeVar("T")
R = TypeVar("R")


class Readable(Protocol):
    """Anything a selection can depend on: atoms, derived atoms, events."""

    @property
    def value(self) -> Any: ...

    def stale(self) -> bool: ...

    def state(self) -> AtomState: ...

    def on(self, listener: Callable[[], None]) -> Callable[[], None]: ...


def atom_state(source: Readable) -> AtomState:
    """The status a selection sees.

    An atom with a fallback reads as ready with its fallback (or last
    resolved value) while loading or failed.
    """
    if source.stale():
        return ReadyState(source.value)
    return source.state()


@dataclass
class SelectResult:
    value: Any = None
    error: Optional[BaseException] = None
    future: Optional[asyncio.Future] = None
    dependencies: dict = field(default_factory=dict)
    suspended: bool = False

    @property
    def status(self) -> Literal["ready", "error", "loading"]:
        if self.suspended:
            return "loading"
        if self.error is not None:
            return "error"
        return "ready"


class SelectContext:
    """Reading API handed to a selector. Valid only while the selector runs."""

    def __init__(self) -> None:
        self._dependencies: dict = {}
        self._active = True

    @property
    def dependencies(self) -> list:
        return list(self._dependencies)

    def _check(self, method: str) -> None:
        if not self._active:
            raise UsageError(
                f"{method}() was called after the selection finished. "
                "Context methods only work synchronously inside the selector; "
                "use await atom.get() for asynchronous access."
            )

    def _track(self, source: Readable) -> AtomState:
        self._dependencies[source] = None
        return atom_state(source)

    def read(self, source: Readable) -> Any:
        """Value of ``source``; raises its error or suspends while it loads."""
        self._check("read")
        state = self._track(source)
        if state.status == "ready":
            return state.value
        if state.status == "error":
            raise state.error
        raise Suspended(state.future)

    def all(self, *sources: Readable) -> list:
        """Every value, once all are ready. The first error wins."""
        self._check("all")
        values = []
        pending = []
        for source in sources:
            state = self._track(source)
            if state.status == "ready":
                values.append(state.value)
            elif state.status == "error":
                raise state.error
            else:
                pending.append(state.future)
        if pending:
            raise _suspend("all", pending)
        return values

    def race(self, *sources: Readable) -> Any:
        """The first input that settled, value or error."""
        self._check("race")
        if not sources:
            raise UsageError("race() called with no atoms")
        pending = []
        for source in sources:
            state = self._track(source)
            if state.status == "ready":
                return state.value
            if state.status == "error":
                raise state.error
            pending.append(state.future)
        raise _suspend("race", pending)

    def any(self, *sources: Readable) -> Any:
        """The first ready value. Fails only when every input failed."""
        self._check("any")
        errors = []
        pending = []
        for source in sources:
            state = self._track(source)
            if state.status == "ready":
                return state.value
            if state.status == "error":
                errors.append(state.error)
            else:
                pending.append(state.future)
        if pending:
            raise _suspend("race", pending)
        raise AllAtomsRejectedError(errors)

    def settled(self, *sources: Readable) -> list[Union[ReadyState, ErrorState]]:
        """Ready/error records for every input, once none is loading."""
        self._check("settled")
        results: list[Union[ReadyState, ErrorState]] = []
        pending = []
        for source in sources:
            state = self._track(source)
            if isinstance(state, LoadingState):
                pending.append(state.future)
            else:
                results.append(state)
        if pending:
            raise _suspend("all", pending)
        return results

    def state(self, source: Readable) -> AtomState:
        """Snapshot of ``source`` that never suspends or raises."""
        self._check("state")
        return self._track(source)

    def ready(self, source: Union[Readable, Callable[[], Any]], selector: Optional[Callable[[Any], Any]] = None) -> Any:
        """Like read(), but a None value suspends until a dependency changes.

        ``ready(atom, selector)`` applies ``selector`` to the value first; a
        future it returns is unwrapped. ``ready(fn)`` calls ``fn()``, which
        must stay synchronous.
        """
        self._check("ready")
        if _is_readable(source):
            value = self.read(source)
            if selector is not None:
                value = deferred.unwrap(selector(value))
        else:
            value = source()
            if deferred.is_deferred(value):
                _close(value)
                raise UsageError("ready(fn) must return a synchronous value, not a future")
        if value is None:
            raise Suspended(None)
        return value

    def safe(self, fn: Callable[[], R]) -> tuple[Optional[Exception], Optional[R]]:
        """Run ``fn`` and return ``(error, None)`` or ``(None, result)``.

        Suspension is not an error and passes through.
        """
        self._check("safe")
        try:
            return None, fn()
        except Exception as e:
            return e, None

    def from_pool(self, pool: Pool, params: Any) -> Readable:
        """The atom a pool holds for ``params``, to read in this selection."""
        self._check("from_pool")
        return pool.get_atom(params)

    def use(self, extension: Callable[[SelectContext], R]) -> R:
        return extension(self)


def _suspend(kind: Literal["all", "race"], futures: list) -> Suspended:
    # a loading derived may not have created its future yet
    futures = [f for f in futures if f is not None]
    return Suspended(deferred.combine(kind, futures) if futures else None)


def _is_readable(source: Any) -> bool:
    return hasattr(source, "state") and hasattr(source, "on")


def _close(value: Any) -> None:
    # a coroutine that is never awaited would warn on garbage collection
    if hasattr(value, "close") and not asyncio.isfuture(value):
        value.close()


def select(fn: Callable[[SelectContext], T]) -> SelectResult:
    """Run ``fn`` once, synchronously, and report value/error/suspension.

    Returning a future or coroutine from ``fn`` is a UsageError, raised
    straight away rather than recorded.
    """
    ctx = SelectContext()
    try:
        value = fn(ctx)
    except Suspended as s:
        return SelectResult(future=s.future, dependencies=ctx._dependencies, suspended=True)
    except Exception as e:
        return SelectResult(error=e, dependencies=ctx._dependencies)
    finally:
        ctx._active = False

    if deferred.is_deferred(value):
        _close(value)
        raise UsageError(
            "A selector must return a synchronous value, not a future. "
            "Create an atom from the future and read it instead."
        )
    return SelectResult(value=value, dependencies=ctx._dependencies)
