"""Mutable atoms: lazily initialized reactive cells.

An atom holds a synchronous value or the eventual result of a future.
Its initializer runs on first read, never at construction:

    user = atom(fetch_user)          # called on first access
    count = atom(0)                  # literal
    page = atom(load_page())         # coroutine, scheduled on first access

set() accepts a literal, a future/coroutine, or a reducer:

    count.set(5)
    count.set(lambda n: n + 1)
    page.set(load_page(2))

Asynchronous results are applied only if nothing else was written in the
meantime (checked through the cell's version counter).
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import sys
from dataclasses import dataclass
from typing import Any, Callable, Generator, Generic, Optional, TypeVar, Union

from atomflux import deferred, hooks
from atomflux.cancel import CancelToken
from atomflux.emitter import Emitter
from atomflux.equality import EqualityOption
from atomflux.state import _UNSET, AtomState, CellState

logger = logging.getLogger("atomflux.atom")

T = TypeVar("T")


def positional_arity(fn: Callable) -> int:
    """How many positional arguments ``fn`` accepts (sys.maxsize for *args)."""
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return 0
    count = 0
    for param in signature.parameters.values():
        if param.kind is param.VAR_POSITIONAL:
            return sys.maxsize
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
            count += 1
    return count


@dataclass(frozen=True)
class AtomContext:
    """Handed to lazy initializers and pool factories that accept an argument."""

    token: CancelToken
    on_cleanup: Callable[[Callable[[], None]], Callable[[], None]]


# -- initializers ------------------------------------------------------------


class Literal(Generic[T]):
    """Use ``value`` as-is, even when it is callable or a future."""

    __slots__ = ("value",)

    def __init__(self, value: T) -> None:
        self.value = value

    def __repr__(self) -> str:
        return f"Literal({self.value!r})"


class Deferred(Generic[T]):
    """A future or coroutine whose result becomes the value.

    A coroutine is scheduled the first time it is needed; the resulting
    future is kept, so a reset atom re-applies the same outcome.
    """

    __slots__ = ("_source", "_future")

    def __init__(self, source: Any) -> None:
        self._source = source
        self._future: Optional[asyncio.Future] = None

    def future(self) -> asyncio.Future:
        if self._future is None:
            self._future = deferred.as_future(self._source)
            self._source = None
        return self._future

    def __repr__(self) -> str:
        return f"Deferred({self._future or self._source!r})"


class LazyInit(Generic[T]):
    """A function producing the value (or a future) on first access.

    A function accepting a positional argument receives an AtomContext.
    """

    __slots__ = ("fn", "_takes_context")

    def __init__(self, fn: Callable[..., Any]) -> None:
        self.fn = fn
        self._takes_context = positional_arity(fn) > 0

    def __call__(self, context: AtomContext) -> Any:
        if self._takes_context:
            return self.fn(context)
        return self.fn()

    def __repr__(self) -> str:
        return f"LazyInit({getattr(self.fn, '__name__', self.fn)!r})"


Initializer = Union[Literal, Deferred, LazyInit]


def as_initializer(initial: Any) -> Initializer:
    if isinstance(initial, (Literal, Deferred, LazyInit)):
        return initial
    if deferred.is_deferred(initial):
        return Deferred(initial)
    if callable(initial):
        return LazyInit(initial)
    return Literal(initial)


# -- atom --------------------------------------------------------------------


class Atom(Generic[T]):
    """A mutable reactive cell."""

    def __init__(
        self,
        initial: Any,
        *,
        equals: EqualityOption = None,
        fallback: Any = _UNSET,
        meta: Optional[dict] = None,
    ) -> None:
        self._init = as_initializer(initial)
        self._state: CellState[T] = CellState(equals, fallback)
        self._initialized = False
        self._token = CancelToken()
        self._cleanups: Emitter = Emitter()
        self.meta = meta
        self._info = hooks.create_info("mutable", meta, self)
        hooks.emit_create(self._info)

    @property
    def key(self) -> Optional[str]:
        return self._info.key

    # -- initialization ----------------------------------------------------

    def _ensure_init(self) -> None:
        if self._initialized:
            return
        self._initialized = True
        init = self._init
        if isinstance(init, Literal):
            self._state.set_value(init.value, silent=True)
        elif isinstance(init, Deferred):
            self._apply_deferred(init.future(), silent=True)
        else:
            try:
                result = init(AtomContext(self._token, self._cleanups.on))
            except Exception as e:
                self._state.set_error(e, silent=True)
                return
            self._write(result, silent=True)

    def _write(self, value: Any, silent: bool = False) -> None:
        if deferred.is_deferred(value):
            self._apply_deferred(value, silent)
        else:
            self._state.set_value(value, silent)

    def _apply_deferred(self, value: Any, silent: bool = False) -> None:
        future = deferred.as_future(value)
        entry = deferred.track(future)
        if entry.status == deferred.FULFILLED:
            self._state.set_value(entry.value, silent)
            return
        if entry.status == deferred.REJECTED:
            self._state.set_error(entry.error, silent)
            return
        # the continuation goes first so it runs before any subscriber retries
        self._state.set_loading(future, silent=True)
        future.add_done_callback(functools.partial(self._on_settled, self._state.version))
        if not silent:
            self._state.notify()

    def _on_settled(self, version: int, future: asyncio.Future) -> None:
        if self._state.is_version_stale(version):
            logger.debug("Discarding stale result for %r", self)
            return
        settled = deferred.outcome(future)
        if settled.status == deferred.FULFILLED:
            self._state.set_value(settled.value)
        else:
            self._state.set_error(settled.error)

    def _invalidate(self) -> None:
        """Cancel the token and run registered cleanups in order."""
        self._token.cancel()
        for cleanup in self._cleanups:
            try:
                cleanup()
            except Exception:
                logger.exception("Cleanup failed for %r", self)
        self._cleanups.clear()

    # -- reading -----------------------------------------------------------

    @property
    def value(self) -> Optional[T]:
        self._ensure_init()
        return self._state.value

    @property
    def loading(self) -> bool:
        self._ensure_init()
        return self._state.loading

    @property
    def error(self) -> Optional[BaseException]:
        self._ensure_init()
        return self._state.error

    def stale(self) -> bool:
        self._ensure_init()
        return self._state.stale()

    def dirty(self) -> bool:
        """True once set() has written, until the next reset()."""
        return self._state.is_dirty()

    def state(self) -> AtomState:
        self._ensure_init()
        return self._state.snapshot()

    def get(self) -> asyncio.Future:
        """The current value as a future. Needs a running event loop."""
        self._ensure_init()
        return self._state.future

    def __await__(self) -> Generator[Any, None, T]:
        return self.get().__await__()

    # -- writing -----------------------------------------------------------

    def set(self, value: Any) -> None:
        """Write a literal, a future/coroutine, or a reducer ``fn(previous)``.

        Wrap a callable in Literal to store it as the value.
        """
        if isinstance(value, Deferred):
            self._invalidate()
            self._set_deferred(value.future())
            return
        if deferred.is_deferred(value):
            self._invalidate()
            self._set_deferred(value)
            return

        # literals compare against, and reducers build on, the initial value
        self._ensure_init()
        self._invalidate()
        if isinstance(value, Literal):
            self._set_literal(value.value)
        elif callable(value):
            self._set_reducer(value)
        else:
            self._set_literal(value)

    def _set_literal(self, value: T) -> None:
        if self._state.is_equal(value):
            return
        self._state.mark_dirty()
        self._state.set_value(value)

    def _set_deferred(self, value: Any) -> None:
        self._initialized = True
        self._state.mark_dirty()
        self._apply_deferred(value)

    def _set_reducer(self, reducer: Callable[[Optional[T]], Any]) -> None:
        state = self._state
        state.mark_dirty()

        if state.loading:
            source = state.future
            chained = source.get_loop().create_future()
            self._apply_deferred(chained)
            version = state.version

            def _run_reducer(done: asyncio.Future) -> None:
                if state.is_version_stale(version):
                    chained.cancel()
                    return
                settled = deferred.outcome(done)
                if settled.status == deferred.REJECTED:
                    deferred.reject(chained, settled.error)
                    return
                try:
                    result = reducer(settled.value)
                except Exception as e:
                    deferred.reject(chained, e)
                    return
                if deferred.is_deferred(result):
                    deferred.transfer(deferred.as_future(result), chained)
                else:
                    chained.set_result(result)

            source.add_done_callback(_run_reducer)
            return

        try:
            result = reducer(state.last_resolved)
        except Exception as e:
            state.set_error(e)
            return
        if deferred.is_deferred(result):
            self._apply_deferred(result)
        else:
            state.set_value(result)

    def reset(self) -> None:
        """Forget everything; the next read runs the initializer again."""
        self._invalidate()
        self._token = CancelToken()
        self._cleanups = Emitter()
        self._initialized = False
        self._state.reset()

    # -- subscription ------------------------------------------------------

    def on(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Call ``listener()`` after every change. Returns an unsubscribe."""
        return self._state.on(listener)

    def __repr__(self) -> str:
        label = f" {self.key!r}" if self.key else ""
        return f"Atom{label}({self._state.status}, version={self._state.version})"


def atom(
    initial: Any,
    *,
    equals: EqualityOption = None,
    fallback: Any = _UNSET,
    meta: Optional[dict] = None,
) -> Atom:
    """Create a mutable atom.

    Usage:
        count = atom(0)
        count.value      # 0
        count.set(lambda n: n + 1)
        count.value      # 1

        user = atom(fetch_user, fallback=GUEST)
        user.value       # GUEST while loading
    """
    return Atom(initial, equals=equals, fallback=fallback, meta=meta)
