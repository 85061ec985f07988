"""Derived atoms: read-only cells computed from other cells.

A Derived wraps a selector. Each computation runs it through select(),
then re-subscribes to exactly the cells it read this time, so a branch
that is not taken does not trigger recomputation:

    name = derived(lambda ctx: ctx.read(nickname) if ctx.read(use_nick) else ctx.read(full))

While a dependency is loading the derived is loading too. Callers that
await it share one outstanding future, resolved or rejected when the
computation finally settles.

Derived atoms are lazy: nothing runs until the first read or on().
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Callable, Generator, Generic, Optional, TypeVar

from atomflux import deferred, hooks
from atomflux._tracking import check_circular, computing, current_derivation
from atomflux.equality import EqualityOption
from atomflux.select import Readable, SelectContext, SelectResult, select
from atomflux.state import _UNSET, AtomState, CellState, LoadingState

logger = logging.getLogger("atomflux.derived")

T = TypeVar("T")


class Derived(Generic[T]):
    """A lazily computed cell that tracks the cells it reads."""

    def __init__(
        self,
        fn: Callable[[SelectContext], T],
        *,
        equals: EqualityOption = None,
        fallback: Any = _UNSET,
        meta: Optional[dict] = None,
    ) -> None:
        self._fn = fn
        self._state: CellState[T] = CellState(equals, fallback)
        self._fallback = fallback
        self._subscriptions: dict[Readable, Callable[[], None]] = {}
        self._pending: Optional[asyncio.Future] = None
        self._initialized = False
        self.meta = meta
        self._info = hooks.create_info("derived", meta, self)
        hooks.emit_create(self._info)

    @property
    def key(self) -> Optional[str]:
        return self._info.key

    @property
    def dependencies(self) -> list:
        """The cells the last computation read."""
        return list(self._subscriptions)

    # -- computation -------------------------------------------------------

    def _init(self) -> None:
        check_circular(self)
        self._initialize()

    def _initialize(self) -> None:
        if self._initialized:
            return
        self._initialized = True
        self._compute(silent=True)

    def _compute(self, silent: bool = False) -> None:
        with computing(self):
            result = select(self._fn)
        self._update_subscriptions(result)

        if result.suspended:
            self._enter_loading(result.future, silent)
        elif result.error is not None:
            self._fail(result.error, silent)
        else:
            self._state.set_value(result.value, silent)
            pending, self._pending = self._pending, None
            if pending is not None and not pending.done():
                pending.set_result(result.value)

    def _update_subscriptions(self, result: SelectResult) -> None:
        observed = result.dependencies
        for source in list(self._subscriptions):
            if source not in observed:
                self._subscriptions.pop(source)()
        for source in observed:
            # a self-read already failed as circular; listening would loop
            if source is not self and source not in self._subscriptions:
                self._subscriptions[source] = source.on(self._on_dependency_change)

    def _enter_loading(self, dep_future: Optional[asyncio.Future], silent: bool) -> None:
        if dep_future is not None:
            pending = self._ensure_pending(dep_future.get_loop())
        else:
            # suspended on a None value; only a dependency change can lift it
            pending = self._pending if self._pending is not None and not self._pending.done() else None
        self._state.set_loading(pending, silent=True)
        if dep_future is not None:
            dep_future.add_done_callback(functools.partial(self._retry, self._state.version))
        if not silent:
            self._state.notify()

    def _ensure_pending(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> asyncio.Future:
        if self._pending is None or self._pending.done():
            loop = loop if loop is not None else asyncio.get_running_loop()
            self._pending = loop.create_future()
            deferred.track(self._pending)
        return self._pending

    def _fail(self, error: BaseException, silent: bool) -> None:
        self._state.set_error(error, silent)
        pending, self._pending = self._pending, None
        if pending is not None:
            deferred.reject(pending, error)
        hooks.report_error(self._info, error)

    def _retry(self, version: int, _future: asyncio.Future) -> None:
        if self._state.is_version_stale(version):
            logger.debug("Skipping stale retry for %r", self)
            return
        self._compute()

    def _on_dependency_change(self) -> None:
        if self in current_derivation.get():
            # written from its own computation (an effect body); do not re-enter
            return
        self._compute()

    def refresh(self) -> None:
        """Recompute now, even if no dependency changed."""
        if not self._initialized:
            self._initialize()
            return
        self._compute()

    def dispose(self) -> None:
        """Disconnect from all dependencies and drop all listeners.

        The derived becomes inert; reading it again recomputes from scratch.
        """
        for unsubscribe in self._subscriptions.values():
            unsubscribe()
        self._subscriptions.clear()
        self._state.clear_listeners()
        self._initialized = False

    # -- reading -----------------------------------------------------------

    @property
    def value(self) -> Optional[T]:
        self._init()
        return self._state.value

    @property
    def loading(self) -> bool:
        self._init()
        return self._state.loading

    @property
    def error(self) -> Optional[BaseException]:
        self._init()
        return self._state.error

    def stale(self) -> bool:
        self._init()
        return self._state.stale()

    @property
    def stale_value(self) -> Optional[T]:
        """Last computed value, else the fallback, whatever the current status."""
        self._init()
        if self._state.has_resolved:
            return self._state.last_resolved
        return None if self._fallback is _UNSET else self._fallback

    def state(self) -> AtomState:
        self._init()
        if self._state.loading:
            return LoadingState(self._pending)
        return self._state.snapshot()

    def get(self) -> asyncio.Future:
        """Future for the computed value. Needs a running event loop."""
        self._init()
        if self._state.loading:
            return self._ensure_pending()
        return self._state.future

    def __await__(self) -> Generator[Any, None, T]:
        return self.get().__await__()

    def on(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Call ``listener()`` after every change. Computes the derived if needed."""
        self._initialize()
        return self._state.on(listener)

    def __repr__(self) -> str:
        name = getattr(self._fn, "__name__", "derived")
        return f"Derived({name}, {self._state.status}, version={self._state.version})"


def derived(
    fn: Callable[[SelectContext], T],
    *,
    equals: EqualityOption = None,
    fallback: Any = _UNSET,
    meta: Optional[dict] = None,
) -> Derived[T]:
    """Decorator/factory to create a Derived from a selector.

    Usage:
        price = atom(10)
        qty = atom(3)

        @derived
        def total(ctx):
            return ctx.read(price) * ctx.read(qty)

        total.value  # 30
        qty.set(4)
        total.value  # 40
    """
    return Derived(fn, equals=equals, fallback=fallback, meta=meta)
