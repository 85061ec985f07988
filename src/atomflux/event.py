"""Events: fireable signals that behave like atoms.

An event is loading until it first fires, then holds the last payload.
Selections can read() it, and race() it against other cells:

    submitted = event()
    result = derived(lambda ctx: ctx.race(submitted, timeout))

    submitted.fire(form)

``await event.next()`` waits for the next meaningful fire, independent of
what the event currently holds. With ``once=True`` the event seals after
its first fire and ignores later ones.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Generic, Optional, TypeVar

from atomflux import hooks
from atomflux.atom import Atom, LazyInit, Literal
from atomflux.emitter import _noop
from atomflux.equality import EqualityOption, never_equal, resolve_equality
from atomflux.state import AtomState, LoadingState

T = TypeVar("T")


class Event(Generic[T]):
    """A signal that can be fired, awaited and read."""

    def __init__(
        self,
        *,
        equals: EqualityOption = None,
        once: bool = False,
        meta: Optional[dict] = None,
    ) -> None:
        self._equals = never_equal if equals is None else resolve_equality(equals)
        self._once = once
        self._fired = False
        self._last: Optional[T] = None
        self._fire_count = 0
        self._next: Optional[asyncio.Future] = None
        # the backing atom is an implementation detail; report only the event
        with hooks.on_create.use(None):
            self._internal: Atom[T] = Atom(LazyInit(self._initial), equals=never_equal)
        self.meta = meta
        self._info = hooks.create_info("event", meta, self)
        hooks.emit_create(self._info)

    @property
    def key(self) -> Optional[str]:
        return self._info.key

    def _initial(self) -> Any:
        # pending until the first fire
        if self._fired:
            return self._last
        return self.next()

    def fire(self, payload: Optional[T] = None) -> None:
        """Fire with ``payload``. Ignored when sealed or equal to the last payload."""
        if self._once and self._fired:
            return
        if self._fired and self._equals(self._last, payload):
            return

        self._fired = True
        self._last = payload
        self._fire_count += 1

        waiting = self._next
        if not self._once:
            self._next = None
        if waiting is not None and not waiting.done():
            waiting.set_result(payload)

        self._internal.set(Literal(payload))

    def next(self) -> asyncio.Future:
        """Future for the next fire. A sealed event returns its final payload."""
        if self._next is None:
            self._next = asyncio.get_running_loop().create_future()
            if self.sealed():
                self._next.set_result(self._last)
        return self._next

    def get(self) -> asyncio.Future:
        """The current payload as a future; pending until the first fire."""
        return self._internal.get()

    def __await__(self):
        return self.get().__await__()

    def last(self) -> Optional[T]:
        return self._last

    @property
    def fire_count(self) -> int:
        return self._fire_count

    def sealed(self) -> bool:
        return self._once and self._fired

    # -- atom-compatible reading ---------------------------------------------

    @property
    def value(self) -> Optional[T]:
        return self._last

    @property
    def loading(self) -> bool:
        return not self._fired

    @property
    def error(self) -> None:
        return None

    def stale(self) -> bool:
        return False

    def state(self) -> AtomState:
        if not self._fired:
            return LoadingState(self._next)
        return self._internal.state()

    def on(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Call ``listener()`` on every fire. A sealed event calls it right away."""
        if self.sealed():
            listener()
            return _noop
        return self._internal.on(listener)

    def __repr__(self) -> str:
        status = "sealed" if self.sealed() else f"fired {self._fire_count}x"
        return f"Event({status})"


def event(
    *,
    equals: EqualityOption = None,
    once: bool = False,
    meta: Optional[dict] = None,
) -> Event[Any]:
    """Create an event.

    Usage:
        clicked = event()
        clicked.fire("ok")
        clicked.last()      # "ok"
        clicked.fire_count  # 1
    """
    return Event(equals=equals, once=once, meta=meta)
