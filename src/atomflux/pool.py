"""Pools: keyed families of atoms with idle eviction.

A pool creates one atom per distinct parameter value, on first use, from
a factory. Entries that nobody touched for ``gc_time`` milliseconds are
evicted, except while their atom is still loading:

    users = pool(lambda user_id: fetch_user(user_id), gc_time=60_000)
    users.get(42)            # creates the entry, starts loading
    users.on(print)          # PoolEvent(type="create" | "change" | "remove", ...)

Parameters are compared with ``equals`` ("shallow" by default), so two
equal dicts address the same entry.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterator, Literal, Optional, TypeVar

from atomflux import hooks
from atomflux.atom import Atom, AtomContext, LazyInit, positional_arity
from atomflux.emitter import Emitter, _noop
from atomflux.equality import EqualityOption, resolve_equality

logger = logging.getLogger("atomflux.pool")

P = TypeVar("P")
T = TypeVar("T")


@dataclass(frozen=True)
class PoolEvent(Generic[P, T]):
    type: Literal["create", "change", "remove"]
    params: P
    value: Optional[T]


@dataclass(eq=False)
class _Entry:
    params: Any
    atom: Atom
    ref: Any = None
    timer: Optional[hooks.TimerHandle] = None
    unsubscribe: Callable[[], None] = _noop
    change_token: object = None
    removed: bool = False
    on_removed: Emitter = field(default_factory=Emitter)


class Pool(Generic[P, T]):
    """A keyed cache of atoms, one per distinct parameter value."""

    def __init__(
        self,
        factory: Callable[..., Any],
        *,
        gc_time: float,
        equals: EqualityOption = "shallow",
        meta: Optional[dict] = None,
    ) -> None:
        self._factory = factory
        self._arity = positional_arity(factory)
        self._gc_time = gc_time
        self._params_equal = resolve_equality(equals)
        self._entries: list[_Entry] = []
        # id(last params object seen) -> entry, for callers passing the same object again
        self._by_ref: dict[int, _Entry] = {}
        self._events: Emitter[PoolEvent] = Emitter()
        self.meta = meta
        self._info = hooks.create_info("pool", meta, self)
        hooks.emit_create(self._info)

    @property
    def key(self) -> Optional[str]:
        return self._info.key

    # -- lookup --------------------------------------------------------------

    def _find(self, params: Any) -> Optional[_Entry]:
        entry = self._by_ref.get(id(params))
        if entry is not None and entry.ref is params:
            return entry
        for entry in self._entries:
            if self._params_equal(entry.params, params):
                self._remember(params, entry)
                return entry
        return None

    def _remember(self, params: Any, entry: _Entry) -> None:
        # one cached object per entry; the previous one is released
        self._forget(entry)
        entry.ref = params
        self._by_ref[id(params)] = entry

    def _forget(self, entry: _Entry) -> None:
        if self._by_ref.get(id(entry.ref)) is entry:
            del self._by_ref[id(entry.ref)]
        entry.ref = None

    def _get_or_create(self, params: Any) -> _Entry:
        entry = self._find(params)
        if entry is not None:
            return entry

        entry = _Entry(params=params, atom=Atom(LazyInit(functools.partial(self._create_value, params))))
        self._entries.append(entry)
        self._remember(params, entry)
        entry.unsubscribe = entry.atom.on(functools.partial(self._on_entry_change, entry))
        self._events.emit(PoolEvent("create", params, entry.atom.value))
        return entry

    def _create_value(self, params: Any, context: AtomContext) -> Any:
        if self._arity == 0:
            return self._factory()
        if self._arity == 1:
            return self._factory(params)
        return self._factory(params, context)

    # -- idle eviction ---------------------------------------------------------

    def _disarm(self, entry: _Entry) -> None:
        if entry.timer is not None:
            entry.timer.cancel()
            entry.timer = None

    def _arm(self, entry: _Entry) -> None:
        self._disarm(entry)
        token = entry.change_token = object()
        entry.timer = hooks.call_later(self._gc_time / 1000, functools.partial(self._on_idle, entry, token))

    def _on_idle(self, entry: _Entry, token: object) -> None:
        entry.timer = None
        if entry.removed or entry.change_token is not token:
            return
        state = entry.atom.state()
        if state.status == "loading" and state.future is not None:
            logger.debug("Deferring eviction of %r until it settles", entry.params)

            def _settled(_future: Any) -> None:
                if not entry.removed and entry.change_token is token:
                    self._arm(entry)

            state.future.add_done_callback(_settled)
            return
        self._remove_entry(entry)

    def _on_entry_change(self, entry: _Entry) -> None:
        self._arm(entry)
        self._events.emit(PoolEvent("change", entry.params, entry.atom.value))

    def _remove_entry(self, entry: _Entry) -> None:
        if entry.removed:
            return
        entry.removed = True
        self._disarm(entry)
        entry.unsubscribe()
        entry.atom._invalidate()
        last_value = entry.atom.value

        entry.on_removed.emit_and_clear()

        self._entries.remove(entry)
        self._forget(entry)
        logger.debug("Removed pool entry %r", entry.params)
        self._events.emit(PoolEvent("remove", entry.params, last_value))

    # -- public API ------------------------------------------------------------

    def get(self, params: P) -> Optional[T]:
        """Current value for ``params``, creating the entry if needed."""
        entry = self._get_or_create(params)
        self._arm(entry)
        return entry.atom.value

    def set(self, params: P, value: Any) -> None:
        """Write to the entry's atom (literal, future or reducer)."""
        entry = self._get_or_create(params)
        self._arm(entry)
        entry.atom.set(value)

    def has(self, params: P) -> bool:
        return self._find(params) is not None

    def remove(self, params: P) -> None:
        entry = self._find(params)
        if entry is not None:
            self._remove_entry(entry)

    def reset(self, params: P) -> None:
        """Reset the entry's atom so its factory runs again on next read."""
        entry = self._get_or_create(params)
        self._arm(entry)
        entry.atom.reset()

    def clear(self) -> None:
        for entry in list(self._entries):
            self._remove_entry(entry)

    def for_each(self, callback: Callable[[Optional[T], P], None]) -> None:
        for entry in list(self._entries):
            callback(entry.atom.value, entry.params)

    def get_atom(self, params: P) -> Atom[T]:
        """The atom backing ``params``, for reading in selections."""
        entry = self._get_or_create(params)
        self._arm(entry)
        return entry.atom

    def on(self, listener: Callable[[PoolEvent], None]) -> Callable[[], None]:
        """Listen to create/change/remove events for every entry."""
        return self._events.on(listener)

    def on_remove(self, params: P, listener: Callable[[], None]) -> Callable[[], None]:
        """Call ``listener()`` when the entry for ``params`` is removed."""
        entry = self._find(params)
        if entry is None:
            return _noop
        return entry.on_removed.on(listener)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[P]:
        return iter([entry.params for entry in self._entries])

    def __repr__(self) -> str:
        return f"Pool({len(self._entries)} entries, gc_time={self._gc_time})"


def pool(
    factory: Callable[..., Any],
    *,
    gc_time: float,
    equals: EqualityOption = "shallow",
    meta: Optional[dict] = None,
) -> Pool:
    """Create a pool.

    ``factory`` takes no argument, ``params``, or ``(params, context)``
    where context is an AtomContext whose token is cancelled on removal.

    Usage:
        todos = pool(lambda list_id: load_todos(list_id), gc_time=30_000)
        todos.get("inbox")
        todos.remove("inbox")
    """
    return Pool(factory, gc_time=gc_time, equals=equals, meta=meta)
