"""Ordered pub/sub primitive used by every cell, pool and effect.

Listeners are kept in registration order. Emission iterates a snapshot,
so listeners added or removed mid-emit only affect the next round.
A settled emitter replays its final payload to late subscribers, the
way an already-resolved future answers late awaiters.
"""

from __future__ import annotations

from typing import Callable, Generic, Iterable, Iterator, TypeVar, Union

T = TypeVar("T")

Listener = Callable[..., None]
Disposer = Callable[[], None]

_VOID = object()


def _noop() -> None:
    pass


def _call(listener: Listener, payload: object) -> None:
    if payload is _VOID:
        listener()
    else:
        listener(payload)


class Emitter(Generic[T]):
    """Listener registry with FIFO/LIFO fan-out and a one-shot settle mode."""

    __slots__ = ("_listeners", "_settled", "_settled_payload")

    def __init__(self, listeners: Iterable[Listener] = ()) -> None:
        # dict keeps insertion order and dedupes repeated registrations
        self._listeners: dict[Listener, None] = dict.fromkeys(listeners)
        self._settled = False
        self._settled_payload: object = _VOID

    def on(self, listeners: Union[Listener, list[Listener]]) -> Disposer:
        """Register one listener or a list of them. Returns an idempotent unsubscribe."""
        added = list(listeners) if isinstance(listeners, (list, tuple)) else [listeners]

        if self._settled:
            for listener in added:
                _call(listener, self._settled_payload)
            return _noop

        for listener in added:
            self._listeners[listener] = None

        def _unsubscribe() -> None:
            for listener in added:
                self._listeners.pop(listener, None)

        return _unsubscribe

    def emit(self, payload: object = _VOID) -> None:
        if not self._settled:
            self._emit(payload, clear=False, lifo=False)

    def emit_lifo(self, payload: object = _VOID) -> None:
        """Emit in reverse registration order, for release-style fan-out."""
        if not self._settled:
            self._emit(payload, clear=False, lifo=True)

    def emit_and_clear(self, payload: object = _VOID) -> None:
        if not self._settled:
            self._emit(payload, clear=True, lifo=False)

    def settle(self, payload: object = _VOID) -> None:
        """Emit a final payload, drop all listeners and replay it to late subscribers."""
        if self._settled:
            return
        self._settled = True
        self._settled_payload = payload
        self._emit(payload, clear=True, lifo=False)

    def settled(self) -> bool:
        return self._settled

    def clear(self) -> None:
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)

    def __iter__(self) -> Iterator[Listener]:
        return iter(list(self._listeners))

    def _emit(self, payload: object, *, clear: bool, lifo: bool) -> None:
        if not self._listeners:
            return
        snapshot = list(self._listeners)
        if clear:
            self._listeners.clear()
        if lifo:
            snapshot.reverse()
        for listener in snapshot:
            _call(listener, payload)

    def __repr__(self) -> str:
        state = "settled" if self._settled else f"{len(self._listeners)} listeners"
        return f"Emitter({state})"
