"""Deferred-value cache: a synchronous view of asyncio futures.

A selection has to decide *now* whether a dependency is ready, failed or
still pending. track() remembers each future's outcome once it settles,
so unwrap() can answer synchronously: return the value, raise the error,
or raise Suspended(future) to abort the computation until it settles.

Entries are keyed weakly by future identity and only ever move
pending -> fulfilled or pending -> rejected.
"""

from __future__ import annotations

import asyncio
import inspect
import weakref
from dataclasses import dataclass
from typing import Any, Generic, Literal, Optional, Sequence, TypeVar

from atomflux.errors import Suspended

T = TypeVar("T")

PENDING = "pending"
FULFILLED = "fulfilled"
REJECTED = "rejected"

Status = Literal["pending", "fulfilled", "rejected"]


@dataclass
class DeferredState(Generic[T]):
    status: Status
    future: asyncio.Future
    value: Optional[T] = None
    error: Optional[BaseException] = None


_cache: weakref.WeakKeyDictionary[asyncio.Future, DeferredState] = weakref.WeakKeyDictionary()

# first input -> {(kind, input ids): combined future}
_combined: weakref.WeakKeyDictionary[asyncio.Future, dict] = weakref.WeakKeyDictionary()


def is_deferred(value: object) -> bool:
    """True for futures, tasks and coroutine objects."""
    return asyncio.isfuture(value) or inspect.iscoroutine(value)


def as_future(value: Any) -> asyncio.Future:
    """Return ``value`` as a future, scheduling coroutines on the running loop."""
    if asyncio.isfuture(value):
        return value
    return asyncio.ensure_future(value)


def outcome(future: asyncio.Future) -> DeferredState:
    """Read the outcome of a done future without raising."""
    if future.cancelled():
        return DeferredState(REJECTED, future, error=asyncio.CancelledError())
    error = future.exception()
    if error is not None:
        return DeferredState(REJECTED, future, error=error)
    return DeferredState(FULFILLED, future, value=future.result())


def _record(future: asyncio.Future) -> None:
    entry = _cache.get(future)
    if entry is None or entry.status != PENDING:
        return
    settled = outcome(future)
    entry.status = settled.status
    entry.value = settled.value
    entry.error = settled.error


def track(future: asyncio.Future) -> DeferredState:
    """Start tracking ``future`` (once) and return its cache entry."""
    entry = _cache.get(future)
    if entry is not None:
        return entry
    if future.done():
        entry = outcome(future)
    else:
        entry = DeferredState(PENDING, future)
        future.add_done_callback(_record)
    _cache[future] = entry
    return entry


def get_state(future: asyncio.Future) -> Optional[DeferredState]:
    """The cache entry for ``future``, without starting to track it."""
    return _cache.get(future)


def is_tracked(future: asyncio.Future) -> bool:
    return future in _cache


def unwrap(value: Any) -> Any:
    """Return a plain value, the result of a settled future, or suspend.

    Raises the stored error for a rejected future and Suspended for a
    pending one.
    """
    if not is_deferred(value):
        return value
    entry = track(as_future(value))
    if entry.status == FULFILLED:
        return entry.value
    if entry.status == REJECTED:
        raise entry.error
    raise Suspended(entry.future)


def is_pending(value: Any) -> bool:
    return is_deferred(value) and track(as_future(value)).status == PENDING


def is_fulfilled(value: Any) -> bool:
    return is_deferred(value) and track(as_future(value)).status == FULFILLED


def is_rejected(value: Any) -> bool:
    return is_deferred(value) and track(as_future(value)).status == REJECTED


def resolved_future(value: T) -> asyncio.Future:
    """A future already resolved with ``value`` and known as fulfilled to the cache."""
    future = asyncio.get_running_loop().create_future()
    future.set_result(value)
    _cache[future] = DeferredState(FULFILLED, future, value=value)
    return future


def rejected_future(error: BaseException) -> asyncio.Future:
    """A future already failed with ``error`` and known as rejected to the cache."""
    future = asyncio.get_running_loop().create_future()
    reject(future, error)
    if not future.cancelled():
        # mark retrieved so asyncio does not log "exception was never retrieved"
        future.exception()
    _cache[future] = DeferredState(REJECTED, future, error=error)
    return future


def reject(future: asyncio.Future, error: BaseException) -> None:
    """Fail ``future`` with ``error``; CancelledError cancels it instead."""
    if future.done():
        return
    if isinstance(error, asyncio.CancelledError):
        future.cancel()
    else:
        future.set_exception(error)


def transfer(source: asyncio.Future, target: asyncio.Future) -> None:
    """Settle ``target`` the way ``source`` settles."""

    def _copy(done: asyncio.Future) -> None:
        if target.done():
            return
        if done.cancelled():
            target.cancel()
        elif done.exception() is not None:
            target.set_exception(done.exception())
        else:
            target.set_result(done.result())

    source.add_done_callback(_copy)


def combine(kind: Literal["all", "race"], futures: Sequence[asyncio.Future]) -> asyncio.Future:
    """One future standing for several pending ones.

    "all" settles once every input settled or any input failed; "race"
    settles as soon as any input settles. The combined future only signals
    *that* something settled; its result is None. While outstanding, the
    same combination returns the same future.
    """
    if len(futures) == 1:
        return futures[0]

    first = futures[0]
    key = (kind, tuple(id(f) for f in futures))
    by_key = _combined.setdefault(first, {})
    cached = by_key.get(key)
    if cached is not None and not cached.done():
        return cached

    combined = first.get_loop().create_future()
    remaining = len(futures)

    def _on_input_done(done: asyncio.Future) -> None:
        nonlocal remaining
        remaining -= 1
        if combined.done():
            return
        failed = done.cancelled() or done.exception() is not None
        if kind == "race" or failed or remaining == 0:
            combined.set_result(None)

    for future in futures:
        future.add_done_callback(_on_input_done)
    by_key[key] = combined
    return combined
