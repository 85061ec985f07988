"""Versioned cell state shared by mutable and derived atoms.

A CellState holds at most one active status: a resolved value, a pending
future (loading) or an error. With none of them it is idle, which is the
status before the first write and after reset(). Every transition bumps
``version``; asynchronous continuations capture the version when they
start and discard their result if it moved on.

When a fallback is configured, ``value`` never goes empty during loading
or error: it returns the last resolved value, else the fallback.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Generic, Optional, TypeVar, Union

from atomflux import _tracking
from atomflux import deferred
from atomflux.emitter import Emitter
from atomflux.equality import EqualityOption, resolve_equality

T = TypeVar("T")

_UNSET: Any = object()


@dataclass(frozen=True)
class ReadyState(Generic[T]):
    value: T
    status: ClassVar[str] = "ready"


@dataclass(frozen=True)
class LoadingState:
    future: asyncio.Future = field(repr=False)
    status: ClassVar[str] = "loading"


@dataclass(frozen=True)
class ErrorState:
    error: BaseException
    status: ClassVar[str] = "error"


AtomState = Union[ReadyState, LoadingState, ErrorState]


class CellState(Generic[T]):
    """Value / loading / error container with a version counter."""

    __slots__ = (
        "_equals",
        "_fallback",
        "_value",
        "_loading",
        "_error",
        "_future",
        "_version",
        "_last_resolved",
        "_dirty",
        "_emitter",
    )

    def __init__(self, equals: EqualityOption = None, fallback: Any = _UNSET) -> None:
        self._equals = resolve_equality(equals)
        self._fallback = fallback
        self._value: Any = _UNSET
        self._loading = False
        self._error: Optional[BaseException] = None
        self._future: Optional[asyncio.Future] = None
        self._version = 0
        self._last_resolved: Any = _UNSET
        self._dirty = False
        self._emitter: Emitter[None] = Emitter()

    # -- reading -----------------------------------------------------------

    @property
    def value(self) -> Optional[T]:
        if self.stale():
            if self._last_resolved is not _UNSET:
                return self._last_resolved
            return self._fallback
        return None if self._value is _UNSET else self._value

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def has_fallback(self) -> bool:
        return self._fallback is not _UNSET

    @property
    def last_resolved(self) -> Optional[T]:
        return None if self._last_resolved is _UNSET else self._last_resolved

    @property
    def has_resolved(self) -> bool:
        return self._last_resolved is not _UNSET

    @property
    def status(self) -> str:
        if self._loading:
            return "loading"
        if self._error is not None:
            return "error"
        if self._value is not _UNSET:
            return "ready"
        return "idle"

    @property
    def future(self) -> Optional[asyncio.Future]:
        """The pending future while loading, else a settled one for the current status.

        The settled future is created on first request (a running loop is
        required) and reused until the next transition.
        """
        if self._future is None and not self._loading:
            if self._error is not None:
                self._future = deferred.rejected_future(self._error)
            else:
                self._future = deferred.resolved_future(None if self._value is _UNSET else self._value)
        return self._future

    @property
    def version(self) -> int:
        return self._version

    def is_version_stale(self, version: int) -> bool:
        return version != self._version

    def stale(self) -> bool:
        """True when a fallback is configured and the cell is loading or failed."""
        return self.has_fallback and (self._loading or self._error is not None)

    def is_dirty(self) -> bool:
        return self._dirty

    def mark_dirty(self) -> None:
        self._dirty = True

    def is_equal(self, value: Any) -> bool:
        """True when ``value`` equals the currently resolved value."""
        if self._value is _UNSET or self._loading or self._error is not None:
            return False
        return self._equals(value, self._value)

    # -- writing -----------------------------------------------------------

    def set_value(self, value: T, silent: bool = False) -> None:
        if self.is_equal(value):
            return
        self._value = value
        self._loading = False
        self._error = None
        self._future = None
        self._last_resolved = value
        self._version += 1
        if not silent:
            self.notify()

    def set_loading(self, future: asyncio.Future, silent: bool = False) -> None:
        self._value = _UNSET
        self._loading = True
        self._error = None
        self._future = future
        self._version += 1
        if not silent:
            self.notify()

    def set_error(self, error: BaseException, silent: bool = False) -> None:
        if self._error is error and not self._loading:
            return
        self._value = _UNSET
        self._loading = False
        self._error = error
        self._future = None
        self._version += 1
        if not silent:
            self.notify()

    def reset(self) -> None:
        """Back to idle. Clears the last resolved value and the dirty flag."""
        if self.status == "idle" and self._last_resolved is _UNSET and not self._dirty:
            return
        self._value = _UNSET
        self._loading = False
        self._error = None
        self._future = None
        self._last_resolved = _UNSET
        self._dirty = False
        self._version += 1
        self.notify()

    def snapshot(self) -> AtomState:
        """The current status as a tagged union. Idle reads as ready with None."""
        if self._loading:
            return LoadingState(self._future)
        if self._error is not None:
            return ErrorState(self._error)
        return ReadyState(None if self._value is _UNSET else self._value)

    # -- subscription ------------------------------------------------------

    def on(self, listener: Callable[[], None]) -> Callable[[], None]:
        return self._emitter.on(listener)

    def clear_listeners(self) -> None:
        self._emitter.clear()

    def notify(self) -> None:
        _tracking.notify(self._emitter)

    def __repr__(self) -> str:
        return f"CellState({self.status}, version={self._version})"
