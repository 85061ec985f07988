"""Process-wide, replaceable strategies consumed by the engine.

Four hooks exist:

- ``on_create(info)``: told about every cell, event and pool constructed.
- ``on_error(info)``: told when a derived cell fails or an effect raises.
- ``schedule_notify(listener)``: decides when a change listener runs.
- ``timer(delay, callback)``: schedules pool eviction timers.

Every hook defaults to ``None``, which means "built-in behavior". Set
them once at startup with ``configure()`` and restore with
``reset_hooks()``; tests can scope a value with ``hook.use(value)``:

    atomflux.configure(on_create=devtools.register)

    with hooks.schedule_notify.use(queue.append):
        counter.set(1)  # listener queued instead of called
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterator, Literal, Optional, Protocol, TypeVar

from atomflux.errors import UsageError

T = TypeVar("T")

CellType = Literal["mutable", "derived", "event", "pool", "effect", "module"]


@dataclass(frozen=True)
class CreateInfo:
    type: CellType
    key: Optional[str]
    meta: Optional[dict]
    instance: Any


@dataclass(frozen=True)
class ErrorInfo:
    source: CreateInfo
    error: BaseException


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Hook(Generic[T]):
    """A named slot holding the current strategy (or None)."""

    __slots__ = ("name", "_initial", "current")

    def __init__(self, name: str, initial: T | None = None) -> None:
        self.name = name
        self._initial = initial
        self.current: T | None = initial

    def override(self, reducer: Callable[[T | None], T | None]) -> None:
        """Replace the strategy with ``reducer(previous)``, for chaining handlers."""
        self.current = reducer(self.current)

    def reset(self) -> None:
        self.current = self._initial

    @contextmanager
    def use(self, value: T | None) -> Iterator[None]:
        """Install ``value`` for the duration of the block."""
        previous = self.current
        self.current = value
        try:
            yield
        finally:
            self.current = previous

    def __repr__(self) -> str:
        return f"Hook({self.name}, {self.current!r})"


on_create: Hook[Callable[[CreateInfo], None]] = Hook("on_create")
on_error: Hook[Callable[[ErrorInfo], None]] = Hook("on_error")
schedule_notify: Hook[Callable[[Callable[[], None]], None]] = Hook("schedule_notify")
timer: Hook[Callable[[float, Callable[[], None]], TimerHandle]] = Hook("timer")

_HOOKS: dict[str, Hook] = {h.name: h for h in (on_create, on_error, schedule_notify, timer)}


def configure(**strategies: Any) -> None:
    """Set several hooks at once, e.g. ``configure(timer=clock.call_later)``."""
    unknown = set(strategies) - set(_HOOKS)
    if unknown:
        raise TypeError(f"Unknown hook(s): {', '.join(sorted(unknown))}")
    for name, strategy in strategies.items():
        _HOOKS[name].current = strategy


def reset_hooks() -> None:
    """Restore every hook to its default."""
    for h in _HOOKS.values():
        h.reset()


def create_info(type: CellType, meta: Optional[dict], instance: Any) -> CreateInfo:
    return CreateInfo(type=type, key=(meta or {}).get("key"), meta=meta, instance=instance)


def emit_create(info: CreateInfo) -> None:
    handler = on_create.current
    if handler is not None:
        handler(info)


def report_error(source: CreateInfo, error: BaseException) -> None:
    handler = on_error.current
    if handler is not None:
        handler(ErrorInfo(source=source, error=error))


def call_later(delay: float, callback: Callable[[], None]) -> TimerHandle:
    """Run ``callback`` after ``delay`` seconds using the configured timer.

    Without a timer hook the running event loop schedules it, so the
    callback runs on the loop's thread like every other state change.
    """
    strategy = timer.current
    if strategy is not None:
        return strategy(delay, callback)
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        raise UsageError(
            "No event loop is running and no timer hook is configured; "
            "call configure(timer=...) to schedule timers outside asyncio"
        ) from None
    return loop.call_later(delay, callback)
