"""Notification scheduling and derivation bookkeeping.

Every change notification passes through schedule(). Inside an
@action or `with transaction()` listeners are queued (each listener at
most once, in first-scheduled order) and flushed when the outermost
batch exits; listeners that write during the flush are batched too.
Outside a batch the schedule_notify hook decides, or the listener runs
immediately.

current_derivation holds the chain of derived cells being computed in
this context, so a cell that re-enters its own computation is caught.
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from typing import TYPE_CHECKING, Callable, Iterator

from atomflux import hooks
from atomflux.errors import CircularDependencyError

if TYPE_CHECKING:
    from atomflux.emitter import Emitter

# The derived cells currently computing, innermost last.
current_derivation: contextvars.ContextVar[tuple] = contextvars.ContextVar(
    "current_derivation", default=()
)

# Batch depth counter. When > 0, notifications are deferred.
_batch_depth: int = 0

# Listeners scheduled during a batch, awaiting flush. dict = ordered set.
_pending: dict[Callable[[], None], None] = {}


def begin_batch() -> None:
    """Enter a batching scope. Nested batches are supported."""
    global _batch_depth
    _batch_depth += 1


def end_batch() -> None:
    """Exit a batching scope. When the outermost scope exits, flush pending listeners."""
    global _batch_depth
    _batch_depth -= 1
    if _batch_depth == 0:
        _flush_pending()


def schedule(listener: Callable[[], None]) -> None:
    """Deliver one change notification."""
    if _batch_depth > 0:
        _pending[listener] = None
        return
    strategy = hooks.schedule_notify.current
    if strategy is not None:
        strategy(listener)
    else:
        listener()


def notify(emitter: Emitter) -> None:
    """Schedule every listener of ``emitter`` individually."""
    for listener in emitter:
        schedule(listener)


def _flush_pending() -> None:
    global _batch_depth
    # Stay in batch mode so cascading writes are collected, not run inline.
    _batch_depth += 1
    try:
        while _pending:
            batch = list(_pending)
            _pending.clear()
            for listener in batch:
                listener()
    finally:
        _batch_depth -= 1


def get_pending_count() -> int:
    """Number of listeners waiting for the current batch to end. Useful for testing."""
    return len(_pending)


def check_circular(derivation: object) -> None:
    """Raise if ``derivation`` is read while it is itself computing."""
    if derivation in current_derivation.get():
        raise CircularDependencyError(f"Circular dependency detected while computing {derivation!r}")


@contextmanager
def computing(derivation: object) -> Iterator[None]:
    """Mark ``derivation`` as computing; raise if it is already on the stack."""
    check_circular(derivation)
    token = current_derivation.set(current_derivation.get() + (derivation,))
    try:
        yield
    finally:
        current_derivation.reset(token)
