"""Batched writes.

Inside an @action or `with transaction()` block, atoms still change
immediately, but their listeners are queued and run once when the
outermost block exits. A listener subscribed to several atoms that all
change in the block runs a single time and sees the final values.
"""

from __future__ import annotations

import functools
from contextlib import contextmanager
from typing import Callable, Iterator, ParamSpec, TypeVar

from atomflux._tracking import begin_batch, end_batch

P = ParamSpec("P")
R = TypeVar("R")


def action(fn: Callable[P, R]) -> Callable[P, R]:
    """Decorator: defer change notifications until fn returns.

    Usage:
        first = atom("John")
        last = atom("Doe")

        @action
        def rename(a, b):
            first.set(a)
            last.set(b)
            # a full-name derived recomputes once, with both names
    """

    @functools.wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        begin_batch()
        try:
            return fn(*args, **kwargs)
        finally:
            end_batch()

    return wrapper


@contextmanager
def transaction() -> Iterator[None]:
    """Context manager form of @action.

    Usage:
        with transaction():
            counter.set(1)
            counter.set(2)
        # listeners notified once here, seeing 2
    """
    begin_batch()
    try:
        yield
    finally:
        end_batch()
