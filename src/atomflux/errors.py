"""Exception taxonomy.

Computation errors raised by user code are stored in a cell's error
status as-is. The classes here cover what the engine itself raises.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    import asyncio


class AtomError(Exception):
    """Base class for errors raised by atomflux."""


class UsageError(AtomError):
    """The engine was called in a way its contract forbids."""


class CircularDependencyError(UsageError):
    """A derived cell re-entered its own computation."""


class AllAtomsRejectedError(AtomError):
    """Every input of ``any()`` is in the error status."""

    def __init__(self, errors: Sequence[BaseException], message: str = "All atoms rejected") -> None:
        super().__init__(message)
        self.errors = list(errors)


class Suspended(BaseException):
    """Raised inside a selection when a dependency is still pending.

    ``future`` is the pending future to wait on, or ``None`` for a
    suspension that only a dependency change can lift. Derives from
    BaseException so ``except Exception`` in user code lets it through.
    """

    def __init__(self, future: asyncio.Future | None) -> None:
        super().__init__(future)
        self.future = future
