"""Cooperative cancellation token handed to lazy initializers and pool factories."""

from __future__ import annotations

import asyncio
from typing import Callable

from atomflux.emitter import Emitter


class CancelToken:
    """Flag that an owner flips when the work it started is no longer wanted.

    The engine never interrupts running work; producers poll ``cancelled``
    or call ``raise_if_cancelled()`` at their own checkpoints, or react via
    ``on_cancel``.
    """

    __slots__ = ("_reason", "_cancelled", "_listeners")

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: object = None
        self._listeners: Emitter = Emitter()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> object:
        return self._reason

    def cancel(self, reason: object = None) -> None:
        """Flip the token. Repeated calls are no-ops."""
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        self._listeners.settle(reason)

    def on_cancel(self, listener: Callable[[object], None]) -> Callable[[], None]:
        """Call ``listener(reason)`` on cancel, or right away if already cancelled."""
        return self._listeners.on(listener)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise asyncio.CancelledError(self._reason)

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self._cancelled})"
