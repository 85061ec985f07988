"""Lazy singletons for services and stores built out of atoms.

    @define
    def auth():
        return AuthStore(user=atom(None))

    auth().user.set(me)      # created on first call, shared afterwards

Tests swap the implementation before first use:

    auth.override(lambda original: FakeAuth())
    ...
    auth.reset()             # back to the real creator; disposes the fake
"""

from __future__ import annotations

from typing import Callable, Generic, Optional, TypeVar

from atomflux import hooks
from atomflux.errors import UsageError

T = TypeVar("T")

_UNSET = object()


class Define(Generic[T]):
    """A callable that creates its module once and returns it on every call."""

    def __init__(self, creator: Callable[[], T], *, meta: Optional[dict] = None) -> None:
        self._creator = creator
        self._override: Optional[Callable[[Callable[[], T]], T]] = None
        self._instance: object = _UNSET
        self.meta = meta

    @property
    def key(self) -> Optional[str]:
        return (self.meta or {}).get("key")

    def __call__(self) -> T:
        if self._instance is _UNSET:
            if self._override is not None:
                self._instance = self._override(self._creator)
            else:
                self._instance = self._creator()
            hooks.emit_create(hooks.create_info("module", self.meta, self._instance))
        return self._instance  # type: ignore[return-value]

    def override(self, factory: Callable[[Callable[[], T]], T]) -> None:
        """Replace the creator. ``factory`` receives the original creator."""
        if self._instance is not _UNSET:
            raise UsageError("Cannot override after initialization; call override() before first use")
        self._override = factory

    def reset(self) -> None:
        """Drop the override and the instance, disposing the instance if it can be."""
        self._override = None
        instance, self._instance = self._instance, _UNSET
        dispose = getattr(instance, "dispose", None)
        if instance is not _UNSET and callable(dispose):
            dispose()

    invalidate = reset

    def is_overridden(self) -> bool:
        return self._override is not None

    def is_initialized(self) -> bool:
        return self._instance is not _UNSET

    def __repr__(self) -> str:
        name = getattr(self._creator, "__name__", "module")
        state = "initialized" if self.is_initialized() else "lazy"
        return f"Define({name}, {state})"


def define(creator: Callable[[], T], *, meta: Optional[dict] = None) -> Define[T]:
    """Decorator/factory for a lazily created, overridable singleton.

    Usage:
        @define
        def settings():
            return {"theme": atom("dark")}

        settings()["theme"].value  # "dark"
        settings() is settings()   # True
    """
    return Define(creator, meta=meta)
