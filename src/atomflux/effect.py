"""Effects: side effects that re-run when the cells they read change.

Unlike Derived (lazy, only evaluates on read), an effect runs right away
and again after every change of a cell it read last time. It is built on
a Derived whose selector is the effect body, so dependency tracking and
suspension behave the same way.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from atomflux import hooks
from atomflux.action import transaction
from atomflux.derived import Derived
from atomflux.emitter import Emitter
from atomflux.select import SelectContext

logger = logging.getLogger("atomflux.effect")


class EffectContext:
    """SelectContext plus cleanup and error registration for one run."""

    __slots__ = ("_ctx", "_cleanups", "_errors")

    def __init__(self, ctx: SelectContext, cleanups: Emitter, errors: Emitter) -> None:
        self._ctx = ctx
        self._cleanups = cleanups
        self._errors = errors

    def on_cleanup(self, cleanup: Callable[[], None]) -> Callable[[], None]:
        """Run ``cleanup`` before the next run and on dispose."""
        return self._cleanups.on(cleanup)

    def on_error(self, handler: Callable[[Exception], None]) -> Callable[[], None]:
        """Handle an exception raised later in this run."""
        return self._errors.on(handler)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._ctx, name)


class Effect:
    """A reactive side effect. Runs eagerly; call dispose() to stop it."""

    def __init__(
        self,
        fn: Callable[[EffectContext], None],
        *,
        on_error: Optional[Callable[[Exception], None]] = None,
        meta: Optional[dict] = None,
    ) -> None:
        self._fn = fn
        self._on_error = on_error
        self._disposed = False
        self._cleanups: Emitter = Emitter()
        self._errors: Emitter = Emitter()
        self.meta = meta
        # the backing derived is an implementation detail; report only the effect
        with hooks.on_create.use(None):
            self._derived: Derived[None] = Derived(self._run, meta=meta)
        self._info = hooks.create_info("effect", meta, self)
        hooks.emit_create(self._info)

    def _run(self, ctx: SelectContext) -> None:
        self._errors.clear()
        self._cleanups.emit_and_clear()
        if self._disposed:
            return

        try:
            with transaction():
                self._fn(EffectContext(ctx, self._cleanups, self._errors))
        except Exception as e:
            self._handle_error(e)

    def _handle_error(self, error: Exception) -> None:
        if len(self._errors):
            self._errors.emit_and_clear(error)
        elif self._on_error is not None:
            self._on_error(error)
        else:
            logger.exception("Effect %r failed", self, exc_info=error)
            hooks.report_error(self._info, error)

    def start(self) -> None:
        self._derived.value

    def dispose(self) -> None:
        """Stop the effect and run its pending cleanups."""
        if self._disposed:
            return
        self._disposed = True
        self._errors.clear()
        self._cleanups.emit_and_clear()
        self._derived.dispose()

    def __repr__(self) -> str:
        name = getattr(self._fn, "__name__", "effect")
        return f"Effect({name}, {'disposed' if self._disposed else 'active'})"


def effect(
    fn: Callable[[EffectContext], None],
    *,
    on_error: Optional[Callable[[Exception], None]] = None,
    meta: Optional[dict] = None,
) -> Effect:
    """Run fn immediately, then again whenever a cell it read changes.

    Returns the Effect (call .dispose() to stop).

    Usage:
        counter = atom(0)
        log = []

        e = effect(lambda ctx: log.append(ctx.read(counter)))
        # log == [0]

        counter.set(1)
        # log == [0, 1]

        e.dispose()
        counter.set(2)
        # log == [0, 1]
    """
    e = Effect(fn, on_error=on_error, meta=meta)
    e.start()  # initial run establishes dependencies
    return e
