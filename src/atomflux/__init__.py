"""atomflux: reactive atoms with asynchronous values for Python."""

from importlib.metadata import version as _version

__version__ = _version("atomflux")

from atomflux import hooks
from atomflux._tracking import get_pending_count
from atomflux.action import action, transaction
from atomflux.atom import Atom, AtomContext, Deferred, LazyInit, Literal, atom
from atomflux.cancel import CancelToken
from atomflux.define import Define, define
from atomflux.derived import Derived, derived
from atomflux.effect import Effect, EffectContext, effect
from atomflux.emitter import Emitter
from atomflux.errors import (
    AllAtomsRejectedError,
    AtomError,
    CircularDependencyError,
    Suspended,
    UsageError,
)
from atomflux.event import Event, event
from atomflux.hooks import configure, reset_hooks
from atomflux.pool import Pool, PoolEvent, pool
from atomflux.select import SelectContext, SelectResult, select
from atomflux.state import ErrorState, LoadingState, ReadyState

__all__ = [
    "Atom",
    "atom",
    "Literal",
    "Deferred",
    "LazyInit",
    "AtomContext",
    "CancelToken",
    "Define",
    "define",
    "Derived",
    "derived",
    "Effect",
    "EffectContext",
    "effect",
    "Event",
    "event",
    "Pool",
    "PoolEvent",
    "pool",
    "select",
    "SelectContext",
    "SelectResult",
    "ReadyState",
    "LoadingState",
    "ErrorState",
    "Emitter",
    "action",
    "transaction",
    "get_pending_count",
    "hooks",
    "configure",
    "reset_hooks",
    "AtomError",
    "UsageError",
    "CircularDependencyError",
    "AllAtomsRejectedError",
    "Suspended",
]
