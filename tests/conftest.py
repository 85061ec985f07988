"""Shared fixtures: hook isolation, virtual timers, event-loop draining."""

import asyncio

import pytest

from atomflux import hooks


@pytest.fixture(autouse=True)
def _reset_hooks():
    hooks.reset_hooks()
    yield
    hooks.reset_hooks()


class _Handle:
    def __init__(self, timers, due, callback):
        self._timers = timers
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeTimers:
    """Virtual clock installed as the timer hook. Time is in milliseconds."""

    def __init__(self):
        self.now = 0.0
        self._handles = []

    def __call__(self, delay, callback):
        handle = _Handle(self, self.now + delay * 1000, callback)
        self._handles.append(handle)
        return handle

    @property
    def active(self):
        return [h for h in self._handles if not h.cancelled]

    def advance(self, ms):
        target = self.now + ms
        while True:
            due = [h for h in self.active if h.due <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.due)
            self._handles.remove(handle)
            self.now = handle.due
            handle.callback()
        self.now = target


@pytest.fixture
def timers():
    fake = FakeTimers()
    with hooks.timer.use(fake):
        yield fake


@pytest.fixture
def drain():
    """Let pending future callbacks run."""

    async def _drain(turns=5):
        for _ in range(turns):
            await asyncio.sleep(0)

    return _drain
