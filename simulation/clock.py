"""
Simulation Clock

Cancellable delayed callbacks on top of a SimPy environment. Every timer of
a simulation instance runs on the same environment, so callbacks are
serialized and never mutate a device concurrently.
"""

import itertools
from typing import Callable, List, Optional

import simpy
import simpy.rt
from simpy.events import Initialize
from loguru import logger


class TimerHandle:
    """A pending delayed callback that can be cancelled exactly once"""

    _ids = itertools.count(1)

    def __init__(self, env: simpy.Environment, delay: float, callback: Callable[[], None], name: str = ""):
        if delay < 0:
            raise ValueError(f"Timer delay must be non-negative, got {delay}")
        self.id = next(self._ids)
        self.name = name or f"timer-{self.id}"
        self.due_at = env.now + delay
        self.cancelled = False
        self.fired = False
        self._callback = callback
        self._process = env.process(self._run(env, delay))

    def _run(self, env: simpy.Environment, delay: float):
        try:
            yield env.timeout(delay)
        except simpy.Interrupt:
            return
        if self.cancelled:
            return
        self.fired = True
        self._callback()

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> bool:
        """Cancel the callback; returns False if it already fired or was cancelled"""
        if not self.active:
            return False
        self.cancelled = True
        # a process that has not started yet just skips its callback
        if self._process.is_alive and not isinstance(self._process.target, Initialize):
            self._process.interrupt("cancelled")
        return True

    def __repr__(self):
        state = "fired" if self.fired else "cancelled" if self.cancelled else "pending"
        return f"TimerHandle({self.name!r}, due_at={self.due_at:.3f}, {state})"


class SimulationClock:
    """
    Virtual (or real-time) clock owning the SimPy environment

    In virtual mode nothing happens until ``advance`` or ``run_until_idle``
    is called, which makes switching sequences fully reproducible.
    """

    def __init__(self, realtime_factor: Optional[float] = None):
        if realtime_factor:
            self.env = simpy.rt.RealtimeEnvironment(factor=realtime_factor, strict=False)
        else:
            self.env = simpy.Environment()
        self.realtime = bool(realtime_factor)
        self._handles: List[TimerHandle] = []

    @property
    def now(self) -> float:
        return self.env.now

    def call_later(self, delay: float, callback: Callable[[], None], name: str = "") -> TimerHandle:
        handle = TimerHandle(self.env, delay, callback, name)
        self._handles.append(handle)
        logger.trace(f"Scheduled {handle.name} at t={handle.due_at:.3f}s")
        return handle

    def advance(self, seconds: float):
        """Process every callback due within the next ``seconds``"""
        if seconds <= 0:
            return
        self.env.run(until=self.env.now + seconds)
        self._handles = self.pending_timers()

    def pending_timers(self) -> List[TimerHandle]:
        return [h for h in self._handles if h.active]

    def run_until_idle(self, limit_s: Optional[float] = None):
        """
        Run until no live callbacks remain (or until ``limit_s`` more seconds passed)

        Stops at the last callback that actually fires; stale events of
        cancelled timers left in the queue do not move the clock.
        """
        if limit_s is not None:
            self.advance(limit_s)
            return
        while True:
            self._handles = self.pending_timers()
            if not self._handles:
                return
            self.env.step()
