"""
Playback clocks and frame schedulers.

A clock answers "where is playback now?" and "is it still running?".
The live clock follows real audio playback; the virtual clock measures
elapsed time since an export started and goes inactive once the signal
duration is reached.

A scheduler is the "yield until the next tick" step between frames.
The frame-rate scheduler paces to wall-clock refresh; the fixed-step
scheduler advances a stepped time source by one frame interval, which
makes export positions exact multiples of the frame interval.
"""

import abc
import time
from typing import Callable, Optional, Protocol


class PlaybackClock(abc.ABC):
    """Position source for the render loop."""

    @abc.abstractmethod
    def current_position(self) -> float:
        """Playback position in seconds."""

    @abc.abstractmethod
    def is_active_at(self, position: float) -> bool:
        """True while frames should keep being produced at ``position``."""


class PlaybackEngine(Protocol):
    """What the live clock needs from an audio player."""

    def position(self) -> float: ...

    def is_playing(self) -> bool: ...


class LiveClock(PlaybackClock):
    """Clock backed by real media playback."""

    def __init__(self, engine: PlaybackEngine):
        self.engine = engine

    def current_position(self) -> float:
        return self.engine.position()

    def is_active_at(self, position: float) -> bool:
        return self.engine.is_playing()


class SteppedTime:
    """Time source that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self._now = start

    def __call__(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds

    def set(self, now: float) -> None:
        self._now = now


class VirtualClock(PlaybackClock):
    """
    Elapsed-time clock for exports.

    Position is the time elapsed since ``start()`` according to
    ``time_source``. The clock is active from ``start()`` until the
    elapsed time reaches ``duration`` or the clock is released.
    """

    def __init__(self, duration: float, time_source: Callable[[], float] = time.monotonic):
        self.duration = duration
        self.time_source = time_source
        self._origin: Optional[float] = None
        self._released = False

    def start(self) -> None:
        self._origin = self.time_source()
        self._released = False

    def release(self) -> None:
        self._released = True

    def current_position(self) -> float:
        if self._origin is None:
            return 0.0
        return self.time_source() - self._origin

    def is_active_at(self, position: float) -> bool:
        if self._origin is None or self._released:
            return False
        return position < self.duration


class Scheduler(abc.ABC):
    """Suspension point between render loop iterations."""

    @abc.abstractmethod
    def wait(self) -> None:
        """Block until the next frame may be produced."""


class FrameRateScheduler(Scheduler):
    """Paces iterations to a target refresh rate using the wall clock."""

    def __init__(
        self,
        fps: float,
        sleep: Callable[[float], None] = time.sleep,
        time_source: Callable[[], float] = time.monotonic,
    ):
        self.interval = 1.0 / fps
        self.sleep = sleep
        self.time_source = time_source
        self._deadline: Optional[float] = None

    def wait(self) -> None:
        now = self.time_source()
        if self._deadline is None:
            self._deadline = now
        self._deadline += self.interval
        delay = self._deadline - now
        if delay > 0:
            self.sleep(delay)
        else:
            # Running behind: resynchronise instead of bursting
            self._deadline = now


class FixedStepScheduler(Scheduler):
    """Advances a stepped time source by one frame interval per tick."""

    def __init__(self, time_source: SteppedTime, fps: float):
        self.time_source = time_source
        self.fps = fps
        self.interval = 1.0 / fps
        self._origin = time_source()
        self._steps = 0

    def wait(self) -> None:
        # Computed from the step count so positions do not accumulate drift
        self._steps += 1
        self.time_source.set(self._origin + self._steps / self.fps)
