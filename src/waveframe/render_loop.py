"""
Render loop: clock -> analyzer -> compositor -> sink, one frame per tick.

Each iteration runs to completion before yielding to the scheduler.
Frames reach the sink in strictly increasing position order.
"""

import logging
import threading
from typing import Callable, Optional

import numpy as np
from PIL import Image

from waveframe.config import RenderConfig
from waveframe.core.analyzer import SpectralAnalyzer
from waveframe.core.clock import PlaybackClock, Scheduler
from waveframe.core.signal import DecodedSignal
from waveframe.visualizers.compositor import StyleCompositor

logger = logging.getLogger(__name__)

FrameSink = Callable[[Image.Image, float], None]


class RenderLoop:
    """
    Drives frame production for one timeline (screen or encoder).

    Args:
        signal: Signal to render; fixed for the loop's lifetime.
        clock: Position source; the loop runs while it is active.
        compositor: Frame compositor.
        sink: Receives ``(frame, position)`` for every produced frame.
        scheduler: Suspension point between iterations.
        config_source: Returns the config to use for the next frame, so
            style changes apply between frames but never mid-frame.
        analyzer: Frequency analyzer, or None if none exists yet.
        final_render: Render once more at the last known position when
            the clock goes inactive.
    """

    def __init__(
        self,
        signal: DecodedSignal,
        clock: PlaybackClock,
        compositor: StyleCompositor,
        sink: FrameSink,
        scheduler: Scheduler,
        config_source: Callable[[], RenderConfig],
        analyzer: Optional[SpectralAnalyzer] = None,
        final_render: bool = True,
    ):
        self.signal = signal
        self.clock = clock
        self.compositor = compositor
        self.sink = sink
        self.scheduler = scheduler
        self.config_source = config_source
        self.analyzer = analyzer
        self.final_render = final_render

        self.frames_rendered = 0
        self.last_position: Optional[float] = None
        self._cancelled = threading.Event()
        self._buffers = [compositor.new_frame(), compositor.new_frame()]

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop after the current iteration; safe to call repeatedly."""
        self._cancelled.set()

    def _snapshot(self, position: float, config: RenderConfig) -> Optional[np.ndarray]:
        if not config.style.uses_spectrum or self.analyzer is None:
            return None
        return self.analyzer.update(self.signal, position)

    def render_once(self, position: float) -> Image.Image:
        """Render one frame at ``position`` and hand it to the sink."""
        config = self.config_source()
        snapshot = self._snapshot(position, config)

        frame = self._buffers[self.frames_rendered % 2]
        self.compositor.render(frame, self.signal, position, snapshot, config)
        self.sink(frame, position)

        self.frames_rendered += 1
        self.last_position = position
        return frame

    def run(self) -> int:
        """
        Run until the clock goes inactive or the loop is cancelled.

        Returns:
            Number of frames handed to the sink.
        """
        logger.debug("Render loop started")
        while not self.cancelled:
            # One read per iteration: the activity check and the frame share it
            position = self.clock.current_position()
            if not self.clock.is_active_at(position):
                break
            if self.last_position is None or position > self.last_position:
                self.render_once(position)
            self.scheduler.wait()

        if self.final_render and not self.cancelled:
            position = self.clock.current_position()
            if self.last_position is None or position >= self.last_position:
                self.render_once(position)

        logger.debug("Render loop stopped after %d frames", self.frames_rendered)
        return self.frames_rendered
