"""
Session: one loaded signal with its live preview and export pipeline.

The session explicitly owns the audio engine handle; nothing about
playback is process-wide. Loading a new file tears down whatever was
running over the old signal first.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np
from PIL import Image

from waveframe.config import RenderConfig
from waveframe.core.analyzer import SpectralAnalyzer
from waveframe.core.clock import FrameRateScheduler, LiveClock, Scheduler
from waveframe.core.signal import AudioDecoder, DecodedSignal, SignalStore
from waveframe.errors import AnalyzerUnavailable, WaveframeError
from waveframe.export import ExportJob, ExportPipeline
from waveframe.render_loop import FrameSink, RenderLoop
from waveframe.visualizers.colors import PRESETS
from waveframe.visualizers.compositor import StyleCompositor
from waveframe.visualizers.styles import RenderStyle

logger = logging.getLogger(__name__)


class Session:
    """
    Owns the engine handle, signal store, live analyzer, live render
    loop and export pipeline.

    Args:
        engine: Audio playback handle (``AudioEngine`` or compatible).
            May be None for headless use; preview methods then raise.
        decoder: Audio decoder.
        compositor: Compositor for the live preview.
        export_pipeline: Export pipeline; a default ffmpeg-backed one is
            created when omitted.
        config: Initial render configuration.
    """

    def __init__(
        self,
        engine=None,
        decoder: Optional[AudioDecoder] = None,
        compositor: Optional[StyleCompositor] = None,
        export_pipeline: Optional[ExportPipeline] = None,
        config: Optional[RenderConfig] = None,
    ):
        self.engine = engine
        self.decoder = decoder or AudioDecoder()
        self.compositor = compositor or StyleCompositor()
        self.store = SignalStore(config)
        self.analyzer = SpectralAnalyzer()
        self.export_pipeline = export_pipeline or ExportPipeline(
            compositor=StyleCompositor(self.compositor.width, self.compositor.height)
        )
        self.source_path: Optional[Path] = None

        self._live_loop: Optional[RenderLoop] = None
        self._dirty = True
        self._shown_position: Optional[float] = None

    @property
    def signal(self) -> Optional[DecodedSignal]:
        return self.store.signal

    @property
    def config(self) -> RenderConfig:
        return self.store.config

    def _require_signal(self) -> DecodedSignal:
        signal = self.store.signal
        if signal is None:
            raise WaveframeError("No audio loaded")
        return signal

    def _require_engine(self):
        if self.engine is None:
            raise WaveframeError("This session has no audio engine")
        return self.engine

    # Loading

    def _teardown_signal(self) -> None:
        self.export_pipeline.cancel()
        self._stop_live_loop()
        if self.engine is not None:
            self.engine.stop()
        self.store.clear()
        self.analyzer.reset()
        self._shown_position = None

    def _install(self, signal: DecodedSignal) -> DecodedSignal:
        self.store.replace(signal)
        if self.engine is not None:
            self.engine.load(signal)
        self._dirty = True
        return signal

    def load(self, data: bytes) -> DecodedSignal:
        """Replace the current signal with decoded ``data``."""
        self._teardown_signal()
        self.source_path = None
        return self._install(self.decoder.decode(data))

    def load_file(self, audio_path: Union[str, Path]) -> DecodedSignal:
        """Replace the current signal with the decoded file."""
        self._teardown_signal()
        signal = self.decoder.decode_file(audio_path)
        self.source_path = Path(audio_path)
        logger.info("Loaded %s", self.source_path.name)
        return self._install(signal)

    # Visual state

    def set_config(self, **changes) -> RenderConfig:
        """Change style, preset, or transparency; applies from the next frame."""
        config = self.store.update_config(**changes)
        self._dirty = True
        return config

    def set_style(self, style: Union[str, RenderStyle]) -> RenderConfig:
        return self.set_config(style=RenderStyle.parse(style))

    def next_preset(self) -> RenderConfig:
        index = PRESETS.index(self.config.color_preset) if self.config.color_preset in PRESETS else -1
        return self.set_config(color_preset=PRESETS[(index + 1) % len(PRESETS)])

    def toggle_transparent(self) -> RenderConfig:
        return self.set_config(transparent_background=not self.config.transparent_background)

    def render_at(self, position: float, refresh: bool = True) -> Image.Image:
        """
        Render a single frame of the current signal at ``position``.

        Args:
            position: Playback position in seconds.
            refresh: Analyze the signal at ``position``. When False the
                last published snapshot is reused, so a settings change
                while paused does not move the bars.
        """
        signal = self._require_signal()
        config = self.config
        snapshot = None
        if config.style.uses_spectrum:
            snapshot = self._spectrum(signal, position, refresh)
        return self.compositor.render_frame(signal, position, snapshot, config)

    def _spectrum(self, signal: DecodedSignal, position: float, refresh: bool) -> np.ndarray:
        if not refresh:
            try:
                return self.analyzer.snapshot()
            except AnalyzerUnavailable:
                logger.debug("No published snapshot yet, analyzing at %.2fs", position)
        return self.analyzer.update(signal, position)

    # Live preview

    def play(self) -> None:
        self._require_engine().play()

    def pause(self) -> None:
        # The live loop sees the clock go inactive and draws the paused frame
        self._require_engine().pause()

    def toggle_playback(self) -> None:
        engine = self._require_engine()
        if engine.is_playing():
            self.pause()
        else:
            self.play()

    def seek(self, delta: float) -> None:
        """Seek relative to the current position."""
        engine = self._require_engine()
        engine.seek(engine.position() + delta)
        # Restart so positions stay increasing within one loop
        self._stop_live_loop()
        self._dirty = True

    def live_loop(self, sink: FrameSink, scheduler: Optional[Scheduler] = None) -> RenderLoop:
        """Build the render loop for the live preview."""
        signal = self._require_signal()
        loop = RenderLoop(
            signal=signal,
            clock=LiveClock(self._require_engine()),
            compositor=self.compositor,
            sink=sink,
            scheduler=scheduler or FrameRateScheduler(60),
            config_source=lambda: self.store.config,
            analyzer=self.analyzer,
        )
        self._live_loop = loop
        return loop

    def _stop_live_loop(self) -> None:
        if self._live_loop is not None:
            self._live_loop.cancel()
            self._live_loop = None

    def run_preview(self, display, scheduler: Optional[Scheduler] = None) -> None:
        """
        Drive ``display`` until it is closed.

        While audio plays a live loop renders each refresh; while paused
        the frame is only redrawn after a seek or setting change.
        """
        engine = self._require_engine()
        self._require_signal()
        scheduler = scheduler or FrameRateScheduler(60)

        display.on_toggle = self.toggle_playback
        display.on_seek = self.seek
        display.on_style = self.set_style
        display.on_next_preset = self.next_preset
        display.on_toggle_transparent = self.toggle_transparent
        display.on_quit = self._stop_live_loop

        engine.play()
        while not display.closed:
            if engine.is_playing():
                loop = self.live_loop(display, scheduler)
                loop.run()
                self._shown_position = loop.last_position
                self._dirty = False
                continue
            if self._dirty:
                self._dirty = False
                position = engine.position()
                refresh = position != self._shown_position
                display.show(self.render_at(position, refresh=refresh), position)
                self._shown_position = position
            else:
                display.poll()
            scheduler.wait()
        self._stop_live_loop()
        engine.pause()

    # Export

    def export(self) -> ExportJob:
        """Export the current signal with the current config; blocks."""
        return self.export_pipeline.export(self._require_signal(), self.config)

    def export_async(self) -> ExportJob:
        return self.export_pipeline.start_async(self._require_signal(), self.config)

    def close(self) -> None:
        """Tear down everything the session owns."""
        self._teardown_signal()
        if self.engine is not None:
            self.engine.close()
        logger.debug("Session closed")
