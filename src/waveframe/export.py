"""
Headless export: drive the render loop against a virtual clock and feed
frames plus audio into an encoder.

Job states::

    Idle -> Recording -> Finalizing -> Complete
                                    -> Failed

A job that cannot open its encoder goes straight from Idle to Failed.
Cancelling a Recording job tears everything down and resets it to Idle
without ever reaching Complete.
"""

import enum
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np
from PIL import Image

from waveframe.config import FRAME_RATE, RenderConfig
from waveframe.core.analyzer import SpectralAnalyzer
from waveframe.core.clock import (
    FixedStepScheduler,
    FrameRateScheduler,
    SteppedTime,
    VirtualClock,
)
from waveframe.core.signal import DecodedSignal
from waveframe.errors import EncodeError, InvalidExportState
from waveframe.io.encoder import Artifact, EncoderSettings, EncoderSink, FFmpegEncoder
from waveframe.io.playback import AudioStream
from waveframe.render_loop import RenderLoop
from waveframe.visualizers.compositor import StyleCompositor

logger = logging.getLogger(__name__)


class ExportStatus(enum.Enum):
    IDLE = "idle"
    RECORDING = "recording"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(eq=False)
class ExportJob:
    """
    State of one export run.

    ``status`` and ``progress`` are safe to read from other threads for
    progress reporting; everything else belongs to the pipeline.
    """

    config: RenderConfig
    duration: float
    status: ExportStatus = ExportStatus.IDLE
    progress: float = 0.0
    artifact: Optional[Artifact] = None
    error: Optional[Exception] = None
    cancelled: bool = False
    frames_rendered: int = 0
    history: list[ExportStatus] = field(default_factory=lambda: [ExportStatus.IDLE])
    _done: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def active(self) -> bool:
        return self.status in (ExportStatus.RECORDING, ExportStatus.FINALIZING)

    @property
    def finished(self) -> bool:
        return self._done.is_set()

    def _transition(self, status: ExportStatus) -> None:
        logger.debug("Export job %s -> %s", self.status.value, status.value)
        self.status = status
        self.history.append(status)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the job completes, fails, or is cancelled."""
        return self._done.wait(timeout)

    def raise_for_status(self) -> None:
        """Re-raise the stored failure, if any."""
        if self.status == ExportStatus.FAILED and self.error is not None:
            raise self.error


ProgressCallback = Callable[[float], None]


class ExportPipeline:
    """
    Runs at most one export job at a time.

    Args:
        encoder_factory: Creates the encoder sink for each job.
        compositor: Frame compositor shared with nothing else while
            exporting.
        fps: Export frame rate.
        realtime: Pace virtual time with the wall clock instead of
            stepping it by exactly one frame interval per frame.
        progress_callback: Called with every progress fraction.
    """

    def __init__(
        self,
        encoder_factory: Callable[[], EncoderSink] = FFmpegEncoder,
        compositor: Optional[StyleCompositor] = None,
        fps: int = FRAME_RATE,
        realtime: bool = False,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.encoder_factory = encoder_factory
        self.compositor = compositor or StyleCompositor()
        self.fps = fps
        self.realtime = realtime
        self.progress_callback = progress_callback

        self.job: Optional[ExportJob] = None
        self._lock = threading.Lock()
        self._encoder: Optional[EncoderSink] = None
        self._stream: Optional[AudioStream] = None
        self._clock: Optional[VirtualClock] = None
        self._loop: Optional[RenderLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False

    @property
    def busy(self) -> bool:
        job = self.job
        return job is not None and job.active

    def _report(self, job: ExportJob, fraction: float) -> None:
        job.progress = fraction
        if self.progress_callback:
            self.progress_callback(fraction)

    def start(self, signal: Optional[DecodedSignal], config: RenderConfig) -> ExportJob:
        """
        Move a new job from Idle to Recording.

        Returns the job; if the encoder cannot be opened the returned job
        is already Failed with the EncodeError stored on it.

        Raises:
            InvalidExportState: Another job is active or no signal is loaded.
        """
        with self._lock:
            if self.busy:
                raise InvalidExportState("An export is already in progress")
            if signal is None:
                raise InvalidExportState("No audio loaded")

            job = ExportJob(config=config, duration=signal.duration)
            self.job = job

            encoder = self.encoder_factory()
            try:
                if not encoder.is_idle:
                    raise EncodeError("Encoder sink is busy", reason="failed")
                encoder.start(EncoderSettings(
                    width=self.compositor.width,
                    height=self.compositor.height,
                    fps=self.fps,
                    sample_rate=signal.sample_rate,
                    channels=signal.n_channels,
                    transparent=config.transparent_background,
                ))
            except EncodeError as exc:
                logger.error("Export could not start: %s", exc)
                job.error = exc
                job._transition(ExportStatus.FAILED)
                job._done.set()
                return job

            if self.realtime:
                time_source = time.monotonic
                scheduler = FrameRateScheduler(self.fps)
            else:
                time_source = SteppedTime()
                scheduler = FixedStepScheduler(time_source, self.fps)

            self._encoder = encoder
            self._stream = AudioStream(signal, encoder.push_audio)
            self._clock = VirtualClock(signal.duration, time_source)
            self._loop = RenderLoop(
                signal=signal,
                clock=self._clock,
                compositor=self.compositor,
                sink=self._on_frame,
                scheduler=scheduler,
                config_source=lambda: config,
                analyzer=SpectralAnalyzer(),
                final_render=False,
            )

            self._stream.start()
            self._clock.start()
            job._transition(ExportStatus.RECORDING)
            logger.info(
                "Export started: %.2fs, style=%s, transparent=%s",
                signal.duration, config.style.value, config.transparent_background,
            )
            return job

    def _on_frame(self, frame: Image.Image, position: float) -> None:
        job = self.job
        self._stream.advance_to(position)
        self._encoder.push_frame(np.asarray(frame))
        job.frames_rendered += 1
        self._report(job, position / job.duration)

    def run(self) -> ExportJob:
        """Drive a Recording job through Finalizing to Complete or Failed."""
        with self._lock:
            job = self.job
            if job is None or job.status != ExportStatus.RECORDING or self._running:
                raise InvalidExportState("No recording export to run")
            self._running = True
        return self._drive(job)

    def _drive(self, job: ExportJob) -> ExportJob:
        try:
            try:
                self._loop.run()
            except EncodeError as exc:
                self._fail(job, exc)
                return job
            except Exception as exc:
                self._fail(job, exc)
                raise

            # Past this point the job can no longer be cancelled
            with self._lock:
                if job.cancelled:
                    self._discard(job)
                    return job
                self._stream.stop(flush=True)
                self._clock.release()
                job._transition(ExportStatus.FINALIZING)

            self._finalize(job)
            return job
        finally:
            self._running = False

    def _finalize(self, job: ExportJob) -> None:
        try:
            self._encoder.stop()
            artifact = self._encoder.finalize()
        except EncodeError as exc:
            self._fail(job, exc)
            return

        if len(artifact) == 0:
            self._fail(job, EncodeError("Encoder produced no output", reason="empty"))
            return

        job.artifact = artifact
        self._report(job, 1.0)
        job._transition(ExportStatus.COMPLETE)
        logger.info("Export complete: %d frames, %d bytes", job.frames_rendered, len(artifact))
        self._release()
        job._done.set()

    def _fail(self, job: ExportJob, exc: Exception) -> None:
        logger.error("Export failed: %s", exc)
        self._teardown()
        job.error = exc
        job.artifact = None
        job._transition(ExportStatus.FAILED)
        job._done.set()

    def _teardown(self) -> None:
        if self._loop is not None:
            self._loop.cancel()
        if self._stream is not None:
            self._stream.stop(flush=False)
        if self._clock is not None:
            self._clock.release()
        if self._encoder is not None:
            self._encoder.abort()
        self._release()

    def _release(self) -> None:
        self._encoder = None
        self._stream = None
        self._clock = None
        self._loop = None

    def _discard(self, job: ExportJob) -> None:
        self._teardown()
        job.artifact = None
        job.progress = 0.0
        job._transition(ExportStatus.IDLE)
        if self.job is job:
            self.job = None
        job._done.set()
        logger.info("Export cancelled")

    def export(self, signal: Optional[DecodedSignal], config: RenderConfig) -> ExportJob:
        """Run a complete export and return the finished job."""
        job = self.start(signal, config)
        if job.status == ExportStatus.RECORDING:
            self.run()
        return job

    def start_async(self, signal: Optional[DecodedSignal], config: RenderConfig) -> ExportJob:
        """Start an export on a background thread; use ``job.wait()`` to await it."""
        job = self.start(signal, config)
        with self._lock:
            if job.status != ExportStatus.RECORDING:
                return job
            self._running = True
            self._thread = threading.Thread(
                target=self._drive, args=(job,), name="waveframe-export", daemon=True
            )
            self._thread.start()
        return job

    def cancel(self) -> None:
        """
        Cancel the Recording job, if any.

        No-op for finished, idle, or already-cancelled jobs. A job being
        finalized is left to finish.
        """
        with self._lock:
            job = self.job
            if job is None or job.cancelled or job.status != ExportStatus.RECORDING:
                return
            job.cancelled = True
            if self._loop is not None:
                self._loop.cancel()
            if not self._running:
                self._discard(job)
                return
            thread = self._thread

        # The running loop finishes its current frame, then discards the job
        if thread is not None and thread is not threading.current_thread():
            thread.join()
