"""
Audio playback.

``AudioEngine`` plays a signal through pygame.mixer for the live
preview and reports position for the live clock. ``AudioStream`` plays
a signal into an encoder instead, releasing audio in blocks that keep
pace with the export clock.
"""

import logging
import time
from typing import Callable, Optional

import librosa
import numpy as np
import pygame

from waveframe.core.signal import DecodedSignal

logger = logging.getLogger(__name__)


class AudioEngine:
    """
    Explicitly owned live playback handle.

    The mixer has no position query, so position is tracked from the
    wall clock since the current segment started. Seeking and resuming
    start a new segment from the requested offset.
    """

    def __init__(self, buffer: int = 1024, time_source: Callable[[], float] = time.monotonic):
        self.buffer = buffer
        self.time_source = time_source

        self.signal: Optional[DecodedSignal] = None
        self._pcm: Optional[np.ndarray] = None
        self._mixer_rate = 0
        self._sound = None
        self._channel = None
        self._playing = False
        self._offset = 0.0
        self._segment_start = 0.0

    def load(self, signal: DecodedSignal) -> None:
        """Prepare a signal for playback, replacing any previous one."""
        self.stop()
        if pygame.mixer.get_init():
            pygame.mixer.quit()
        channels = min(signal.n_channels, 2)
        pygame.mixer.init(
            frequency=signal.sample_rate,
            size=-16,
            channels=channels,
            buffer=self.buffer,
        )
        mixer_rate, _, mixer_channels = pygame.mixer.get_init()

        samples = np.asarray(signal.samples[:mixer_channels], dtype=np.float32)
        if samples.shape[0] < mixer_channels:
            samples = np.repeat(samples[:1], mixer_channels, axis=0)
        if mixer_rate != signal.sample_rate:
            samples = librosa.resample(samples, orig_sr=signal.sample_rate, target_sr=mixer_rate)

        pcm = (np.clip(samples, -1.0, 1.0) * 32767).astype(np.int16).T
        self._pcm = np.ascontiguousarray(pcm if mixer_channels > 1 else pcm[:, 0])
        self._mixer_rate = mixer_rate
        self.signal = signal
        self._offset = 0.0
        logger.info("Playback ready: %d Hz, %d channel(s)", mixer_rate, mixer_channels)

    @property
    def duration(self) -> float:
        return self.signal.duration if self.signal is not None else 0.0

    def _start_segment(self, offset: float) -> None:
        if self._channel is not None:
            self._channel.stop()
        first = int(offset * self._mixer_rate)
        self._sound = pygame.sndarray.make_sound(np.ascontiguousarray(self._pcm[first:]))
        self._channel = self._sound.play()
        self._offset = offset
        self._segment_start = self.time_source()
        self._playing = True

    def play(self) -> None:
        if self.signal is None or self._playing:
            return
        if self._offset >= self.duration:
            self._offset = 0.0
        self._start_segment(self._offset)

    def pause(self) -> None:
        if not self._playing:
            return
        self._offset = self.position()
        if self._channel is not None:
            self._channel.stop()
        self._playing = False

    def toggle(self) -> None:
        if self._playing:
            self.pause()
        else:
            self.play()

    def seek(self, seconds: float) -> None:
        seconds = min(max(seconds, 0.0), self.duration)
        if self._playing:
            self._start_segment(seconds)
        else:
            self._offset = seconds

    def stop(self) -> None:
        if self._channel is not None:
            self._channel.stop()
        self._channel = None
        self._sound = None
        self._playing = False
        self._offset = 0.0

    def position(self) -> float:
        if not self._playing:
            return self._offset
        elapsed = self.time_source() - self._segment_start
        return min(self._offset + elapsed, self.duration)

    def is_playing(self) -> bool:
        if self._playing and self.position() >= self.duration:
            self._offset = self.duration
            self._playing = False
        return self._playing

    def close(self) -> None:
        self.stop()
        if pygame.mixer.get_init():
            pygame.mixer.quit()
        self.signal = None
        self._pcm = None


class AudioStream:
    """
    Plays a signal into a sample consumer (an encoder's audio input).

    Audio is released up to the position the caller reports, so the
    consumer receives exactly the samples that have "played" so far.
    """

    def __init__(self, signal: DecodedSignal, consumer: Callable[[np.ndarray], None]):
        self.signal = signal
        self.consumer = consumer
        self.playing = False
        self._cursor = 0

    @property
    def position(self) -> float:
        return self._cursor / self.signal.sample_rate

    def start(self) -> None:
        self._cursor = 0
        self.playing = True

    def advance_to(self, position: float) -> None:
        if not self.playing:
            return
        target = int(round(position * self.signal.sample_rate))
        self._release_to(min(target, self.signal.n_samples))

    def _release_to(self, target: int) -> None:
        if target > self._cursor:
            self.consumer(self.signal.samples[:, self._cursor:target])
            self._cursor = target

    def stop(self, flush: bool = True) -> None:
        """Stop playback, releasing the rest of the signal when ``flush``."""
        if flush and self.playing:
            self._release_to(self.signal.n_samples)
        self.playing = False
