"""
Spectral analysis for spectrum-reactive styles.

Produces byte-range frequency magnitudes for the instant at a playback
position, the way a browser analyser node does: Blackman-windowed FFT
over the most recent window of samples, exponential smoothing across
calls, decibel conversion, and linear mapping of a fixed dB range onto
0-255.
"""

from typing import Optional

import numpy as np
from scipy import signal as scipy_signal

from waveframe.config import (
    FFT_SIZE,
    MAX_DECIBELS,
    MIN_DECIBELS,
    SMOOTHING_TIME_CONSTANT,
)
from waveframe.core.signal import DecodedSignal
from waveframe.errors import AnalyzerUnavailable


class SpectralAnalyzer:
    """
    Owns one fixed-size frequency snapshot buffer.

    Each consumer (live preview, export) owns its own analyzer. A new
    snapshot is computed into a fresh array and published by swapping a
    single reference, so readers always observe one complete snapshot.
    """

    def __init__(
        self,
        fft_size: int = FFT_SIZE,
        smoothing: float = SMOOTHING_TIME_CONSTANT,
        min_decibels: float = MIN_DECIBELS,
        max_decibels: float = MAX_DECIBELS,
    ):
        """
        Initialize the analyzer.

        Args:
            fft_size: Analysis window in samples (power of two).
            smoothing: Weight of the previous magnitude (0 disables smoothing).
            min_decibels: Level mapped to byte 0.
            max_decibels: Level mapped to byte 255.
        """
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError("fft_size must be a power of two >= 32")
        if not 0.0 <= smoothing < 1.0:
            raise ValueError("smoothing must be in [0, 1)")
        if max_decibels <= min_decibels:
            raise ValueError("max_decibels must exceed min_decibels")

        self.fft_size = fft_size
        self.smoothing = smoothing
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels

        self._window = scipy_signal.get_window("blackman", fft_size)
        self._smoothed = np.zeros(self.bin_count, dtype=np.float64)
        self._snapshot: Optional[np.ndarray] = None

    @property
    def bin_count(self) -> int:
        return self.fft_size // 2

    def reset(self) -> None:
        """Forget smoothing history and the published snapshot."""
        self._smoothed = np.zeros(self.bin_count, dtype=np.float64)
        self._snapshot = None

    def _time_window(self, signal: DecodedSignal, position: float) -> np.ndarray:
        """The ``fft_size`` samples that end at ``position``, zero-padded."""
        end = int(np.floor(max(position, 0.0) * signal.sample_rate))
        start = end - self.fft_size

        block = np.zeros(self.fft_size, dtype=np.float64)
        lo = max(start, 0)
        hi = min(end, signal.n_samples)
        if hi > lo:
            block[lo - start:hi - start] = signal.samples[:, lo:hi].mean(axis=0)
        return block

    def update(self, signal: DecodedSignal, position: float) -> np.ndarray:
        """
        Analyze the signal at ``position`` and publish a new snapshot.

        Args:
            signal: Source signal.
            position: Playback position in seconds.

        Returns:
            The published snapshot (read-only uint8 array of ``bin_count``).
        """
        block = self._time_window(signal, position) * self._window
        spectrum = np.abs(np.fft.rfft(block))[: self.bin_count] / self.fft_size

        smoothed = self.smoothing * self._smoothed + (1.0 - self.smoothing) * spectrum
        self._smoothed = smoothed

        with np.errstate(divide="ignore"):
            db = 20.0 * np.log10(smoothed)
        scale = 255.0 / (self.max_decibels - self.min_decibels)
        values = np.floor(scale * (db - self.min_decibels))
        values = np.clip(np.nan_to_num(values, nan=0.0, neginf=0.0), 0, 255)

        snapshot = values.astype(np.uint8)
        snapshot.setflags(write=False)
        self._snapshot = snapshot
        return snapshot

    def snapshot(self) -> np.ndarray:
        """
        Return the most recently published snapshot.

        Raises:
            AnalyzerUnavailable: Nothing has been analyzed yet.
        """
        current = self._snapshot
        if current is None:
            raise AnalyzerUnavailable("No frequency snapshot has been computed yet")
        return current
