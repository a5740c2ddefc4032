"""
Decoded audio signal, decoder, and the session-owned signal store.

The decoder loads audio bytes with librosa (soundfile-backed for
in-memory input) and keeps every channel at its native sample rate.
"""

import io
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import librosa
import numpy as np

from waveframe.config import RenderConfig
from waveframe.errors import DecodeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class DecodedSignal:
    """Per-channel samples in [-1, 1] plus sample rate and duration."""

    samples: np.ndarray  # Shape: (n_channels, n_samples)
    sample_rate: int
    duration: float

    def __post_init__(self):
        if self.samples.ndim != 2 or self.samples.shape[0] < 1:
            raise ValueError("samples must have shape (n_channels, n_samples)")
        if self.sample_rate <= 0:
            raise ValueError("sample_rate must be positive")
        # Shared read-only by every reader; never copied
        self.samples.setflags(write=False)

    @classmethod
    def from_array(cls, y: np.ndarray, sample_rate: int) -> "DecodedSignal":
        """Build a signal from a mono (n,) or multi-channel (c, n) array."""
        y = np.asarray(y, dtype=np.float32)
        if y.ndim == 1:
            y = y[np.newaxis, :]
        duration = librosa.get_duration(y=y, sr=sample_rate)
        return cls(samples=y, sample_rate=int(sample_rate), duration=float(duration))

    @property
    def n_channels(self) -> int:
        return self.samples.shape[0]

    @property
    def n_samples(self) -> int:
        return self.samples.shape[1]

    def channel(self, index: int) -> np.ndarray:
        return self.samples[index]


class AudioDecoder:
    """Turns encoded audio bytes into a DecodedSignal."""

    def decode(self, data: bytes) -> DecodedSignal:
        """
        Decode an in-memory audio file.

        Args:
            data: Encoded audio (wav, flac, ogg, mp3 where supported).

        Returns:
            DecodedSignal at the file's native sample rate.

        Raises:
            DecodeError: Empty, corrupt, or unsupported input.
        """
        if not data:
            raise DecodeError("No audio data provided")

        try:
            y, sr = librosa.load(io.BytesIO(data), sr=None, mono=False)
        except Exception as exc:
            raise DecodeError(f"Failed to decode audio: {exc}") from exc

        return self._build(y, sr)

    def decode_file(self, audio_path: Union[str, Path]) -> DecodedSignal:
        """Decode an audio file from disk."""
        audio_path = Path(audio_path)
        if not audio_path.exists():
            raise FileNotFoundError(f"Audio file not found: {audio_path}")
        try:
            y, sr = librosa.load(audio_path, sr=None, mono=False)
        except Exception as exc:
            raise DecodeError(f"Failed to decode {audio_path.name}: {exc}") from exc

        return self._build(y, sr)

    def _build(self, y: np.ndarray, sr: int) -> DecodedSignal:
        if y.size == 0:
            raise DecodeError("Decoded audio contains no samples")
        signal = DecodedSignal.from_array(y, sr)
        logger.info(
            "Decoded %d channel(s), %d Hz, %.2fs",
            signal.n_channels,
            signal.sample_rate,
            signal.duration,
        )
        return signal


class SignalStore:
    """
    Holds the current signal and render configuration.

    Exactly one signal is current at a time. Readers take the reference
    and never copy sample data; replacing the signal swaps the reference.
    """

    def __init__(self, config: Optional[RenderConfig] = None):
        self._lock = threading.Lock()
        self._signal: Optional[DecodedSignal] = None
        self._config = config or RenderConfig()

    @property
    def signal(self) -> Optional[DecodedSignal]:
        return self._signal

    @property
    def config(self) -> RenderConfig:
        return self._config

    def replace(self, signal: Optional[DecodedSignal]) -> None:
        with self._lock:
            self._signal = signal

    def clear(self) -> None:
        self.replace(None)

    def update_config(self, **changes) -> RenderConfig:
        """Swap in a new config; frames already in flight keep the old one."""
        with self._lock:
            self._config = self._config.replace(**changes)
            return self._config
