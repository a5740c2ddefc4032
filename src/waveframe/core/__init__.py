"""Signal decoding, spectral analysis, and playback clocks."""

from waveframe.core.analyzer import SpectralAnalyzer
from waveframe.core.clock import LiveClock, VirtualClock
from waveframe.core.signal import AudioDecoder, DecodedSignal, SignalStore

__all__ = ["SpectralAnalyzer", "LiveClock", "VirtualClock", "AudioDecoder", "DecodedSignal", "SignalStore"]
