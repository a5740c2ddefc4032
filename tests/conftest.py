"""Pytest configuration and shared fixtures."""

import numpy as np
import pytest

from waveframe.core.clock import SteppedTime
from waveframe.core.signal import DecodedSignal
from waveframe.errors import EncodeError
from waveframe.io.encoder import Artifact, EncoderSettings, EncoderSink, codec_profile
from waveframe.visualizers.compositor import StyleCompositor

# Default sample rate for test audio
TEST_SR = 22050

# Small frames keep style and pipeline tests fast
TEST_WIDTH = 320
TEST_HEIGHT = 180


@pytest.fixture
def sample_rate() -> int:
    """Default sample rate for tests."""
    return TEST_SR


def make_sine(duration: float, sample_rate: int, frequency: float = 440.0,
              amplitude: float = 0.5) -> np.ndarray:
    t = np.linspace(0, duration, int(sample_rate * duration), endpoint=False)
    return (amplitude * np.sin(2 * np.pi * frequency * t)).astype(np.float32)


@pytest.fixture
def pure_sine(sample_rate: int) -> tuple[np.ndarray, int]:
    """
    Generate a pure 440Hz sine wave (A4 note).

    Returns:
        Tuple of (audio_signal, sample_rate).
    """
    return make_sine(2.0, sample_rate), sample_rate


@pytest.fixture
def mixed_signal(sample_rate: int) -> tuple[np.ndarray, int]:
    """
    Generate a signal with a bass tone, a chord, and clicks.

    Returns:
        Tuple of (audio_signal, sample_rate).
    """
    duration = 2.0
    t = np.linspace(0, duration, int(sample_rate * duration), endpoint=False)

    harmonic = (
        0.3 * np.sin(2 * np.pi * 55.0 * t) +    # A1
        0.2 * np.sin(2 * np.pi * 261.63 * t) +  # C4
        0.2 * np.sin(2 * np.pi * 392.00 * t)    # G4
    )

    # Percussive: clicks at 120 BPM
    samples_per_beat = int(sample_rate * 60 / 120)
    percussive = np.zeros(len(t))
    click_duration = int(sample_rate * 0.01)
    for beat_start in range(0, len(t), samples_per_beat):
        click_end = min(beat_start + click_duration, len(t))
        decay = np.exp(-np.linspace(0, 5, click_end - beat_start))
        percussive[beat_start:click_end] = 0.2 * decay

    return (harmonic + percussive).astype(np.float32), sample_rate


@pytest.fixture
def sine_signal(pure_sine) -> DecodedSignal:
    y, sr = pure_sine
    return DecodedSignal.from_array(y, sr)


@pytest.fixture
def mixed_decoded(mixed_signal) -> DecodedSignal:
    y, sr = mixed_signal
    return DecodedSignal.from_array(y, sr)


@pytest.fixture
def stereo_signal(sample_rate: int) -> DecodedSignal:
    left = make_sine(1.0, sample_rate, 220.0)
    right = make_sine(1.0, sample_rate, 880.0, amplitude=0.25)
    return DecodedSignal.from_array(np.stack([left, right]), sample_rate)


@pytest.fixture
def compositor() -> StyleCompositor:
    return StyleCompositor(TEST_WIDTH, TEST_HEIGHT)


@pytest.fixture
def temp_audio_file(tmp_path, mixed_signal):
    """Create a temporary audio file for testing file I/O."""
    import soundfile as sf

    y, sr = mixed_signal
    audio_path = tmp_path / "test_audio.wav"
    sf.write(audio_path, y, sr)
    return audio_path


class FakeEncoder(EncoderSink):
    """In-memory encoder sink that records what it was fed."""

    def __init__(self, supports_alpha: bool = True, output: bytes = b"\x1a\x45\xdf\xa3fake-webm",
                 fail_finalize: bool = False):
        self.supports_alpha = supports_alpha
        self.output = output
        self.fail_finalize = fail_finalize

        self.state = "idle"
        self.settings = None
        self.frames = []
        self.audio_samples = 0
        self.calls = []

    @property
    def is_idle(self) -> bool:
        return self.state == "idle"

    def start(self, settings: EncoderSettings) -> None:
        self.calls.append("start")
        if settings.transparent and not self.supports_alpha:
            raise EncodeError("No alpha-capable encoder", reason="unsupported")
        self.settings = settings
        self.state = "recording"

    def push_frame(self, frame) -> None:
        assert self.state == "recording"
        self.frames.append(frame.shape)

    def push_audio(self, samples) -> None:
        assert self.state == "recording"
        self.audio_samples += samples.shape[1]

    def stop(self) -> None:
        self.calls.append("stop")
        self.state = "stopped"

    def finalize(self) -> Artifact:
        self.calls.append("finalize")
        self.state = "idle"
        if self.fail_finalize:
            raise EncodeError("Encoder crashed", reason="failed")
        profile = codec_profile(self.settings.transparent)
        return Artifact(data=self.output, mime_type=profile.mime_type, container=profile.container)

    def abort(self) -> None:
        self.calls.append("abort")
        self.state = "idle"


class FakeEngine:
    """Playback engine driven by a stepped time source instead of audio hardware."""

    def __init__(self):
        self.time = SteppedTime()
        self.signal = None
        self.playing = False
        self.offset = 0.0
        self.started_at = 0.0
        self.closed = False

    @property
    def duration(self) -> float:
        return self.signal.duration if self.signal is not None else 0.0

    def load(self, signal) -> None:
        self.signal = signal
        self.offset = 0.0
        self.playing = False

    def play(self) -> None:
        self.started_at = self.time()
        self.playing = True

    def pause(self) -> None:
        self.offset = self.position()
        self.playing = False

    def seek(self, seconds: float) -> None:
        self.offset = min(max(seconds, 0.0), self.duration)
        self.started_at = self.time()

    def stop(self) -> None:
        self.playing = False
        self.offset = 0.0

    def position(self) -> float:
        if not self.playing:
            return self.offset
        return min(self.offset + self.time() - self.started_at, self.duration)

    def is_playing(self) -> bool:
        if self.playing and self.position() >= self.duration:
            self.offset = self.duration
            self.playing = False
        return self.playing

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_encoder() -> FakeEncoder:
    return FakeEncoder()


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()
