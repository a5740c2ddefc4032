"""
FFmpeg video encoder sink.

Pipes raw RGBA frames to ffmpeg via stdin while the audio stream is
staged to a WAV file; on finalize the two are muxed into a WebM and the
bytes are returned as an in-memory artifact.
"""

import abc
import logging
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np
import soundfile as sf

from waveframe.errors import EncodeError

logger = logging.getLogger(__name__)


# Quality presets: (deadline, crf, max bitrate)
QUALITY_PRESETS = {
    "high": ("good", "10", "6M"),
    "medium": ("good", "24", "3M"),
    "fast": ("realtime", "32", "1M"),
}


@dataclass(frozen=True)
class CodecProfile:
    container: str
    video_codec: str
    pix_fmt: str
    audio_codec: str
    mime_type: str


# Opaque output uses the more widely supported VP8; alpha needs VP9.
CODEC_PROFILES = {
    False: CodecProfile("webm", "libvpx", "yuv420p", "libopus", "video/webm; codecs=vp8,opus"),
    True: CodecProfile("webm", "libvpx-vp9", "yuva420p", "libopus", "video/webm; codecs=vp9,opus"),
}


def codec_profile(transparent: bool) -> CodecProfile:
    return CODEC_PROFILES[bool(transparent)]


@dataclass(frozen=True)
class EncoderSettings:
    width: int
    height: int
    fps: int
    sample_rate: int
    channels: int
    transparent: bool = False


@dataclass(frozen=True)
class Artifact:
    """Finished encoder output: container bytes plus their media type."""

    data: bytes
    mime_type: str
    container: str

    def __len__(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return f".{self.container}"

    def save(self, output_path: Union[str, Path]) -> Path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(self.data)
        return output_path


class EncoderSink(abc.ABC):
    """
    Accepts frames at a fixed rate plus an audio sample stream and, on
    finalize, yields an Artifact.

    Lifecycle: ``start`` -> ``push_frame``/``push_audio`` ... -> ``stop``
    -> ``finalize``. ``abort`` discards everything from any state.
    """

    @property
    @abc.abstractmethod
    def is_idle(self) -> bool:
        """True when no encoding session is open."""

    @abc.abstractmethod
    def start(self, settings: EncoderSettings) -> None:
        """Open a session. Raises EncodeError if it cannot be opened."""

    @abc.abstractmethod
    def push_frame(self, frame: np.ndarray) -> None:
        """Append one (H, W, 4) uint8 RGBA frame."""

    @abc.abstractmethod
    def push_audio(self, samples: np.ndarray) -> None:
        """Append a (channels, n) float32 block of audio."""

    @abc.abstractmethod
    def stop(self) -> None:
        """Signal end of input."""

    @abc.abstractmethod
    def finalize(self) -> Artifact:
        """Wait for output. Raises EncodeError on failure or empty output."""

    @abc.abstractmethod
    def abort(self) -> None:
        """Tear down the session and discard partial output."""


def _error_summary(stderr: str) -> str:
    # Keep lines that look like errors, falling back to the tail
    error_lines = [
        line for line in stderr.split("\n")
        if "error" in line.lower() or "invalid" in line.lower()
    ]
    return "\n".join(error_lines[-5:]) if error_lines else stderr[-500:]


class FFmpegEncoder(EncoderSink):
    """EncoderSink backed by the ffmpeg command-line tool."""

    def __init__(self, ffmpeg: str = "ffmpeg", quality: str = "medium"):
        if quality not in QUALITY_PRESETS:
            raise ValueError(f"Unknown quality {quality!r}")
        self.ffmpeg = ffmpeg
        self.quality = quality

        self._state = "idle"
        self._settings: Optional[EncoderSettings] = None
        self._profile: Optional[CodecProfile] = None
        self._proc: Optional[subprocess.Popen] = None
        self._audio: Optional[sf.SoundFile] = None
        self._temp_dir: Optional[Path] = None
        self._log = None
        self._encoders: Optional[set[str]] = None
        self.frames_written = 0

    @property
    def is_idle(self) -> bool:
        return self._state == "idle"

    def _binary(self) -> str:
        binary = shutil.which(self.ffmpeg)
        if binary is None:
            raise EncodeError(f"{self.ffmpeg} not found on PATH", reason="unavailable")
        return binary

    def available_encoders(self) -> set[str]:
        """Names of the encoders this ffmpeg build provides."""
        if self._encoders is None:
            result = subprocess.run(
                [self._binary(), "-hide_banner", "-encoders"],
                capture_output=True,
                text=True,
            )
            names = set()
            for line in result.stdout.splitlines():
                parts = line.split()
                # Encoder rows look like " V....D libvpx-vp9   description"
                if len(parts) >= 2 and len(parts[0]) == 6 and parts[0][0] in "VAS":
                    names.add(parts[1])
            self._encoders = names
        return self._encoders

    def supports(self, transparent: bool) -> bool:
        profile = codec_profile(transparent)
        return {profile.video_codec, profile.audio_codec} <= self.available_encoders()

    def start(self, settings: EncoderSettings) -> None:
        if not self.is_idle:
            raise EncodeError("Encoder session already open", reason="failed")

        binary = self._binary()
        profile = codec_profile(settings.transparent)
        missing = {profile.video_codec, profile.audio_codec} - self.available_encoders()
        if missing:
            kind = "transparent (alpha-capable)" if settings.transparent else "opaque"
            raise EncodeError(
                f"Cannot encode {kind} video: ffmpeg lacks {', '.join(sorted(missing))}",
                reason="unsupported",
            )

        deadline, crf, bitrate = QUALITY_PRESETS[self.quality]
        self._temp_dir = Path(tempfile.mkdtemp(prefix="waveframe_export_"))
        video_path = self._temp_dir / f"video.{profile.container}"

        cmd = [
            binary, "-y",
            "-hide_banner",
            "-loglevel", "error",
            # Raw video input from pipe
            "-f", "rawvideo",
            "-pix_fmt", "rgba",
            "-s", f"{settings.width}x{settings.height}",
            "-r", str(settings.fps),
            "-i", "pipe:0",
            "-an",
            # Video encoding
            "-c:v", profile.video_codec,
            "-pix_fmt", profile.pix_fmt,
            "-deadline", deadline,
            "-crf", crf,
            "-b:v", bitrate,
            str(video_path),
        ]

        try:
            self._audio = sf.SoundFile(
                self._temp_dir / "audio.wav",
                mode="w",
                samplerate=settings.sample_rate,
                channels=settings.channels,
                subtype="FLOAT",
            )
            self._log = open(self._temp_dir / "ffmpeg.log", "wb")
            self._proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=self._log,
            )
        except (OSError, RuntimeError) as exc:
            # soundfile reports libsndfile failures as RuntimeError subclasses
            self._cleanup()
            raise EncodeError(f"Failed to start encoder: {exc}", reason="failed") from exc

        self._settings = settings
        self._profile = profile
        self.frames_written = 0
        self._state = "recording"
        logger.info(
            "Encoder started: %dx%d @ %dfps, %s/%s",
            settings.width, settings.height, settings.fps,
            profile.video_codec, profile.audio_codec,
        )

    def push_frame(self, frame: np.ndarray) -> None:
        if self._state != "recording":
            raise EncodeError("push_frame called without an open session")
        raw = np.ascontiguousarray(np.asarray(frame, dtype=np.uint8)).tobytes()
        try:
            self._proc.stdin.write(raw)
        except BrokenPipeError as exc:
            raise EncodeError(f"ffmpeg closed its input: {self._read_log()}") from exc
        self.frames_written += 1

    def push_audio(self, samples: np.ndarray) -> None:
        if self._state != "recording":
            raise EncodeError("push_audio called without an open session")
        block = np.asarray(samples, dtype=np.float32)
        if block.size:
            self._audio.write(block.T)

    def stop(self) -> None:
        if self._state != "recording":
            return
        try:
            self._proc.stdin.close()
        except BrokenPipeError:
            pass
        self._audio.close()
        self._state = "stopped"

    def finalize(self) -> Artifact:
        if self._state == "recording":
            self.stop()
        if self._state != "stopped":
            raise EncodeError("finalize called without a stopped session")

        try:
            self._proc.wait()
            if self._proc.returncode != 0:
                raise EncodeError(
                    f"ffmpeg exited with code {self._proc.returncode}: "
                    f"{_error_summary(self._read_log())}"
                )
            return self._mux()
        finally:
            self._cleanup()

    def _mux(self) -> Artifact:
        profile = self._profile
        output_path = self._temp_dir / f"output.{profile.container}"
        cmd = [
            self._binary(), "-y",
            "-hide_banner",
            "-loglevel", "error",
            "-i", str(self._temp_dir / f"video.{profile.container}"),
            "-i", str(self._temp_dir / "audio.wav"),
            "-map", "0:v:0",
            "-map", "1:a:0",
            "-c:v", "copy",
            "-c:a", profile.audio_codec,
            "-b:a", "128k",
            "-ar", "48000",
            str(output_path),
        ]
        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            raise EncodeError(
                f"ffmpeg mux exited with code {result.returncode}: "
                f"{_error_summary(result.stderr)}"
            )

        data = output_path.read_bytes() if output_path.exists() else b""
        if not data:
            raise EncodeError("Encoder produced no output", reason="empty")

        logger.info("Encoded %d frames, %.1f KB", self.frames_written, len(data) / 1024)
        return Artifact(data=data, mime_type=profile.mime_type, container=profile.container)

    def abort(self) -> None:
        if self._proc is not None and self._proc.poll() is None:
            self._proc.kill()
            self._proc.wait()
        self._cleanup()

    def _read_log(self) -> str:
        if self._temp_dir is None:
            return ""
        log_path = self._temp_dir / "ffmpeg.log"
        if not log_path.exists():
            return ""
        return log_path.read_text(encoding="utf-8", errors="replace")

    def _cleanup(self) -> None:
        if self._audio is not None and not self._audio.closed:
            self._audio.close()
        if self._log is not None:
            self._log.close()
        if self._proc is not None and self._proc.stdin and not self._proc.stdin.closed:
            try:
                self._proc.stdin.close()
            except BrokenPipeError:
                pass
        if self._temp_dir is not None:
            shutil.rmtree(self._temp_dir, ignore_errors=True)

        self._audio = None
        self._log = None
        self._proc = None
        self._temp_dir = None
        self._state = "idle"
