"""Encoder, audio playback, and preview window."""

from waveframe.io.encoder import Artifact, EncoderSink, FFmpegEncoder

__all__ = ["Artifact", "EncoderSink", "FFmpegEncoder"]
