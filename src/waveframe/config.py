"""
Fixed rendering constants and the per-frame render configuration.

Frame size and frame rate are not negotiable at runtime; the only
caller-facing knobs are style, color preset, and background
transparency (plus the encoder quality profile for exports).
"""

import dataclasses
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

from waveframe.visualizers.colors import DEFAULT_PRESET, ColorPreset, get_preset
from waveframe.visualizers.styles import RenderStyle

FRAME_WIDTH = 1280
FRAME_HEIGHT = 720
FRAME_RATE = 30

# Analysis window; bin count is half of it
FFT_SIZE = 2048
SMOOTHING_TIME_CONSTANT = 0.8
MIN_DECIBELS = -100.0
MAX_DECIBELS = -30.0

BACKGROUND_COLOR = "#111827"

QUALITY_CHOICES = ("high", "medium", "fast")


@dataclass(frozen=True)
class RenderConfig:
    """Immutable snapshot of the visual settings used for one frame."""

    style: RenderStyle = RenderStyle.EQUALIZER
    color_preset: ColorPreset = field(default=DEFAULT_PRESET)
    transparent_background: bool = False

    def __post_init__(self):
        object.__setattr__(self, "style", RenderStyle.parse(self.style))
        if isinstance(self.color_preset, str):
            object.__setattr__(self, "color_preset", get_preset(self.color_preset))
        if not isinstance(self.transparent_background, bool):
            raise ValueError(
                f"transparent must be true or false, got {self.transparent_background!r}"
            )

    def replace(self, **changes) -> "RenderConfig":
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RenderConfig":
        """
        Build a config from a plain dict.

        Recognised keys: ``style``, ``preset`` (or ``colorPreset``),
        ``transparent`` (or ``transparentBackground``). Unknown keys are
        ignored so one file can also carry CLI-only settings.
        """
        defaults = cls()
        preset = data.get("preset", data.get("colorPreset"))
        transparent = data.get("transparent", data.get("transparentBackground"))
        return cls(
            style=data.get("style", defaults.style),
            color_preset=preset if preset is not None else defaults.color_preset,
            transparent_background=(
                transparent if transparent is not None else defaults.transparent_background
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "style": self.style.value,
            "preset": self.color_preset.name,
            "transparent": self.transparent_background,
        }


def load_config_file(path: Union[str, Path]) -> dict[str, Any]:
    """Read a JSON settings file."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    return data
