"""
Render styles.

Each style is a pure function that draws one visual onto an RGBA target:

- Line / GradientLine / ReflectedLine: a window of raw samples around
  the playback position drawn as a polyline
- Equalizer / SymmetricBars / BottomBars: spectrum bars
- Circle: radial ticks around a fixed inner circle
- Pulse: a bass-driven circle with two static reference rings

Spectrum styles draw nothing when no snapshot is available. Geometry is
drawn into 8-bit coverage masks with PIL and then composited with the
resolved fill, so a gradient and a solid color share one code path.
"""

import enum
import math
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
from PIL import Image, ImageDraw

from waveframe.visualizers.colors import (
    ColorPreset,
    Fill,
    SolidFill,
    rasterize,
    resolve_linear,
    resolve_radial,
)


class RenderStyle(enum.Enum):
    """Closed set of visual styles."""

    LINE = "Line"
    GRADIENT_LINE = "Gradient Line"
    REFLECTED_LINE = "Reflected Line"
    EQUALIZER = "Equalizer"
    SYMMETRIC_BARS = "Symmetric Bars"
    BOTTOM_BARS = "Bottom Bars"
    CIRCLE = "Circle"
    PULSE = "Pulse"

    @property
    def uses_spectrum(self) -> bool:
        return self not in _WAVEFORM_STYLES

    @classmethod
    def parse(cls, value: "str | RenderStyle") -> "RenderStyle":
        """Accept an enum member, its label ("Gradient Line") or a name ("GradientLine")."""
        if isinstance(value, cls):
            return value
        key = str(value).replace(" ", "").replace("_", "").replace("-", "").lower()
        for style in cls:
            if style.value.replace(" ", "").lower() == key:
                return style
        available = ", ".join(s.value for s in cls)
        raise ValueError(f"Unknown render style {value!r} (available: {available})")


_WAVEFORM_STYLES = frozenset(
    {RenderStyle.LINE, RenderStyle.GRADIENT_LINE, RenderStyle.REFLECTED_LINE}
)


@dataclass(frozen=True)
class StyleConstants:
    """Geometry constants for the styles."""

    equalizer_bin_divisor: int = 4
    equalizer_gap: int = 1
    bar_count: int = 128
    bar_gap: int = 4
    circle_ticks: int = 360
    circle_inner_radius: float = 0.25  # fraction of height
    circle_tick_extent: float = 0.75  # fraction of height
    circle_line_width: int = 2
    bass_fraction: float = 0.1
    pulse_base_radius: float = 0.1  # fraction of height
    pulse_bass_radius: float = 0.5  # fraction of height added at full bass
    pulse_fill_alpha: int = 0x33
    pulse_line_width: int = 3
    ring_radii: tuple[float, ...] = (0.25, 0.4)
    ring_alpha: int = 0x80
    line_width: int = 2
    line_amplitude: float = 0.25  # fraction of height
    reflection_alpha: int = 128


STYLE_CONSTANTS = StyleConstants()


def shape_amplitude(value: float, extent: float) -> float:
    """Square a normalised magnitude for perceptual emphasis, then scale."""
    v = min(max(float(value), 0.0), 1.0)
    return v * v * extent


def resample(snapshot: np.ndarray, count: int) -> np.ndarray:
    """Pick ``count`` samples from ``snapshot`` with index ``floor(i / count * len)``."""
    n = len(snapshot)
    if n == 0 or count <= 0:
        return np.zeros(max(count, 0), dtype=np.uint8)
    idx = (np.arange(count) * n) // count
    return np.asarray(snapshot)[idx]


def sample_window(samples: np.ndarray, start: int, length: int) -> np.ndarray:
    """Slice ``length`` samples from ``start``; indices past either end read as silence."""
    window = np.zeros(length, dtype=np.float32)
    lo = max(start, 0)
    hi = min(start + length, len(samples))
    if hi > lo:
        window[lo - start:hi - start] = samples[lo:hi]
    return window


def pulse_radius(
    snapshot: np.ndarray,
    height: int,
    constants: StyleConstants = STYLE_CONSTANTS,
) -> float:
    """Radius of the Pulse circle for a snapshot."""
    bass_count = int(len(snapshot) * constants.bass_fraction)
    if bass_count > 0:
        bass_avg = float(np.mean(np.asarray(snapshot[:bass_count], dtype=np.float64)))
    else:
        bass_avg = 0.0
    return (
        height * constants.pulse_base_radius
        + (bass_avg / 255.0) * height * constants.pulse_bass_radius
    )


def _new_mask(target: Image.Image) -> tuple[Image.Image, ImageDraw.ImageDraw]:
    mask = Image.new("L", target.size, 0)
    return mask, ImageDraw.Draw(mask)


def paint(target: Image.Image, mask: Image.Image, fill: Fill) -> None:
    """Composite ``fill`` onto ``target`` through an 8-bit coverage mask."""
    if mask.getbbox() is None:
        return
    width, height = target.size
    if isinstance(fill, SolidFill):
        layer = Image.new("RGBA", target.size, fill.color + (0,))
    else:
        layer = Image.fromarray(np.ascontiguousarray(rasterize(fill, width, height)))
        layer = layer.convert("RGBA")
    layer.putalpha(mask)
    target.alpha_composite(layer)


# --- Waveform styles ---


def _waveform_points(signal, position: float, width: int, height: int,
                     constants: StyleConstants, mirrored: bool = False):
    samples = signal.channel(0)
    center = int(math.floor(position * signal.sample_rate))
    window = sample_window(samples, center - width // 2, width)
    if mirrored:
        window = -window
    ys = window * (height * constants.line_amplitude) + height / 2
    return [(float(x), float(y)) for x, y in enumerate(ys)]


def _render_waveform(target, signal, position, constants, stroke: Fill, reflected: bool):
    width, height = target.size

    mask, draw = _new_mask(target)
    draw.line(
        _waveform_points(signal, position, width, height, constants),
        fill=255,
        width=constants.line_width,
    )
    paint(target, mask, stroke)

    if reflected:
        mask, draw = _new_mask(target)
        draw.line(
            _waveform_points(signal, position, width, height, constants, mirrored=True),
            fill=constants.reflection_alpha,
            width=constants.line_width,
        )
        paint(target, mask, stroke)


def render_line(target, signal, position, snapshot, preset, constants=STYLE_CONSTANTS):
    stroke = SolidFill(preset.primary)
    _render_waveform(target, signal, position, constants, stroke, reflected=False)


def render_gradient_line(target, signal, position, snapshot, preset, constants=STYLE_CONSTANTS):
    width = target.size[0]
    stroke = resolve_linear(preset, (0.0, 0.0), (float(width), 0.0))
    _render_waveform(target, signal, position, constants, stroke, reflected=False)


def render_reflected_line(target, signal, position, snapshot, preset, constants=STYLE_CONSTANTS):
    width = target.size[0]
    stroke = resolve_linear(preset, (0.0, 0.0), (float(width), 0.0))
    _render_waveform(target, signal, position, constants, stroke, reflected=True)


# --- Bar styles ---


def _render_bars(target, values: np.ndarray, gap: int, anchor_bottom: bool, preset: ColorPreset):
    width, height = target.size
    count = len(values)
    if count == 0:
        return
    bar_width = (width - (count - 1) * gap) / count

    mask, draw = _new_mask(target)
    for i, magnitude in enumerate(values):
        bar_height = shape_amplitude(magnitude / 255.0, height)
        if bar_height <= 0:
            continue
        x = i * (bar_width + gap)
        top = height - bar_height if anchor_bottom else (height - bar_height) / 2

        x0 = int(round(x))
        x1 = int(round(x + bar_width)) - 1
        y0 = int(round(top))
        y1 = int(round(top + bar_height)) - 1
        if x1 < x0 or y1 < y0:
            continue
        draw.rectangle([x0, y0, x1, y1], fill=255)

    fill = resolve_linear(preset, (0.0, height / 2), (0.0, float(height)))
    paint(target, mask, fill)


def render_equalizer(target, signal, position, snapshot, preset, constants=STYLE_CONSTANTS):
    if snapshot is None:
        return
    count = len(snapshot) // constants.equalizer_bin_divisor
    _render_bars(target, np.asarray(snapshot)[:count], constants.equalizer_gap, False, preset)


def render_symmetric_bars(target, signal, position, snapshot, preset, constants=STYLE_CONSTANTS):
    if snapshot is None:
        return
    values = resample(snapshot, constants.bar_count)
    _render_bars(target, values, constants.bar_gap, False, preset)


def render_bottom_bars(target, signal, position, snapshot, preset, constants=STYLE_CONSTANTS):
    if snapshot is None:
        return
    values = resample(snapshot, constants.bar_count)
    _render_bars(target, values, constants.bar_gap, True, preset)


# --- Radial styles ---


def render_circle(target, signal, position, snapshot, preset, constants=STYLE_CONSTANTS):
    if snapshot is None:
        return
    width, height = target.size
    cx, cy = width / 2, height / 2
    radius = height * constants.circle_inner_radius
    ticks = constants.circle_ticks

    mask, draw = _new_mask(target)
    for i, magnitude in enumerate(resample(snapshot, ticks)):
        length = shape_amplitude(magnitude / 255.0, height * constants.circle_tick_extent)
        if length <= 0:
            continue
        angle = (i / ticks) * 2 * math.pi
        cos_a, sin_a = math.cos(angle), math.sin(angle)
        draw.line(
            [
                (cx + cos_a * radius, cy + sin_a * radius),
                (cx + cos_a * (radius + length), cy + sin_a * (radius + length)),
            ],
            fill=255,
            width=constants.circle_line_width,
        )

    fill = resolve_radial(preset, (cx, cy), radius, radius + height / 2)
    paint(target, mask, fill)


def _circle_box(cx: float, cy: float, r: float) -> list[float]:
    return [cx - r, cy - r, cx + r, cy + r]


def render_pulse(target, signal, position, snapshot, preset, constants=STYLE_CONSTANTS):
    if snapshot is None:
        return
    width, height = target.size
    cx, cy = width / 2, height / 2
    r = pulse_radius(snapshot, height, constants)
    primary = SolidFill(preset.primary)

    mask, draw = _new_mask(target)
    draw.ellipse(_circle_box(cx, cy, r), fill=constants.pulse_fill_alpha)
    paint(target, mask, primary)

    mask, draw = _new_mask(target)
    draw.ellipse(_circle_box(cx, cy, r), outline=255, width=constants.pulse_line_width)
    paint(target, mask, resolve_linear(preset, (cx, cy - r), (cx, cy + r)))

    mask, draw = _new_mask(target)
    for ring in constants.ring_radii:
        draw.ellipse(_circle_box(cx, cy, height * ring), outline=constants.ring_alpha, width=1)
    paint(target, mask, primary)


StyleRenderer = Callable[..., None]

STYLE_RENDERERS: dict[RenderStyle, StyleRenderer] = {
    RenderStyle.LINE: render_line,
    RenderStyle.GRADIENT_LINE: render_gradient_line,
    RenderStyle.REFLECTED_LINE: render_reflected_line,
    RenderStyle.EQUALIZER: render_equalizer,
    RenderStyle.SYMMETRIC_BARS: render_symmetric_bars,
    RenderStyle.BOTTOM_BARS: render_bottom_bars,
    RenderStyle.CIRCLE: render_circle,
    RenderStyle.PULSE: render_pulse,
}


def get_renderer(style: RenderStyle) -> Optional[StyleRenderer]:
    return STYLE_RENDERERS.get(style)
