"""
Color presets and the fill/stroke resolver.

A preset with one stop resolves to a solid color; two or more stops
resolve to a linear or radial gradient whose stops sit at evenly spaced
offsets ``k / (len - 1)``. Gradients are rasterised with numpy and
clamp to the end stops outside their axis, matching canvas semantics.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Union

import numpy as np
from PIL import ImageColor

RGB = tuple[int, int, int]


@dataclass(frozen=True)
class ColorPreset:
    """Named, ordered list of color stops."""

    name: str
    stops: tuple[str, ...]

    def __post_init__(self):
        if not self.stops:
            raise ValueError(f"Color preset {self.name!r} has no stops")
        # Normalise lists passed by callers into a hashable tuple
        object.__setattr__(self, "stops", tuple(self.stops))

    @property
    def rgb_stops(self) -> tuple[RGB, ...]:
        return tuple(parse_color(c) for c in self.stops)

    @property
    def primary(self) -> RGB:
        """First stop, used wherever a single color is required."""
        return parse_color(self.stops[0])


PRESETS: tuple[ColorPreset, ...] = (
    ColorPreset("Synthwave", ("#ec4899", "#6d28d9")),
    ColorPreset("Ocean", ("#38bdf8", "#34d399")),
    ColorPreset("Sunset", ("#f97316", "#ec4899")),
    ColorPreset("Emerald", ("#34d399",)),
    ColorPreset("Sky", ("#38bdf8",)),
    ColorPreset("Fuchsia", ("#d946ef",)),
)

DEFAULT_PRESET = PRESETS[0]


def parse_color(value: str) -> RGB:
    """Parse a CSS-style color string into an RGB tuple."""
    r, g, b = ImageColor.getrgb(value)[:3]
    return (r, g, b)


def get_preset(name: str) -> ColorPreset:
    """Look up a catalog preset by name (case-insensitive)."""
    for preset in PRESETS:
        if preset.name.lower() == name.strip().lower():
            return preset
    available = ", ".join(p.name for p in PRESETS)
    raise ValueError(f"Unknown color preset {name!r} (available: {available})")


@dataclass(frozen=True)
class SolidFill:
    color: RGB


@dataclass(frozen=True)
class LinearGradient:
    """Gradient along the segment ``start`` -> ``end``."""

    stops: tuple[RGB, ...]
    start: tuple[float, float]
    end: tuple[float, float]


@dataclass(frozen=True)
class RadialGradient:
    """Gradient between two concentric circles around ``center``."""

    stops: tuple[RGB, ...]
    center: tuple[float, float]
    inner_radius: float
    outer_radius: float


Fill = Union[SolidFill, LinearGradient, RadialGradient]


def interpolate_stops(stops: tuple[RGB, ...], t: np.ndarray) -> np.ndarray:
    """
    Interpolate evenly spaced color stops at offsets ``t``.

    Args:
        stops: Two or more RGB stops.
        t: Offsets of any shape; values outside [0, 1] clamp.

    Returns:
        Array of shape ``t.shape + (3,)`` with uint8 colors. At offset
        ``k / (len(stops) - 1)`` the result equals ``stops[k]``.
    """
    t = np.asarray(t, dtype=np.float64)
    colors = np.asarray(stops, dtype=np.float64)
    offsets = np.linspace(0.0, 1.0, len(stops))

    out = np.empty(t.shape + (3,), dtype=np.float64)
    for channel in range(3):
        out[..., channel] = np.interp(t, offsets, colors[:, channel])

    return np.rint(out).astype(np.uint8)


def resolve_linear(
    preset: ColorPreset,
    start: tuple[float, float],
    end: tuple[float, float],
) -> Fill:
    """Resolve a preset to a solid color or a linear gradient."""
    if len(preset.stops) < 2:
        return SolidFill(preset.primary)
    if start == end:
        # Zero-length axis: no meaningful direction to interpolate along
        return SolidFill(preset.primary)
    return LinearGradient(preset.rgb_stops, tuple(start), tuple(end))


def resolve_radial(
    preset: ColorPreset,
    center: tuple[float, float],
    inner_radius: float,
    outer_radius: float,
) -> Fill:
    """Resolve a preset to a solid color or a radial gradient."""
    if len(preset.stops) < 2 or outer_radius <= inner_radius:
        return SolidFill(preset.primary)
    return RadialGradient(
        preset.rgb_stops,
        tuple(center),
        float(inner_radius),
        float(outer_radius),
    )


@lru_cache(maxsize=32)
def rasterize(fill: Fill, width: int, height: int) -> np.ndarray:
    """
    Render a fill as a full-frame (H, W, 3) uint8 array.

    Results are cached and returned read-only; gradients depend only on
    their geometry, which repeats frame after frame for most styles.
    """
    if isinstance(fill, SolidFill):
        out = np.empty((height, width, 3), dtype=np.uint8)
        out[...] = fill.color
    else:
        ys, xs = np.mgrid[0:height, 0:width].astype(np.float64)
        # Sample at pixel centres
        xs += 0.5
        ys += 0.5

        if isinstance(fill, LinearGradient):
            x0, y0 = fill.start
            x1, y1 = fill.end
            dx, dy = x1 - x0, y1 - y0
            t = ((xs - x0) * dx + (ys - y0) * dy) / (dx * dx + dy * dy)
        else:
            cx, cy = fill.center
            dist = np.sqrt((xs - cx) ** 2 + (ys - cy) ** 2)
            span = fill.outer_radius - fill.inner_radius
            t = (dist - fill.inner_radius) / span

        out = interpolate_stops(fill.stops, t)

    out.setflags(write=False)
    return out
