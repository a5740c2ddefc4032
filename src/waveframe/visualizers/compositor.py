"""
Frame compositor.

Clears or fills the background, then dispatches to exactly one style
renderer. Rendering is a pure function of (signal, position, snapshot,
config): the same inputs always produce byte-identical frames.
"""

import math
from typing import Optional

import numpy as np
from PIL import Image

from waveframe.config import BACKGROUND_COLOR, FRAME_HEIGHT, FRAME_WIDTH, RenderConfig
from waveframe.core.signal import DecodedSignal
from waveframe.visualizers.colors import parse_color
from waveframe.visualizers.styles import STYLE_CONSTANTS, StyleConstants, get_renderer


class StyleCompositor:
    """Turns a visual state into an RGBA raster frame."""

    def __init__(
        self,
        width: int = FRAME_WIDTH,
        height: int = FRAME_HEIGHT,
        background: str = BACKGROUND_COLOR,
        constants: StyleConstants = STYLE_CONSTANTS,
    ):
        self.width = width
        self.height = height
        self.background = parse_color(background)
        self.constants = constants

    def new_frame(self) -> Image.Image:
        return Image.new("RGBA", (self.width, self.height), (0, 0, 0, 0))

    def clear(self, target: Image.Image, transparent: bool) -> None:
        if transparent:
            target.paste((0, 0, 0, 0), (0, 0, *target.size))
        else:
            target.paste(self.background + (255,), (0, 0, *target.size))

    def render(
        self,
        target: Image.Image,
        signal: DecodedSignal,
        position: float,
        snapshot: Optional[np.ndarray],
        config: RenderConfig,
    ) -> None:
        """
        Draw one frame into ``target`` in place.

        Args:
            target: RGBA image to draw into.
            signal: Current decoded signal.
            position: Playback position in seconds.
            snapshot: Frequency snapshot, or None when no analyzer is
                available (spectrum styles then draw only the background).
            config: Style, color preset, and transparency for this frame.
        """
        self.clear(target, config.transparent_background)

        if not math.isfinite(position):
            position = 0.0

        renderer = get_renderer(config.style)
        if renderer is None:
            return
        renderer(target, signal, position, snapshot, config.color_preset, self.constants)

    def render_frame(
        self,
        signal: DecodedSignal,
        position: float,
        snapshot: Optional[np.ndarray],
        config: RenderConfig,
    ) -> Image.Image:
        """Render into a fresh frame and return it."""
        frame = self.new_frame()
        self.render(frame, signal, position, snapshot, config)
        return frame
