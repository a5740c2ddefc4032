"""Color presets and render styles."""

from waveframe.visualizers.colors import PRESETS, ColorPreset, get_preset
from waveframe.visualizers.styles import RenderStyle

__all__ = ["PRESETS", "ColorPreset", "get_preset", "RenderStyle"]
