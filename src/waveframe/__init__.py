"""Audio-synchronized waveform and spectrum visuals with video export."""

from waveframe.config import RenderConfig
from waveframe.core.signal import AudioDecoder, DecodedSignal
from waveframe.export import ExportJob, ExportPipeline, ExportStatus
from waveframe.session import Session
from waveframe.visualizers.compositor import StyleCompositor
from waveframe.visualizers.styles import RenderStyle

__version__ = "0.1.0"
__all__ = [
    "RenderConfig",
    "AudioDecoder",
    "DecodedSignal",
    "ExportJob",
    "ExportPipeline",
    "ExportStatus",
    "Session",
    "StyleCompositor",
    "RenderStyle",
]
