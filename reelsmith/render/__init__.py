from reelsmith.render.composition import COMPOSITION_STRATEGIES, CompositionEngine
from reelsmith.render.ffmpeg_command import FFmpegCommand, FilterGraph
from reelsmith.render.overlay_compositor import OverlayCompositor
from reelsmith.render.runner import FFmpegRunner

__all__ = [
    "COMPOSITION_STRATEGIES",
    "CompositionEngine",
    "FFmpegCommand",
    "FilterGraph",
    "FFmpegRunner",
    "OverlayCompositor",
]
