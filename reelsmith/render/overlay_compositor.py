"""Blends video overlays onto a composed base video.

Overlays are chained in declaration order: each one is scaled to the
running composite with scale2ref and blended on top of it. Only `video`
overlays take part; `image` overlays are skipped with a warning.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from reelsmith.config import Settings, get_settings
from reelsmith.render.composition import EVEN_SCALE
from reelsmith.render.ffmpeg_command import FFmpegCommand
from reelsmith.render.runner import FFmpegRunner
from reelsmith.schemas.composition import Overlay
from reelsmith.services.file_service import FileService
from reelsmith.utils.media_info import probe_duration

logger = logging.getLogger(__name__)

# Request blend modes -> ffmpeg blend filter modes
BLEND_MODES: dict[str, str] = {
    "normal": "normal",
    "multiply": "multiply",
    "screen": "screen",
    "overlay": "overlay",
    "darken": "darken",
    "lighten": "lighten",
    "color-dodge": "dodge",
    "color-burn": "burn",
}


def ffmpeg_blend_mode(mode: str | None) -> str:
    return BLEND_MODES.get((mode or "normal").lower(), "normal")


def clamp_opacity(value: float | None) -> float:
    if value is None:
        return 1.0
    return max(0.0, min(1.0, float(value)))


def blend_opacity(mode: str, opacity: float) -> float:
    """all_opacity for a blend whose top input is the running composite.

    ffmpeg's normal mode weights the top input by all_opacity, so the overlay
    weight is its complement. The other modes apply all_opacity to the blended
    result over the top input, which is already the overlay weight.
    """
    if mode == "normal":
        return 1.0 - opacity
    return opacity


@dataclass
class OverlayLayer:
    """A resolved overlay ready for the filter graph."""

    path: Path
    blend_mode: str
    opacity: float


def select_overlay_layers(overlays: list[Overlay]) -> list[OverlayLayer]:
    layers: list[OverlayLayer] = []
    for overlay in overlays:
        if overlay.type != "video":
            logger.warning(
                f"[OVERLAY] Skipping {overlay.type} overlay {overlay.name or overlay.file_path}: "
                "only video overlays are blended"
            )
            continue
        path = Path(overlay.file_path)
        if not path.is_file():
            logger.warning(f"[OVERLAY] Skipping overlay, file missing: {path}")
            continue
        layers.append(
            OverlayLayer(
                path=path,
                blend_mode=ffmpeg_blend_mode(overlay.blend_mode),
                opacity=clamp_opacity(overlay.opacity),
            )
        )
    return layers


def build_overlay_command(
    base_path: str | Path,
    layers: list[OverlayLayer],
    duration_s: float,
    output_path: str | Path,
    settings: Settings,
) -> list[str]:
    cmd = FFmpegCommand(output_path=str(output_path), ffmpeg_path=settings.ffmpeg_path)
    cmd.add_input(base_path)
    for layer in layers:
        cmd.add_input(layer.path, "-stream_loop", "-1")

    graph = cmd.filter_graph
    graph.add(["0:v"], EVEN_SCALE, ["base0"])
    current = "base0"
    for i, layer in enumerate(layers):
        graph.add([f"{i + 1}:v"], EVEN_SCALE, [f"sov{i}"])
        graph.add([f"sov{i}", current], "scale2ref", [f"ov{i}", f"ref{i}"])
        current = f"base{i + 1}"
        graph.add(
            [f"ref{i}", f"ov{i}"],
            f"blend=all_mode='{layer.blend_mode}':all_opacity={blend_opacity(layer.blend_mode, layer.opacity):g}",
            [current],
        )
    graph.add([current], "format=yuv420p", ["outv"])

    cmd.add_output_options(
        "-map", "[outv]",
        "-map", "0:a?",
        "-c:v", "libx264",
        "-preset", settings.render_preset,
        "-c:a", "aac",
        "-b:a", settings.render_audio_bitrate,
        "-t", f"{duration_s:.3f}",
        "-shortest",
        "-movflags", "+faststart",
    )
    return cmd.build()


class OverlayCompositor:
    def __init__(
        self,
        runner: FFmpegRunner,
        file_service: FileService,
        settings: Settings | None = None,
    ):
        self.runner = runner
        self.file_service = file_service
        self.settings = settings or get_settings()

    async def apply_overlays(
        self,
        base_video_path: Path,
        overlays: list[Overlay],
        on_progress: Callable[[int, str], None] | None = None,
        job_id: str | None = None,
    ) -> Path:
        """Blend overlays onto the base video; returns the base path when none apply."""
        layers = select_overlay_layers(overlays)
        if not layers:
            return base_video_path

        duration_s = await probe_duration(base_video_path)
        output_path = self.file_service.temp_file_path("mp4", job_id)
        cmd = build_overlay_command(base_video_path, layers, duration_s, output_path, self.settings)
        logger.info(f"[OVERLAY] Blending {len(layers)} overlays onto {Path(base_video_path).name}")

        def report(pct: int) -> None:
            if on_progress:
                on_progress(min(99, pct), "Applying overlays")

        await self.runner.run(cmd, duration_s=duration_s, on_progress=report, label="overlays")
        if on_progress:
            on_progress(100, "Overlays applied")
        return output_path
