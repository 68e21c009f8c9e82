"""Video composition engine.

Three assembly strategies share one output profile (H.264 + AAC, yuv420p,
faststart MP4) and the shortest-stream policy: the final file is as long as
the shorter of the audio and visual tracks, never padded.

- single-image: one still looped for the audio duration, one ffmpeg pass
- multi-image: one fixed-duration clip per image, then concat + audio mux
- stock-video: existing clips concatenated in order, then audio mux
"""

import logging
import math
from pathlib import Path
from typing import Awaitable, Callable

from reelsmith.config import Settings, get_settings
from reelsmith.render.ffmpeg_command import FFmpegCommand, concat_list_line, write_concat_list
from reelsmith.render.runner import FFmpegRunner
from reelsmith.schemas.composition import (
    CompositionRequest,
    ImageSlide,
    MultiImageRequest,
    SingleImageRequest,
    StockVideoRequest,
)
from reelsmith.services.file_service import FileService
from reelsmith.utils.media_info import probe_duration

logger = logging.getLogger(__name__)

StageCallback = Callable[[int, str], None]

EVEN_SCALE = "scale=trunc(iw/2)*2:trunc(ih/2)*2"


def frame_filter(width: int, height: int) -> str:
    """Letterbox any source into a fixed frame so concatenated inputs agree."""
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2,setsar=1"
    )


def output_profile(settings: Settings) -> list[str]:
    return [
        "-c:v", "libx264",
        "-pix_fmt", "yuv420p",
        "-c:a", "aac",
        "-b:a", settings.render_audio_bitrate,
        "-shortest",
        "-movflags", "+faststart",
    ]


def build_single_image_command(
    image_path: str | Path,
    audio_path: str | Path,
    duration_s: float,
    output_path: str | Path,
    settings: Settings,
) -> list[str]:
    cmd = FFmpegCommand(output_path=str(output_path), ffmpeg_path=settings.ffmpeg_path)
    cmd.add_input(image_path, "-loop", "1", "-t", f"{duration_s:.3f}")
    cmd.add_input(audio_path)
    cmd.add_output_options(
        "-map", "0:v:0",
        "-map", "1:a:0",
        "-vf", EVEN_SCALE,
        "-tune", "stillimage",
        *output_profile(settings),
    )
    return cmd.build()


def build_image_clip_command(
    image_path: str | Path,
    duration_s: float,
    output_path: str | Path,
    settings: Settings,
) -> list[str]:
    cmd = FFmpegCommand(output_path=str(output_path), ffmpeg_path=settings.ffmpeg_path)
    cmd.add_input(image_path, "-loop", "1", "-t", f"{duration_s:.3f}")
    cmd.add_output_options(
        "-vf", frame_filter(settings.render_output_width, settings.render_output_height),
        "-r", str(settings.render_fps),
        "-c:v", "libx264",
        "-tune", "stillimage",
        "-preset", settings.render_preset,
        "-pix_fmt", "yuv420p",
        "-an",
    )
    return cmd.build()


def build_concat_mux_command(
    list_path: str | Path,
    audio_path: str | Path,
    output_path: str | Path,
    settings: Settings,
) -> list[str]:
    cmd = FFmpegCommand(output_path=str(output_path), ffmpeg_path=settings.ffmpeg_path)
    cmd.add_input(list_path, "-f", "concat", "-safe", "0")
    cmd.add_input(audio_path)
    cmd.add_output_options(
        "-map", "0:v:0",
        "-map", "1:a:0",
        "-vf", frame_filter(settings.render_output_width, settings.render_output_height),
        "-r", str(settings.render_fps),
        "-preset", settings.render_preset,
        *output_profile(settings),
    )
    return cmd.build()


def subtitles_filter(subtitle_path: str | Path) -> str:
    # Filter arguments treat ':' and quotes specially, even inside paths
    escaped = str(subtitle_path).replace("\\", "/").replace(":", "\\:").replace("'", "\\'")
    return f"subtitles='{escaped}'"


def build_burn_captions_command(
    video_path: str | Path,
    subtitle_path: str | Path,
    output_path: str | Path,
    settings: Settings,
) -> list[str]:
    cmd = FFmpegCommand(output_path=str(output_path), ffmpeg_path=settings.ffmpeg_path)
    cmd.add_input(video_path)
    cmd.add_output_options(
        "-vf", subtitles_filter(subtitle_path),
        "-c:v", "libx264",
        "-preset", settings.render_preset,
        "-pix_fmt", "yuv420p",
        "-c:a", "copy",
        "-movflags", "+faststart",
    )
    return cmd.build()


def plan_slide_durations(slides: list[ImageSlide], audio_duration: float) -> list[float]:
    """Per-image clip durations; the last clip absorbs any shortfall against the audio."""
    durations = [slide.duration for slide in slides]
    shortfall = audio_duration - sum(durations)
    if shortfall > 0:
        durations[-1] += shortfall
    return durations


class CompositionEngine:
    """Dispatches a composition request to its flow strategy."""

    def __init__(
        self,
        runner: FFmpegRunner,
        file_service: FileService,
        settings: Settings | None = None,
    ):
        self.runner = runner
        self.file_service = file_service
        self.settings = settings or get_settings()

    async def compose(
        self,
        request: CompositionRequest,
        on_progress: StageCallback | None = None,
        job_id: str | None = None,
    ) -> Path:
        """Render the request's visuals against its audio.

        All asset references in the request must already be local paths.
        """
        strategy = COMPOSITION_STRATEGIES.get(request.flow_type)
        if strategy is None:
            raise ValueError(f"Unsupported flow type: {request.flow_type}")

        def report(progress: int, stage: str) -> None:
            if on_progress:
                on_progress(progress, stage)

        output_path = self.file_service.temp_file_path("mp4", job_id)
        logger.info(f"[COMPOSE] {request.flow_type} -> {output_path.name}")
        await strategy(self, request, output_path, report, job_id)
        report(100, "Composition complete")
        return output_path

    async def burn_captions(
        self,
        video_path: Path,
        subtitle_path: Path,
        job_id: str | None = None,
    ) -> Path:
        output_path = self.file_service.temp_file_path("mp4", job_id)
        cmd = build_burn_captions_command(video_path, subtitle_path, output_path, self.settings)
        await self.runner.run(cmd, label="burn captions")
        return output_path

    async def _compose_single_image(
        self,
        request: SingleImageRequest,
        output_path: Path,
        report: StageCallback,
        job_id: str | None,
    ) -> None:
        cmd = build_single_image_command(
            request.image, request.audio_path, request.audio_duration, output_path, self.settings
        )
        report(0, "Rendering still image")
        await self.runner.run(
            cmd,
            duration_s=request.audio_duration,
            on_progress=lambda pct: report(min(99, pct), "Rendering still image"),
            label="single-image",
        )

    async def _compose_multi_image(
        self,
        request: MultiImageRequest,
        output_path: Path,
        report: StageCallback,
        job_id: str | None,
    ) -> None:
        durations = plan_slide_durations(request.images, request.audio_duration)
        total = len(request.images)
        clip_paths: list[Path] = []
        list_path = self.file_service.temp_file_path("txt", job_id)

        try:
            for i, (slide, duration) in enumerate(zip(request.images, durations)):
                report(math.floor(i / total * 50), f"Rendering clip {i + 1}/{total}")
                clip_path = self.file_service.temp_file_path("mp4", job_id)
                clip_paths.append(clip_path)
                await self.runner.run(
                    build_image_clip_command(slide.image, duration, clip_path, self.settings),
                    label=f"clip {i + 1}/{total}",
                )

            write_concat_list(clip_paths, list_path)

            report(50, "Concatenating clips")
            await self.runner.run(
                build_concat_mux_command(list_path, request.audio_path, output_path, self.settings),
                duration_s=request.audio_duration,
                on_progress=lambda pct: report(min(99, 50 + pct // 2), "Concatenating clips"),
                label="multi-image concat",
            )
        finally:
            for path in [*clip_paths, list_path]:
                self.file_service.cleanup_file(path)

    async def _compose_stock_video(
        self,
        request: StockVideoRequest,
        output_path: Path,
        report: StageCallback,
        job_id: str | None,
    ) -> None:
        list_path = self.file_service.temp_file_path("txt", job_id)
        try:
            lines = await self._stock_concat_lines(request)
            list_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
            report(0, "Concatenating stock clips")
            await self.runner.run(
                build_concat_mux_command(list_path, request.audio_path, output_path, self.settings),
                duration_s=request.audio_duration,
                on_progress=lambda pct: report(min(99, pct), "Concatenating stock clips"),
                label="stock-video concat",
            )
        finally:
            self.file_service.cleanup_file(list_path)

    async def _stock_concat_lines(self, request: StockVideoRequest) -> list[str]:
        entries: list[list[str]] = []
        known_total = 0.0
        for clip in request.videos:
            entry = [concat_list_line(clip.video)]
            start = clip.start_time or 0.0
            if start > 0:
                entry.append(f"inpoint {start:.3f}")
            if clip.duration is not None:
                entry.append(f"outpoint {start + clip.duration:.3f}")
                known_total += clip.duration
            elif request.loop:
                known_total += max(0.0, await probe_duration(clip.video) - start)
            entries.append(entry)

        repeats = 1
        if request.loop and 0 < known_total < request.audio_duration:
            repeats = math.ceil(request.audio_duration / known_total)
            logger.info(f"[COMPOSE] Looping {len(entries)} stock clips x{repeats} to cover audio")

        return [line for _ in range(repeats) for entry in entries for line in entry]


COMPOSITION_STRATEGIES: dict[
    str,
    Callable[[CompositionEngine, CompositionRequest, Path, StageCallback, str | None], Awaitable[None]],
] = {
    "single-image": CompositionEngine._compose_single_image,
    "multi-image": CompositionEngine._compose_multi_image,
    "stock-video": CompositionEngine._compose_stock_video,
}
