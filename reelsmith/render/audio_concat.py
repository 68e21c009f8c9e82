import logging
from pathlib import Path

from reelsmith.config import Settings, get_settings
from reelsmith.render.ffmpeg_command import FFmpegCommand, write_concat_list
from reelsmith.render.runner import FFmpegRunner
from reelsmith.services.file_service import FileService

logger = logging.getLogger(__name__)


def build_audio_concat_command(
    list_path: str | Path,
    output_path: str | Path,
    settings: Settings,
) -> list[str]:
    cmd = FFmpegCommand(output_path=str(output_path), ffmpeg_path=settings.ffmpeg_path)
    cmd.add_input(list_path, "-f", "concat", "-safe", "0")
    # Chunks may differ in sample rate/format, so re-encode instead of stream copy
    cmd.add_output_options("-c:a", "libmp3lame", "-q:a", "2")
    return cmd.build()


async def concatenate_audio(
    audio_files: list[Path],
    runner: FFmpegRunner,
    file_service: FileService,
    settings: Settings | None = None,
) -> Path:
    """Join audio files in order into one MP3. A single file is returned unchanged."""
    if not audio_files:
        raise ValueError("No audio files to concatenate")
    if len(audio_files) == 1:
        return audio_files[0]

    settings = settings or get_settings()
    output_path = file_service.temp_file_path("mp3")
    list_path = write_concat_list(audio_files, file_service.temp_file_path("txt"))
    try:
        await runner.run(
            build_audio_concat_command(list_path, output_path, settings),
            label=f"audio concat ({len(audio_files)} files)",
        )
    finally:
        file_service.cleanup_file(list_path)
    logger.info(f"[AUDIO] Concatenated {len(audio_files)} files -> {output_path.name}")
    return output_path
