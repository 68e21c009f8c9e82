"""Media file information utilities using FFprobe."""

import asyncio
import json
import subprocess

from reelsmith.config import get_settings
from reelsmith.exceptions import MediaProbeError


def _run_ffprobe(file_path: str, *args) -> dict:
    """Run ffprobe and return parsed JSON."""
    settings = get_settings()
    cmd = [
        settings.ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        *args,
        str(file_path),
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except FileNotFoundError as e:
        raise MediaProbeError(f"ffprobe not found: {settings.ffprobe_path}") from e
    if result.returncode != 0:
        raise MediaProbeError(f"ffprobe failed for {file_path}: {result.stderr}")

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise MediaProbeError(f"Failed to parse ffprobe output: {e}") from e


def get_media_duration(file_path: str) -> float:
    """
    Get media file duration in seconds.

    Args:
        file_path: Path to media file

    Returns:
        Duration in seconds

    Raises:
        MediaProbeError: If ffprobe fails or duration not found
    """
    data = _run_ffprobe(file_path, "-show_format")
    format_info = data.get("format", {})

    if "duration" not in format_info:
        raise MediaProbeError(f"Duration not found in: {file_path}")

    return float(format_info["duration"])


def has_audio_track(file_path: str) -> bool:
    """Check if media file has an audio track."""
    try:
        data = _run_ffprobe(file_path, "-show_streams", "-select_streams", "a")
        return len(data.get("streams", [])) > 0
    except MediaProbeError:
        return False


async def probe_duration(file_path: str) -> float:
    """Async wrapper around get_media_duration; ffprobe runs in a worker thread."""
    return await asyncio.to_thread(get_media_duration, str(file_path))
