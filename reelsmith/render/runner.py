"""Runs ffmpeg commands as asyncio subprocesses."""

import asyncio
import logging
from typing import Callable

from reelsmith.config import Settings, get_settings
from reelsmith.exceptions import TranscodeError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


def parse_progress_line(line: str, duration_s: float) -> int | None:
    """Turn an `out_time_us=` line from `-progress pipe:1` into a 0-100 percentage."""
    if not line.startswith(("out_time_us=", "out_time_ms=")) or duration_s <= 0:
        return None
    try:
        # out_time_ms is also reported in microseconds by ffmpeg
        time_us = int(line.split("=", 1)[1])
    except ValueError:
        return None
    if time_us < 0:
        return None
    return max(0, min(100, int(time_us / 1_000_000 / duration_s * 100)))


class FFmpegRunner:
    """Executes ffmpeg with a shared cap on concurrently running processes."""

    def __init__(self, settings: Settings | None = None, max_concurrent: int | None = None):
        self.settings = settings or get_settings()
        limit = max_concurrent or self.settings.max_concurrent_transcodes
        self._semaphore = asyncio.Semaphore(max(1, limit))

    async def run(
        self,
        cmd: list[str],
        *,
        duration_s: float | None = None,
        on_progress: ProgressCallback | None = None,
        label: str = "ffmpeg",
    ) -> None:
        """Run a command built by FFmpegCommand.build().

        When both duration_s and on_progress are given, `-progress pipe:1` is
        inserted before the output path and on_progress receives the raw
        0-100 percentage as ffmpeg advances.

        Raises:
            TranscodeError: on a nonzero exit or when ffmpeg cannot be started
        """
        track_progress = on_progress is not None and duration_s is not None and duration_s > 0
        if track_progress:
            cmd = cmd.copy()
            cmd.insert(-1, "-progress")
            cmd.insert(-1, "pipe:1")
            cmd.insert(-1, "-nostats")

        logger.info(f"[FFMPEG] {label}: {' '.join(cmd)}")

        async with self._semaphore:
            try:
                proc = await asyncio.create_subprocess_exec(
                    *cmd,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except FileNotFoundError as e:
                raise TranscodeError(f"ffmpeg executable not found: {cmd[0]}") from e

            # Drain stderr concurrently so a chatty ffmpeg never blocks on a full pipe
            stderr_task = asyncio.create_task(proc.stderr.read())
            last_pct = -1
            async for raw_line in proc.stdout:
                if not track_progress:
                    continue
                line = raw_line.decode("utf-8", errors="replace").strip()
                pct = parse_progress_line(line, duration_s)
                if pct is not None and pct > last_pct:
                    last_pct = pct
                    on_progress(pct)

            stderr_output = await stderr_task
            returncode = await proc.wait()

        if returncode != 0:
            stderr_text = stderr_output.decode("utf-8", errors="replace")
            logger.error(f"[FFMPEG] {label} failed with code {returncode}: {stderr_text[-1000:]}")
            raise TranscodeError(
                f"{label} failed with exit code {returncode}",
                stderr=stderr_text,
                returncode=returncode,
            )
        logger.info(f"[FFMPEG] {label} finished")
