"""Tests for ordered audio chunk concatenation."""

from pathlib import Path

import pytest

from reelsmith.exceptions import TranscodeError
from reelsmith.render.audio_concat import build_audio_concat_command, concatenate_audio


class ListCapturingRunner:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.cmds: list[list[str]] = []
        self.lists: list[list[str]] = []

    async def run(self, cmd, *, duration_s=None, on_progress=None, label="ffmpeg"):
        self.cmds.append(cmd)
        self.lists.append(Path(cmd[cmd.index("-i") + 1]).read_text().splitlines())
        if self.error:
            raise self.error
        Path(cmd[-1]).write_bytes(b"mp3")


class TestAudioConcat:
    def test_command_reencodes_to_mp3(self, settings):
        cmd = build_audio_concat_command("/t/list.txt", "/t/out.mp3", settings)
        assert cmd[:8] == ["ffmpeg", "-y", "-f", "concat", "-safe", "0", "-i", "/t/list.txt"]
        assert cmd[cmd.index("-c:a") + 1] == "libmp3lame"
        assert cmd[cmd.index("-q:a") + 1] == "2"
        assert cmd[-1] == "/t/out.mp3"

    @pytest.mark.asyncio
    async def test_single_file_returned_unchanged(self, file_service, settings):
        only = file_service.temp_dir / "only.wav"
        runner = ListCapturingRunner()
        assert await concatenate_audio([only], runner, file_service, settings) == only
        assert runner.cmds == []

    @pytest.mark.asyncio
    async def test_empty_input_rejected(self, file_service, settings):
        with pytest.raises(ValueError):
            await concatenate_audio([], ListCapturingRunner(), file_service, settings)

    @pytest.mark.asyncio
    async def test_files_joined_in_order(self, file_service, settings):
        chunks = [file_service.temp_dir / f"chunk-{i}.wav" for i in range(3)]
        runner = ListCapturingRunner()

        output = await concatenate_audio(chunks, runner, file_service, settings)

        assert output.suffix == ".mp3"
        assert output.exists()
        assert runner.lists[0] == [f"file '{p}'" for p in chunks]
        assert list(file_service.temp_dir.glob("*.txt")) == []

    @pytest.mark.asyncio
    async def test_list_removed_on_failure(self, file_service, settings):
        chunks = [file_service.temp_dir / f"chunk-{i}.wav" for i in range(2)]
        runner = ListCapturingRunner(error=TranscodeError("concat failed", returncode=1))

        with pytest.raises(TranscodeError):
            await concatenate_audio(chunks, runner, file_service, settings)

        assert list(file_service.temp_dir.glob("*.txt")) == []
