"""Tests for the ffmpeg command model, concat lists and progress parsing."""

from pathlib import Path

from reelsmith.render.ffmpeg_command import (
    FFmpegCommand,
    FilterGraph,
    concat_list_line,
    write_concat_list,
)
from reelsmith.render.runner import parse_progress_line


class TestFFmpegCommand:
    def test_build_orders_inputs_filters_outputs(self):
        cmd = FFmpegCommand(output_path="out.mp4", ffmpeg_path="/usr/bin/ffmpeg")
        assert cmd.add_input("a.png", "-loop", "1") == 0
        assert cmd.add_input("b.mp3") == 1
        cmd.filter_graph.add(["0:v"], "format=yuv420p", ["v"])
        cmd.add_output_options("-map", "[v]")

        assert cmd.build() == [
            "/usr/bin/ffmpeg", "-y",
            "-loop", "1", "-i", "a.png",
            "-i", "b.mp3",
            "-filter_complex", "[0:v]format=yuv420p[v]",
            "-map", "[v]",
            "out.mp4",
        ]

    def test_no_filter_graph_when_empty(self):
        cmd = FFmpegCommand(output_path="out.mp4")
        cmd.add_input("in.mp4")
        assert "-filter_complex" not in cmd.build()

    def test_filter_graph_joins_chains(self):
        graph = FilterGraph()
        graph.add(["0:v"], "scale=2:2", ["a"]).add(["a", "1:v"], "blend", ["b"])
        assert graph.render() == "[0:v]scale=2:2[a];[a][1:v]blend[b]"


class TestConcatList:
    def test_plain_path(self):
        assert concat_list_line("/tmp/clip.mp4") == "file '/tmp/clip.mp4'"

    def test_quote_escaping(self):
        assert concat_list_line("/tmp/it's.mp4") == "file '/tmp/it'\\''s.mp4'"

    def test_backslashes_become_forward_slashes(self):
        assert concat_list_line("C:\\media\\a.mp4") == "file 'C:/media/a.mp4'"

    def test_write_concat_list(self, tmp_path: Path):
        list_path = write_concat_list([tmp_path / "a.mp3", tmp_path / "b.mp3"], tmp_path / "list.txt")
        lines = list_path.read_text().splitlines()
        assert lines == [f"file '{tmp_path / 'a.mp3'}'", f"file '{tmp_path / 'b.mp3'}'"]


class TestProgressParsing:
    def test_out_time_us(self):
        assert parse_progress_line("out_time_us=5000000", 10.0) == 50

    def test_clamped_to_100(self):
        assert parse_progress_line("out_time_us=12000000", 10.0) == 100

    def test_ignores_other_lines(self):
        assert parse_progress_line("frame=120", 10.0) is None
        assert parse_progress_line("progress=continue", 10.0) is None

    def test_ignores_bad_values(self):
        assert parse_progress_line("out_time_us=N/A", 10.0) is None
        assert parse_progress_line("out_time_us=-1", 10.0) is None
        assert parse_progress_line("out_time_us=100", 0) is None
