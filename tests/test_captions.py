"""Tests for caption timing and subtitle serialization."""

import pytest

from reelsmith.exceptions import ValidationError
from reelsmith.render.subtitles import (
    format_ass_time,
    format_srt_time,
    generate_ass,
    generate_srt,
    hex_to_ass_bgr,
)
from reelsmith.schemas.caption import CaptionRequest, CaptionSegment, CaptionStyle
from reelsmith.schemas.transcription import WordTimestamp
from reelsmith.services.caption_service import (
    DEFAULT_CAPTION_STYLES,
    CaptionService,
    estimate_segments,
    get_caption_style,
    group_word_timestamps,
    split_script,
)


def _words(spec: list[tuple[str, float, float]]) -> list[WordTimestamp]:
    return [WordTimestamp(word=w, start_time=s, end_time=e) for w, s, e in spec]


class TestSplitScript:
    def test_splits_on_sentence_and_clause_punctuation(self):
        assert split_script("Hello world. This is it, really! Done?") == [
            "Hello world.",
            "This is it,",
            "really!",
            "Done?",
        ]

    def test_blank_script(self):
        assert split_script("   ") == []


class TestEstimatedTiming:
    def test_last_segment_ends_at_audio_duration(self):
        segments = estimate_segments("First sentence here. Second one, with a clause. End.", 12.0)
        assert segments[0].start_time == 0.0
        assert segments[-1].end_time == pytest.approx(12.0)

    def test_segments_ordered_and_non_overlapping(self):
        segments = estimate_segments("One. Two, three. Four five six seven. Eight!", 9.0)
        for prev, cur in zip(segments, segments[1:]):
            assert prev.end_time <= cur.start_time + 1e-9
            assert prev.start_time < cur.start_time

    def test_pause_buffers(self):
        segments = estimate_segments("Alpha beta gamma. Delta epsilon zeta, eta theta iota.", 100.0)
        first = segments[0]
        second = segments[1]
        # Sentence end keeps a 0.3s gap, clause end 0.1s
        assert second.start_time - first.end_time == pytest.approx(0.3)
        assert segments[2].start_time - second.end_time == pytest.approx(0.1)

    def test_overflow_is_rescaled_into_audio(self):
        # Many tiny pieces each floored to 1s overflow a 3s track
        segments = estimate_segments("A. B. C. D. E. F.", 3.0)
        assert len(segments) == 6
        assert segments[-1].end_time == pytest.approx(3.0)
        assert all(seg.end_time <= 3.0 + 1e-9 for seg in segments)
        for word in segments[-1].words:
            assert word.end_time <= 3.0 + 1e-9

    def test_words_spread_by_length(self):
        segment = estimate_segments("aa bbbb", 10.0)[0]
        short, long = segment.words
        assert (long.end_time - long.start_time) == pytest.approx(2 * (short.end_time - short.start_time))


class TestTranscriptionGrouping:
    def test_pause_forces_boundary(self):
        words = _words([
            ("one", 0.0, 0.3),
            ("two", 0.35, 0.6),
            ("three", 0.65, 0.9),
            ("four", 1.4, 1.7),
            ("five", 1.75, 2.0),
        ])
        segments = group_word_timestamps(words)
        assert [s.text for s in segments] == ["one two three", "four five"]
        assert segments[0].end_time == 0.9
        assert segments[1].start_time == 1.4

    def test_max_words(self):
        words = _words([(f"w{i}", i * 0.2, i * 0.2 + 0.15) for i in range(7)])
        segments = group_word_timestamps(words)
        assert [len(s.words) for s in segments] == [5, 2]

    def test_max_chars(self):
        words = _words([("abcdefghijklmnop", 0, 0.1), ("qrstuvwxyzabcdef", 0.1, 0.2), ("ghijklmnopq", 0.2, 0.3)])
        segments = group_word_timestamps(words)
        assert len(segments) == 2

    def test_sentence_end(self):
        words = _words([("Hi.", 0, 0.2), ("There", 0.25, 0.5)])
        assert [s.text for s in group_word_timestamps(words)] == ["Hi.", "There"]

    def test_whisper_leading_spaces_trimmed(self):
        words = _words([(" Hello", 0, 0.2), (" world", 0.25, 0.5)])
        assert group_word_timestamps(words)[0].text == "Hello world"


class TestSubtitleFormats:
    def test_srt_time(self):
        assert format_srt_time(3723.4567) == "01:02:03,456"
        assert format_srt_time(0) == "00:00:00,000"

    def test_ass_time(self):
        assert format_ass_time(3723.4567) == "1:02:03.45"
        assert format_ass_time(5.5) == "0:00:05.50"

    def test_hex_to_bgr(self):
        assert hex_to_ass_bgr("#FF8800") == "0088FF"
        assert hex_to_ass_bgr("#1a2b3c") == "3C2B1A"

    def test_srt_document(self):
        segments = [
            CaptionSegment(text="Hello", start_time=0.0, end_time=1.5),
            CaptionSegment(text="World", start_time=1.5, end_time=3.0),
        ]
        assert generate_srt(segments) == (
            "1\n00:00:00,000 --> 00:00:01,500\nHello\n"
            "\n"
            "2\n00:00:01,500 --> 00:00:03,000\nWorld\n"
        )

    def test_ass_document(self):
        segments = [CaptionSegment(text="Hello", start_time=0.0, end_time=1.5)]
        ass = generate_ass(segments, DEFAULT_CAPTION_STYLES["dramatic"])
        assert "PlayResX: 1920" in ass
        assert "PlayResY: 1080" in ass
        assert "Style: Default,Impact,28,&H0000FFFF,&H0000FFFF,&H00000000,&H80000000," in ass
        # Alignment 5 = center
        assert ",1,3,1,5,50,50,30,1" in ass
        assert "Dialogue: 0,0:00:00.00,0:00:01.50,Default,,0,0,0,,Hello" in ass

    def test_ass_defaults(self):
        ass = generate_ass([], CaptionStyle())
        assert "Style: Default,Arial,22,&H00FFFFFF,&H00FFFFFF,&H00000000,&H80000000," in ass
        assert ",1,2,1,2,50,50,30,1" in ass


class TestCaptionService:
    def test_presets(self):
        assert get_caption_style("modern").font_family == "Helvetica"
        assert get_caption_style(None).font_family == "Arial"
        with pytest.raises(ValidationError):
            get_caption_style("neon")

    def test_generate_estimated(self, file_service):
        result = CaptionService(file_service).generate("Hello there. General Kenobi!", 4.0, style="classic")
        assert len(result.segments) == 2
        assert result.srt_text.startswith("1\n00:00:00,000 --> ")
        assert "[Events]" in result.ass_text

    def test_generate_from_word_timestamps(self, file_service):
        request = CaptionRequest(
            script="ignored",
            voiceover_duration=2.0,
            word_timestamps=_words([("a", 0, 0.2), ("b", 1.0, 1.2)]),
        )
        result = CaptionService(file_service).generate_for_request(request)
        assert [s.text for s in result.segments] == ["a", "b"]

    def test_save_caption_file(self, file_service):
        segments = [CaptionSegment(text="Hi", start_time=0, end_time=1)]
        service = CaptionService(file_service)
        srt_path = service.save_caption_file(segments, fmt="srt")
        ass_path = service.save_caption_file(segments, "minimal", fmt="ass", job_id="job-1")
        assert srt_path.suffix == ".srt"
        assert srt_path.read_text().startswith("1\n")
        assert ass_path.parent == file_service.temp_dir
        assert ",18," in ass_path.read_text()
        assert ass_path in file_service.tracked_files("job-1")
