"""
Caption generation.

Two timing sources:
- transcription-driven: real word timestamps are grouped into short segments
- estimation-driven: the script is split at punctuation and timed by its
  share of characters over the voiceover duration

Either way the segments are serialized to SRT and ASS.
"""

import logging
import re
from pathlib import Path
from typing import Literal

from reelsmith.exceptions import ValidationError
from reelsmith.render.subtitles import generate_ass, generate_srt
from reelsmith.schemas.caption import (
    CaptionRequest,
    CaptionResult,
    CaptionSegment,
    CaptionStyle,
    CaptionWord,
)
from reelsmith.schemas.transcription import WordTimestamp
from reelsmith.services.file_service import FileService

logger = logging.getLogger(__name__)

# Transcription-driven grouping limits
MAX_WORDS_PER_SEGMENT = 5
MAX_CHARS_PER_SEGMENT = 40
PAUSE_THRESHOLD_S = 0.4

# Estimation-driven timing
MIN_SEGMENT_DURATION_S = 1.0
SENTENCE_PAUSE_S = 0.3
CLAUSE_PAUSE_S = 0.1

_SENTENCE_END = re.compile(r"([.!?])\s+")
_CLAUSE_END = re.compile(r"([,;:])\s+")

DEFAULT_CAPTION_STYLES: dict[str, CaptionStyle] = {
    "classic": CaptionStyle(
        font_size="medium", color="#FFFFFF", background_color="#000000",
        position="bottom", font_family="Arial",
    ),
    "modern": CaptionStyle(
        font_size="large", color="#FFFFFF", background_color="#1a1a1a",
        position="bottom", font_family="Helvetica",
    ),
    "minimal": CaptionStyle(
        font_size="small", color="#FFFFFF", position="bottom", font_family="Arial",
    ),
    "dramatic": CaptionStyle(
        font_size="large", color="#FFFF00", background_color="#000000",
        position="center", font_family="Impact",
    ),
}


def get_caption_style(style: CaptionStyle | str | None) -> CaptionStyle:
    """Resolve a preset name or explicit style; None gives the classic preset."""
    if style is None:
        return DEFAULT_CAPTION_STYLES["classic"].model_copy()
    if isinstance(style, CaptionStyle):
        return style
    preset = DEFAULT_CAPTION_STYLES.get(style.lower())
    if preset is None:
        raise ValidationError(f"Unknown caption style preset: {style}", field="caption_style")
    return preset.model_copy()


def split_script(script: str) -> list[str]:
    """Split at sentence punctuation, then clause punctuation, keeping the marks."""
    marked = _SENTENCE_END.sub(r"\1|", script)
    marked = _CLAUSE_END.sub(r"\1|", marked)
    return [piece.strip() for piece in marked.split("|") if piece.strip()]


def _distribute_words(text: str, start: float, span: float) -> list[CaptionWord]:
    words = text.split()
    total_chars = sum(len(w) for w in words)
    if not words or total_chars == 0:
        return []
    result = []
    cursor = start
    for word in words:
        duration = span * len(word) / total_chars
        result.append(CaptionWord(word=word, start_time=cursor, end_time=cursor + duration))
        cursor += duration
    return result


def _scale_segment(segment: CaptionSegment, factor: float) -> CaptionSegment:
    return CaptionSegment(
        text=segment.text,
        start_time=segment.start_time * factor,
        end_time=segment.end_time * factor,
        words=[
            CaptionWord(word=w.word, start_time=w.start_time * factor, end_time=w.end_time * factor)
            for w in segment.words
        ],
    )


def estimate_segments(script: str, audio_duration: float) -> list[CaptionSegment]:
    """Time script pieces by character share; the last segment ends at audio_duration."""
    pieces = split_script(script)
    if not pieces or audio_duration <= 0:
        return []

    total_chars = sum(len(p) for p in pieces)
    segments: list[CaptionSegment] = []
    current = 0.0
    for piece in pieces:
        duration = max(audio_duration * len(piece) / total_chars, MIN_SEGMENT_DURATION_S)
        pause = SENTENCE_PAUSE_S if piece[-1] in ".!?" else CLAUSE_PAUSE_S
        span = duration - pause
        segments.append(
            CaptionSegment(
                text=piece,
                start_time=current,
                end_time=current + span,
                words=_distribute_words(piece, current, span),
            )
        )
        current += duration

    last_end = segments[-1].end_time
    if last_end > audio_duration:
        # Minimum durations pushed us past the audio: compress everything
        factor = audio_duration / last_end
        segments = [_scale_segment(seg, factor) for seg in segments]
        segments[-1].end_time = audio_duration
    elif last_end < audio_duration:
        segments[-1].end_time = audio_duration
    return segments


def group_word_timestamps(words: list[WordTimestamp]) -> list[CaptionSegment]:
    """Group transcribed words into short caption segments."""
    segments: list[CaptionSegment] = []
    current: list[WordTimestamp] = []

    def flush() -> None:
        if current:
            segments.append(
                CaptionSegment(
                    text=" ".join(w.word for w in current),
                    start_time=current[0].start_time,
                    end_time=current[-1].end_time,
                    words=[
                        CaptionWord(word=w.word, start_time=w.start_time, end_time=w.end_time)
                        for w in current
                    ],
                )
            )
            current.clear()

    for raw in words:
        word = raw.model_copy(update={"word": raw.word.strip()})
        if not word.word:
            continue
        if current:
            current_text = " ".join(w.word for w in current)
            potential_text = f"{current_text} {word.word}"
            gap = word.start_time - current[-1].end_time
            if (
                len(current) >= MAX_WORDS_PER_SEGMENT
                or len(potential_text) >= MAX_CHARS_PER_SEGMENT
                or gap > PAUSE_THRESHOLD_S
                or current_text[-1] in ".!?"
            ):
                flush()
        current.append(word)
    flush()
    return segments


class CaptionService:
    def __init__(self, file_service: FileService):
        self.file_service = file_service

    def generate(
        self,
        script: str,
        audio_duration: float,
        style: CaptionStyle | str | None = None,
        word_timestamps: list[WordTimestamp] | None = None,
    ) -> CaptionResult:
        resolved_style = get_caption_style(style)
        if word_timestamps:
            segments = group_word_timestamps(word_timestamps)
            logger.info(f"[CAPTIONS] {len(segments)} segments from {len(word_timestamps)} word timestamps")
        else:
            segments = estimate_segments(script, audio_duration)
            logger.info(f"[CAPTIONS] {len(segments)} estimated segments over {audio_duration:.2f}s")
        return CaptionResult(
            segments=segments,
            srt_text=generate_srt(segments),
            ass_text=generate_ass(segments, resolved_style),
        )

    def generate_for_request(self, request: CaptionRequest) -> CaptionResult:
        return self.generate(
            request.script,
            request.voiceover_duration,
            style=request.style,
            word_timestamps=request.word_timestamps,
        )

    def save_caption_file(
        self,
        segments: list[CaptionSegment],
        style: CaptionStyle | str | None = None,
        fmt: Literal["srt", "ass"] = "ass",
        job_id: str | None = None,
    ) -> Path:
        if fmt == "srt":
            content = generate_srt(segments)
        elif fmt == "ass":
            content = generate_ass(segments, get_caption_style(style))
        else:
            raise ValidationError(f"Unsupported caption format: {fmt}", field="format")
        path = self.file_service.temp_file_path(fmt, job_id)
        path.write_text(content, encoding="utf-8")
        return path
