from typing import Literal

from pydantic import BaseModel, Field

from reelsmith.schemas.transcription import WordTimestamp


class CaptionWord(BaseModel):
    word: str
    start_time: float
    end_time: float


class CaptionSegment(BaseModel):
    text: str
    start_time: float
    end_time: float
    words: list[CaptionWord] = Field(default_factory=list)


class CaptionStyle(BaseModel):
    font_size: Literal["small", "medium", "large"] = "medium"
    color: str = "#FFFFFF"
    background_color: str | None = None
    position: Literal["top", "center", "bottom"] = "bottom"
    font_family: str | None = None


class CaptionRequest(BaseModel):
    script: str
    voiceover_duration: float = Field(gt=0)
    style: CaptionStyle | None = None
    word_timestamps: list[WordTimestamp] | None = None


class CaptionResult(BaseModel):
    segments: list[CaptionSegment]
    srt_text: str
    ass_text: str
