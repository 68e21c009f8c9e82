from reelsmith.schemas.caption import (
    CaptionRequest,
    CaptionResult,
    CaptionSegment,
    CaptionStyle,
    CaptionWord,
)
from reelsmith.schemas.composition import (
    CompositionRequest,
    ImageSlide,
    MultiImageRequest,
    Overlay,
    SingleImageRequest,
    StockClip,
    parse_composition_request,
    StockVideoRequest,
)
from reelsmith.schemas.job import Job, JobPatch, JobResult, JobStatus
from reelsmith.schemas.transcription import TranscriptionResult, WordTimestamp
from reelsmith.schemas.voiceover import SynthesisChunk, SynthesisRequest, SynthesisResult

__all__ = [
    "Job",
    "JobPatch",
    "JobResult",
    "JobStatus",
    "CompositionRequest",
    "SingleImageRequest",
    "MultiImageRequest",
    "StockVideoRequest",
    "ImageSlide",
    "StockClip",
    "Overlay",
    "parse_composition_request",
    "CaptionRequest",
    "CaptionResult",
    "CaptionSegment",
    "CaptionStyle",
    "CaptionWord",
    "SynthesisChunk",
    "SynthesisRequest",
    "SynthesisResult",
    "TranscriptionResult",
    "WordTimestamp",
]
