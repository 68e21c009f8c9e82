from pydantic import BaseModel, Field


class SynthesisChunk(BaseModel):
    index: int
    text: str


class SynthesisRequest(BaseModel):
    text: str = Field(min_length=1)
    voice: str | None = None
    model: str | None = None


class SynthesisResult(BaseModel):
    audio_path: str
    duration: float
    chunked: bool
    chunk_count: int
