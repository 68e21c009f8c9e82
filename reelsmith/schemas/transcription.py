from pydantic import BaseModel


class WordTimestamp(BaseModel):
    word: str
    start_time: float
    end_time: float
    confidence: float = 1.0


class TranscriptionResult(BaseModel):
    text: str
    words: list[WordTimestamp]
    # End of the last word, in seconds
    duration: float
