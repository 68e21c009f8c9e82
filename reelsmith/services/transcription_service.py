"""
Word-level transcription behind a message-passing worker.

The worker owns a single busy slot: requests are queued and processed one
at a time. Only plain messages cross the worker boundary; the blocking
transcriber runs in a thread so the event loop never stalls on it.

Requests:  WarmupMessage, TranscribeMessage
Replies:   ReadyMessage, ResultMessage, ErrorMessage
"""

import asyncio
import logging
import subprocess
import tempfile
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import httpx

from reelsmith.config import Settings, get_settings
from reelsmith.exceptions import TranscriptionError
from reelsmith.schemas.transcription import TranscriptionResult, WordTimestamp

logger = logging.getLogger(__name__)

WHISPER_API_URL = "https://api.openai.com/v1/audio/transcriptions"


# =============================================================================
# Messages
# =============================================================================


@dataclass
class WarmupMessage:
    type: str = "warmup"


@dataclass
class TranscribeMessage:
    id: str
    audio_source: str
    options: dict[str, Any] = field(default_factory=dict)
    type: str = "transcribe"


@dataclass
class ReadyMessage:
    type: str = "ready"


@dataclass
class ResultMessage:
    id: str
    result: dict[str, Any]
    type: str = "result"


@dataclass
class ErrorMessage:
    error: str
    id: str | None = None
    type: str = "error"


# =============================================================================
# Transcriber
# =============================================================================


class Transcriber(Protocol):
    def warmup(self) -> None: ...

    def transcribe(self, audio_source: str, options: dict[str, Any]) -> TranscriptionResult: ...


class WhisperTranscriber:
    """Transcribes via the OpenAI Whisper API with word timestamps."""

    def __init__(self, settings: Settings | None = None, model_name: str | None = None):
        self.settings = settings or get_settings()
        self.model_name = model_name or self.settings.whisper_model

    def warmup(self) -> None:
        if not self.settings.openai_api_key:
            raise TranscriptionError("OPENAI_API_KEY not configured")

    def _prepare_audio(self, input_path: str) -> str:
        """Convert any input to 16 kHz mono WAV."""
        temp_audio = tempfile.NamedTemporaryFile(suffix=".wav", delete=False)
        temp_audio.close()

        cmd = [
            self.settings.ffmpeg_path,
            "-i", input_path,
            "-vn",
            "-acodec", "pcm_s16le",
            "-ar", "16000",
            "-ac", "1",
            "-y",
            temp_audio.name,
        ]

        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            Path(temp_audio.name).unlink(missing_ok=True)
            raise TranscriptionError(f"Failed to prepare audio: {result.stderr[-500:]}")

        return temp_audio.name

    def _fetch_remote(self, url: str) -> str:
        response = httpx.get(url, timeout=120.0, follow_redirects=True)
        if response.status_code != 200:
            raise TranscriptionError(f"Failed to fetch audio: {response.status_code}")
        suffix = Path(httpx.URL(url).path).suffix or ".mp3"
        with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as f:
            f.write(response.content)
            return f.name

    def _call_openai_api(self, audio_path: str, language: str | None) -> dict:
        api_key = self.settings.openai_api_key
        if not api_key:
            raise TranscriptionError("OPENAI_API_KEY not configured")

        data = {
            "model": self.model_name,
            "response_format": "verbose_json",
            "timestamp_granularities[]": "word",
        }
        if language:
            data["language"] = language

        with open(audio_path, "rb") as audio_file:
            response = httpx.post(
                WHISPER_API_URL,
                headers={"Authorization": f"Bearer {api_key}"},
                files={"file": audio_file},
                data=data,
                timeout=300.0,
            )

        if response.status_code != 200:
            raise TranscriptionError(f"OpenAI API error: {response.status_code} - {response.text}")

        return response.json()

    def transcribe(self, audio_source: str, options: dict[str, Any]) -> TranscriptionResult:
        temp_files: list[str] = []
        try:
            source = audio_source
            if audio_source.startswith(("http://", "https://")):
                source = self._fetch_remote(audio_source)
                temp_files.append(source)
            wav_path = self._prepare_audio(source)
            temp_files.append(wav_path)
            data = self._call_openai_api(wav_path, options.get("language"))
        finally:
            for path in temp_files:
                Path(path).unlink(missing_ok=True)

        return parse_whisper_response(data)


def parse_whisper_response(data: dict) -> TranscriptionResult:
    words = [
        WordTimestamp(
            word=w["word"].strip(),
            start_time=float(w["start"]),
            end_time=float(w["end"]),
            # Whisper does not report per-word confidence
            confidence=float(w.get("confidence", 1.0)),
        )
        for w in data.get("words", [])
    ]
    return TranscriptionResult(
        text=data.get("text", "").strip(),
        words=words,
        duration=words[-1].end_time if words else 0.0,
    )


# =============================================================================
# Worker
# =============================================================================


class TranscriptionWorker:
    def __init__(self, transcriber: Transcriber):
        self.transcriber = transcriber
        self._inbox: asyncio.Queue[WarmupMessage | TranscribeMessage | None] = asyncio.Queue()
        self._outbox: asyncio.Queue[ReadyMessage | ResultMessage | ErrorMessage | None] = asyncio.Queue()
        self._pending: dict[str, asyncio.Future[TranscriptionResult]] = {}
        self._warmup_done = asyncio.Event()
        self._ready = False
        self._warmup_error: str | None = None
        self._worker_task: asyncio.Task | None = None
        self._reply_task: asyncio.Task | None = None

    @property
    def is_ready(self) -> bool:
        return self._ready

    def start(self) -> None:
        if self._worker_task is None:
            self._worker_task = asyncio.create_task(self._worker_loop())
            self._reply_task = asyncio.create_task(self._reply_loop())

    async def warmup(self) -> None:
        self.start()
        await self._inbox.put(WarmupMessage())

    async def wait_ready(self, timeout: float | None = None) -> None:
        await asyncio.wait_for(self._warmup_done.wait(), timeout)
        if self._warmup_error:
            raise TranscriptionError(self._warmup_error)

    async def transcribe(
        self,
        audio_source: str | Path,
        options: dict[str, Any] | None = None,
    ) -> TranscriptionResult:
        self.start()
        message = TranscribeMessage(id=str(uuid.uuid4()), audio_source=str(audio_source), options=options or {})
        future: asyncio.Future[TranscriptionResult] = asyncio.get_running_loop().create_future()
        self._pending[message.id] = future
        await self._inbox.put(message)
        return await future

    async def stop(self) -> None:
        if self._worker_task is None:
            return
        await self._inbox.put(None)
        await self._worker_task
        await self._outbox.put(None)
        await self._reply_task
        for future in self._pending.values():
            if not future.done():
                future.set_exception(TranscriptionError("Transcription worker stopped"))
        self._pending.clear()
        self._worker_task = None
        self._reply_task = None

    async def _worker_loop(self) -> None:
        while True:
            message = await self._inbox.get()
            if message is None:
                break
            if isinstance(message, WarmupMessage):
                await self._outbox.put(await self._handle_warmup())
            elif isinstance(message, TranscribeMessage):
                if not self._ready:
                    await self._outbox.put(await self._handle_warmup())
                await self._outbox.put(await self._handle_transcribe(message))

    async def _handle_warmup(self) -> ReadyMessage | ErrorMessage:
        try:
            await asyncio.to_thread(self.transcriber.warmup)
        except Exception as e:
            logger.error(f"[TRANSCRIBE] Warmup failed: {e}")
            return ErrorMessage(error=str(e))
        self._ready = True
        return ReadyMessage()

    async def _handle_transcribe(self, message: TranscribeMessage) -> ResultMessage | ErrorMessage:
        logger.info(f"[TRANSCRIBE] {message.id}: {message.audio_source}")
        try:
            result = await asyncio.to_thread(
                self.transcriber.transcribe, message.audio_source, message.options
            )
        except Exception as e:
            logger.error(f"[TRANSCRIBE] {message.id} failed: {e}")
            return ErrorMessage(id=message.id, error=str(e))
        return ResultMessage(id=message.id, result=result.model_dump())

    async def _reply_loop(self) -> None:
        while True:
            reply = await self._outbox.get()
            if reply is None:
                break
            if isinstance(reply, ReadyMessage):
                self._warmup_error = None
                self._warmup_done.set()
            elif isinstance(reply, ResultMessage):
                future = self._pending.pop(reply.id, None)
                if future and not future.done():
                    future.set_result(TranscriptionResult.model_validate(reply.result))
            elif isinstance(reply, ErrorMessage):
                if reply.id is None:
                    # Warmup failure: unblock waiters; the next request retries warmup
                    self._warmup_error = reply.error
                    self._warmup_done.set()
                    continue
                future = self._pending.pop(reply.id, None)
                if future and not future.done():
                    future.set_exception(TranscriptionError(reply.error))
