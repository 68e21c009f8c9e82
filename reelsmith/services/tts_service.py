"""
Chunked voice synthesis.

Long scripts are split at sentence boundaries into chunks under the
per-call character budget, synthesized in fixed-width concurrent batches
(each call admitted by the shared rate limiter and retried on transient
failures), then concatenated back in order into one audio file.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Awaitable, Callable

import httpx

from reelsmith.config import Settings, get_settings
from reelsmith.exceptions import SynthesisError, ValidationError
from reelsmith.render.audio_concat import concatenate_audio
from reelsmith.render.runner import FFmpegRunner
from reelsmith.schemas.voiceover import SynthesisChunk, SynthesisRequest, SynthesisResult
from reelsmith.services.file_service import FileService
from reelsmith.services.rate_limiter import SlidingWindowRateLimiter, estimate_tokens
from reelsmith.services.tts_backends import TTSBackend, create_tts_backend
from reelsmith.utils.media_info import probe_duration

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 503}

# A sentence is text up to and including its run of terminal punctuation, so a
# bare run like "..." or "?!" is one too. A trailing fragment without
# punctuation still counts as one.
_SENTENCE = re.compile(r"[^.!?]*[.!?]+|[^.!?]+$")


def split_into_chunks(text: str, max_chars: int) -> list[SynthesisChunk]:
    """Greedily pack whole sentences into chunks of at most max_chars.

    A single sentence longer than max_chars becomes its own chunk rather
    than being cut mid-sentence.
    """
    sentences = [s.strip() for s in _SENTENCE.findall(text) if s.strip()]
    texts: list[str] = []
    current = ""
    for sentence in sentences:
        if len(sentence) > max_chars:
            if current:
                texts.append(current)
                current = ""
            texts.append(sentence)
        elif current and len(current) + 1 + len(sentence) > max_chars:
            texts.append(current)
            current = sentence
        else:
            current = f"{current} {sentence}" if current else sentence
    if current:
        texts.append(current)
    return [SynthesisChunk(index=i, text=t) for i, t in enumerate(texts)]


def _is_transient(error: Exception) -> bool:
    if isinstance(error, httpx.TransportError):
        return True
    return isinstance(error, SynthesisError) and error.status_code in RETRYABLE_STATUS_CODES


class VoiceSynthesisService:
    def __init__(
        self,
        backend: TTSBackend,
        rate_limiter: SlidingWindowRateLimiter,
        runner: FFmpegRunner,
        file_service: FileService,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.backend = backend
        self.rate_limiter = rate_limiter
        self.runner = runner
        self.file_service = file_service
        self.settings = settings or get_settings()
        self._sleep = sleep

    async def synthesize(
        self,
        script: str,
        voice: str | None = None,
        model: str | None = None,
    ) -> SynthesisResult:
        script = script.strip()
        if not script:
            raise ValidationError("Script is empty", field="text")

        max_chars = self.settings.tts_max_chars_per_chunk
        if len(script) <= max_chars:
            audio_path = await self._synthesize_chunk(SynthesisChunk(index=0, text=script), voice, model)
            duration = await probe_duration(audio_path)
            return SynthesisResult(
                audio_path=str(audio_path), duration=duration, chunked=False, chunk_count=1
            )

        chunks = split_into_chunks(script, max_chars)
        logger.info(f"[TTS] Script of {len(script)} chars split into {len(chunks)} chunks (budget {max_chars})")

        chunk_paths = await self._synthesize_batches(chunks, voice, model)
        audio_path: Path | None = None
        try:
            audio_path = await concatenate_audio(chunk_paths, self.runner, self.file_service, self.settings)
        finally:
            # A lone chunk is returned as the output itself
            for path in chunk_paths:
                if path != audio_path:
                    self.file_service.cleanup_file(path)

        duration = await probe_duration(audio_path)
        logger.info(f"[TTS] Reassembled {len(chunks)} chunks -> {audio_path.name} ({duration:.2f}s)")
        return SynthesisResult(
            audio_path=str(audio_path),
            duration=duration,
            chunked=True,
            chunk_count=len(chunks),
        )

    async def synthesize_request(self, request: SynthesisRequest) -> SynthesisResult:
        return await self.synthesize(request.text, request.voice, request.model)

    async def _synthesize_batches(
        self,
        chunks: list[SynthesisChunk],
        voice: str | None,
        model: str | None,
    ) -> list[Path]:
        batch_size = max(1, self.settings.tts_batch_size)
        paths: list[Path] = []
        for start in range(0, len(chunks), batch_size):
            batch = chunks[start:start + batch_size]
            logger.info(
                f"[TTS] Batch {start // batch_size + 1}: chunks {batch[0].index + 1}-{batch[-1].index + 1}"
            )
            results = await asyncio.gather(
                *(self._synthesize_chunk(chunk, voice, model) for chunk in batch),
                return_exceptions=True,
            )
            failures = [r for r in results if isinstance(r, BaseException)]
            succeeded = [r for r in results if isinstance(r, Path)]
            if failures:
                for path in [*paths, *succeeded]:
                    self.file_service.cleanup_file(path)
                raise failures[0]
            paths.extend(succeeded)
        return paths

    async def _synthesize_chunk(
        self,
        chunk: SynthesisChunk,
        voice: str | None,
        model: str | None,
    ) -> Path:
        max_retries = max(1, self.settings.tts_max_retries)
        cost = estimate_tokens(chunk.text)
        for attempt in range(1, max_retries + 1):
            await self.rate_limiter.wait_and_record(cost)
            try:
                return await self.backend.synthesize(chunk.text, voice, model)
            except (SynthesisError, httpx.TransportError) as e:
                if not _is_transient(e):
                    raise
                if attempt == max_retries:
                    status = getattr(e, "status_code", None)
                    raise SynthesisError(
                        f"Chunk {chunk.index + 1} failed after {attempt} attempts: {e}",
                        status_code=status,
                        attempts=attempt,
                    ) from e
                delay = min(
                    self.settings.tts_retry_base_delay_s * 2 ** (attempt - 1),
                    self.settings.tts_retry_max_delay_s,
                )
                logger.warning(
                    f"[TTS] Chunk {chunk.index + 1} attempt {attempt}/{max_retries} failed ({e}), "
                    f"retrying in {delay:.1f}s"
                )
                await self._sleep(delay)
        raise SynthesisError(f"Chunk {chunk.index + 1} was never attempted")


def create_voice_synthesis_service(
    file_service: FileService,
    runner: FFmpegRunner,
    settings: Settings | None = None,
    rate_limiter: SlidingWindowRateLimiter | None = None,
) -> VoiceSynthesisService:
    """Wire the configured backend behind one limiter per API account."""
    settings = settings or get_settings()
    limiter = rate_limiter or SlidingWindowRateLimiter(
        requests_per_minute=settings.tts_requests_per_minute,
        tokens_per_minute=settings.tts_tokens_per_minute,
        name=settings.tts_provider,
    )
    return VoiceSynthesisService(
        backend=create_tts_backend(file_service, settings),
        rate_limiter=limiter,
        runner=runner,
        file_service=file_service,
        settings=settings,
    )
