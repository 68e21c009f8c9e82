"""
Voice synthesis backends.

Each backend turns one piece of text into one local audio file. Chunking,
rate limiting and retries live in tts_service; backends only report
failures (SynthesisError with the HTTP status when there is one).
"""

import asyncio
import base64
import logging
import wave
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Awaitable, Callable

import httpx

from reelsmith.config import Settings, get_settings
from reelsmith.exceptions import PollTimeoutError, SynthesisError
from reelsmith.services.file_service import FileService

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"

GEMINI_VOICES = [
    "Zephyr", "Puck", "Charon", "Kore", "Fenrir", "Leda", "Orus", "Aoede",
    "Callirrhoe", "Autonoe", "Enceladus", "Iapetus", "Umbriel", "Algieba",
    "Despina", "Erinome", "Algenib", "Rasalgethi", "Laomedeia", "Achernar",
    "Alnilam", "Schedar", "Gacrux", "Pulcherrima", "Achird", "Zubenelgenubi",
    "Vindemiatrix", "Sadachbia", "Sadaltager", "Sulafat",
]
DEFAULT_GEMINI_VOICE = "Kore"


class TTSBackend(ABC):
    name: str = "tts"

    @abstractmethod
    async def synthesize(self, text: str, voice: str | None, model: str | None) -> Path:
        """Synthesize text and return the path of the written audio file."""


def normalize_gemini_voice(voice: str | None) -> str:
    if not voice:
        return DEFAULT_GEMINI_VOICE
    for known in GEMINI_VOICES:
        if known.lower() == voice.strip().lower():
            return known
    logger.warning(f"[TTS] Unknown Gemini voice '{voice}', using {DEFAULT_GEMINI_VOICE}")
    return DEFAULT_GEMINI_VOICE


def parse_audio_mime(mime_type: str) -> dict[str, Any]:
    """Read PCM parameters from a mime type like `audio/L16;codec=pcm;rate=24000`."""
    params = {"rate": 24000, "channels": 1, "bits": 16}
    parts = [p.strip() for p in mime_type.split(";")]
    main = parts[0].lower()
    if main.startswith("audio/l"):
        try:
            params["bits"] = int(main.removeprefix("audio/l"))
        except ValueError:
            pass
    for part in parts[1:]:
        key, _, value = part.partition("=")
        key = key.strip().lower()
        if key in ("rate", "channels", "bits") and value.strip().isdigit():
            params[key] = int(value)
    return params


def write_pcm_as_wav(pcm: bytes, path: Path, rate: int, channels: int, bits: int) -> Path:
    with wave.open(str(path), "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(bits // 8)
        wav.setframerate(rate)
        wav.writeframes(pcm)
    return path


def _raise_for_status(response: httpx.Response, provider: str) -> None:
    if response.status_code < 200 or response.status_code >= 300:
        raise SynthesisError(
            f"{provider} API error: {response.status_code} - {response.text[:500]}",
            status_code=response.status_code,
        )


class GeminiTTSBackend(TTSBackend):
    name = "gemini"

    def __init__(
        self,
        file_service: FileService,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.file_service = file_service
        self.settings = settings or get_settings()
        self._transport = transport

    def _build_payload(self, text: str, voice: str) -> dict:
        return {
            "contents": [{"parts": [{"text": text}]}],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice}},
                },
            },
        }

    async def synthesize(self, text: str, voice: str | None, model: str | None) -> Path:
        api_key = self.settings.gemini_api_key
        if not api_key:
            raise SynthesisError("GEMINI_API_KEY not configured")

        model = model or self.settings.tts_default_model
        voice_name = normalize_gemini_voice(voice or self.settings.tts_default_voice)
        url = f"{GEMINI_API_BASE}/models/{model}:generateContent?key={api_key}"

        async with httpx.AsyncClient(
            timeout=self.settings.tts_request_timeout_s, transport=self._transport
        ) as client:
            response = await client.post(url, json=self._build_payload(text, voice_name))
        _raise_for_status(response, "Gemini")

        inline = self._extract_inline_audio(response.json())
        audio = base64.b64decode(inline["data"])
        mime_type = inline.get("mimeType", "audio/L16;rate=24000")

        if mime_type.startswith(("audio/mpeg", "audio/mp3")):
            path = self.file_service.temp_file_path("mp3")
            path.write_bytes(audio)
        elif mime_type.startswith(("audio/wav", "audio/x-wav")):
            path = self.file_service.temp_file_path("wav")
            path.write_bytes(audio)
        else:
            params = parse_audio_mime(mime_type)
            path = write_pcm_as_wav(
                audio,
                self.file_service.temp_file_path("wav"),
                rate=params["rate"],
                channels=params["channels"],
                bits=params["bits"],
            )
        logger.info(f"[TTS] Gemini synthesized {len(text)} chars with {voice_name} -> {path.name}")
        return path

    def _extract_inline_audio(self, data: dict) -> dict:
        for candidate in data.get("candidates", []):
            for part in candidate.get("content", {}).get("parts", []):
                inline = part.get("inlineData")
                if inline and inline.get("data"):
                    return inline
        raise SynthesisError("No audio data in Gemini response")


class TaskPollingTTSBackend(TTSBackend):
    """Providers that create a task, then expose the audio once it finishes."""

    provider_label = "TTS"

    def __init__(
        self,
        file_service: FileService,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.file_service = file_service
        self.settings = settings or get_settings()
        self._transport = transport
        self._sleep = sleep

    @abstractmethod
    def _headers(self) -> dict[str, str]: ...

    @abstractmethod
    async def _create_task(self, client: httpx.AsyncClient, text: str, voice: str, model: str | None) -> str: ...

    @abstractmethod
    def _task_url(self, task_id: str) -> str: ...

    @abstractmethod
    def _read_task(self, data: dict) -> tuple[str, str | None, str | None]:
        """Return (state, audio_url, error) where state is done/failed/pending."""

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.tts_request_timeout_s,
            headers=self._headers(),
            transport=self._transport,
            follow_redirects=True,
        )

    async def synthesize(self, text: str, voice: str | None, model: str | None) -> Path:
        if not voice:
            raise SynthesisError(f"{self.provider_label} requires a voice id")
        async with self._client() as client:
            task_id = await self._create_task(client, text, voice, model)
            logger.info(f"[TTS] {self.provider_label} task {task_id} created")
            audio_url = await self._poll(client, task_id)
            return await self._download(client, audio_url)

    async def _poll(self, client: httpx.AsyncClient, task_id: str) -> str:
        for attempt in range(self.settings.tts_poll_attempts):
            response = await client.get(self._task_url(task_id))
            if 200 <= response.status_code < 300:
                state, audio_url, error = self._read_task(response.json())
                if state == "done" and audio_url:
                    return audio_url
                if state == "failed":
                    raise SynthesisError(error or "Voice generation failed")
            else:
                logger.warning(
                    f"[TTS] {self.provider_label} poll {attempt + 1} for {task_id} "
                    f"returned {response.status_code}"
                )
            await self._sleep(self.settings.tts_poll_interval_s)
        raise PollTimeoutError("Voice generation timed out")

    async def _download(self, client: httpx.AsyncClient, url: str) -> Path:
        response = await client.get(url)
        if response.status_code < 200 or response.status_code >= 300:
            raise SynthesisError("Failed to download audio file", status_code=response.status_code)
        path = self.file_service.temp_file_path("mp3")
        path.write_bytes(response.content)
        return path


class GenAIProTTSBackend(TaskPollingTTSBackend):
    name = "genaipro"
    provider_label = "Gen AI Pro"
    default_model = "speech-2.5-hd-preview"

    def _headers(self) -> dict[str, str]:
        if not self.settings.genaipro_api_key:
            raise SynthesisError("GENAIPRO_API_KEY not configured")
        return {"Authorization": f"Bearer {self.settings.genaipro_api_key}"}

    async def _create_task(self, client: httpx.AsyncClient, text: str, voice: str, model: str | None) -> str:
        response = await client.post(
            f"{self.settings.genaipro_base_url}/max/tasks",
            json={
                "text": text,
                "voice_id": voice,
                "model_id": model or self.default_model,
                "speed": 1.0,
                "pitch": 0,
                "volume": 1.0,
            },
        )
        _raise_for_status(response, self.provider_label)
        task_id = response.json().get("id")
        if not task_id:
            raise SynthesisError("Failed to get task ID from Gen AI Pro")
        return str(task_id)

    def _task_url(self, task_id: str) -> str:
        return f"{self.settings.genaipro_base_url}/max/tasks/{task_id}"

    def _read_task(self, data: dict) -> tuple[str, str | None, str | None]:
        status = data.get("status")
        if status == "completed" and data.get("result"):
            return "done", data["result"], None
        if status == "failed":
            return "failed", None, data.get("error")
        return "pending", None, None


class AI33TTSBackend(TaskPollingTTSBackend):
    name = "ai33"
    provider_label = "AI33"
    default_model = "eleven_multilingual_v2"

    def _headers(self) -> dict[str, str]:
        if not self.settings.ai33_api_key:
            raise SynthesisError("AI33_API_KEY not configured")
        return {"xi-api-key": self.settings.ai33_api_key}

    async def _create_task(self, client: httpx.AsyncClient, text: str, voice: str, model: str | None) -> str:
        response = await client.post(
            f"{self.settings.ai33_base_url}/text-to-speech/{voice}",
            params={"output_format": "mp3_44100_128"},
            json={"text": text, "model_id": model or self.default_model, "with_transcript": False},
        )
        _raise_for_status(response, self.provider_label)
        task_id = response.json().get("task_id")
        if not task_id:
            raise SynthesisError("Failed to get task ID from AI33")
        return str(task_id)

    def _task_url(self, task_id: str) -> str:
        return f"{self.settings.ai33_base_url}/task/{task_id}"

    def _read_task(self, data: dict) -> tuple[str, str | None, str | None]:
        status = data.get("status")
        audio_url = (data.get("metadata") or {}).get("audio_url")
        if status == "done" and audio_url:
            return "done", audio_url, None
        if status == "failed":
            return "failed", None, data.get("error_message")
        return "pending", None, None


def create_tts_backend(
    file_service: FileService,
    settings: Settings | None = None,
) -> TTSBackend:
    settings = settings or get_settings()
    backends: dict[str, type[TTSBackend]] = {
        "gemini": GeminiTTSBackend,
        "genaipro": GenAIProTTSBackend,
        "ai33": AI33TTSBackend,
    }
    return backends[settings.tts_provider](file_service, settings)
