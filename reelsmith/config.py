from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "reelsmith"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # Storage namespaces
    temp_dir: str = "./temp"
    uploads_dir: str = "./uploads"
    # Tracked temp files older than this are removed by cleanup_old_files()
    temp_file_max_age_s: int = 30 * 60

    # Remote asset downloads
    download_timeout_seconds: float = 120.0

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Render settings
    render_output_width: int = 1920
    render_output_height: int = 1080
    render_fps: int = 30
    render_preset: str = "medium"
    render_audio_bitrate: str = "192k"
    # Upper bound on simultaneously running ffmpeg processes
    max_concurrent_transcodes: int = 2

    # Voice synthesis
    tts_provider: Literal["gemini", "genaipro", "ai33"] = "gemini"
    tts_default_voice: str = "kore"
    tts_default_model: str = "gemini-2.5-flash-preview-tts"
    tts_max_chars_per_chunk: int = 1000
    tts_batch_size: int = 10
    tts_max_retries: int = 3
    tts_retry_base_delay_s: float = 1.0
    tts_retry_max_delay_s: float = 8.0
    tts_requests_per_minute: int = 10
    tts_tokens_per_minute: int = 10000
    tts_poll_attempts: int = 60
    tts_poll_interval_s: float = 1.0
    tts_request_timeout_s: float = 180.0

    gemini_api_key: str = ""
    genaipro_api_key: str = ""
    genaipro_base_url: str = "https://genaipro.vn/api/v1"
    ai33_api_key: str = ""
    ai33_base_url: str = "https://api.ai33.pro/v1"

    # Transcription (Whisper)
    openai_api_key: str = ""
    whisper_model: str = "whisper-1"

    # Job tracking
    job_store_backend: Literal["memory", "sql"] = "memory"
    database_url: str = "sqlite:///./reelsmith_jobs.db"
    database_echo: bool = False

    @computed_field
    @property
    def temp_path(self) -> Path:
        return Path(self.temp_dir).resolve()

    @computed_field
    @property
    def uploads_path(self) -> Path:
        return Path(self.uploads_dir).resolve()


@lru_cache
def get_settings() -> Settings:
    return Settings()
