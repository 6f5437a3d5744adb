"""
Settings for the transcript acquisition pipeline.

Values are read from environment variables and an optional .env file.
Deployment profiles only supply defaults: any value set explicitly in the
environment wins over the profile.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DeploymentMode(str, Enum):
    """Where the pipeline runs."""
    LOCAL = "local"
    SERVER = "server"
    SERVERLESS = "serverless"


class StorageBackend(str, Enum):
    """Where audio chunks are staged between acquisition and transcription."""
    LOCAL = "local"
    S3 = "s3"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Settings(BaseSettings):
    """Application settings validated via Pydantic."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Deployment
    deployment_mode: DeploymentMode = DeploymentMode.LOCAL
    log_level: LogLevel = LogLevel.INFO

    # Persistence
    database_url: str = "sqlite+aiosqlite:///data/transcripts.db"
    transcript_retention_days: int = Field(default=30, ge=1)

    # Caption strategy
    preferred_language: str = "en"
    fallback_languages: List[str] = Field(default_factory=lambda: ["ta", "hi", "en"])

    # Synthesis policy (None means "derive from deployment mode")
    skip_synthesis: Optional[bool] = None

    # Acquisition
    temp_dir: Path = Path("temp")
    chunk_duration_seconds: int = Field(default=60, ge=1)
    min_audio_bytes: int = Field(default=1024, ge=0)
    download_max_attempts: Optional[int] = Field(default=None, ge=3, le=5)
    download_backoff_base: float = 1.0
    download_backoff_max: float = 30.0
    download_timeout: float = 300.0
    preprocess_concurrency: int = Field(default=4, ge=1)
    stage_source_audio: bool = False
    proxy_url: Optional[str] = None
    cookies_file: Optional[Path] = None
    user_agents: List[str] = Field(default_factory=lambda: [
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    ])
    ffmpeg_path: str = "ffmpeg"

    # Chunk staging
    storage_backend: StorageBackend = StorageBackend.LOCAL
    staging_dir: Path = Path("temp/staging")
    s3_bucket: str = ""
    s3_region: Optional[str] = None
    s3_endpoint_url: Optional[str] = None
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None

    # Speech-to-text
    stt_api_key: str = ""
    stt_base_url: Optional[str] = "https://api.groq.com/openai/v1"
    stt_model: str = "whisper-large-v3"
    stt_timeout: float = 60.0
    stt_max_attempts: int = Field(default=3, ge=1)

    # Text refinement
    refine_enabled: bool = True
    refine_api_key: str = ""
    refine_base_url: Optional[str] = "https://api.groq.com/openai/v1"
    refine_model: str = "llama-3.3-70b-versatile"
    refine_max_tokens: int = 4000
    refine_timeout: float = 60.0

    # API surface
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    @model_validator(mode="after")
    def _apply_profile_defaults(self) -> "Settings":
        serverless = self.deployment_mode == DeploymentMode.SERVERLESS
        if self.skip_synthesis is None:
            self.skip_synthesis = serverless
        if self.download_max_attempts is None:
            self.download_max_attempts = 5 if serverless else 3
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


def reload_settings() -> Settings:
    """Drop the cached settings and read the environment again."""
    get_settings.cache_clear()
    return get_settings()


def is_development() -> bool:
    return get_settings().deployment_mode == DeploymentMode.LOCAL


def is_production() -> bool:
    return get_settings().deployment_mode != DeploymentMode.LOCAL


def get_database_url() -> str:
    return get_settings().database_url


def get_temp_dir() -> Path:
    """Return the temp directory, creating it if needed."""
    path = get_settings().temp_dir
    path.mkdir(parents=True, exist_ok=True)
    return path


settings = get_settings()
