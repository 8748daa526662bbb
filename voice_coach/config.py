import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


class Settings(BaseModel):
    openai_api_key: Optional[str] = None
    gemini_api_key: Optional[str] = None
    openai_analysis_model: str = "gpt-4o-audio-preview"
    openai_normalizer_model: str = "gpt-4o-mini"
    gemini_model: str = "gemini-2.5-flash"
    gemini_poll_interval_ms: int = 2000
    gemini_max_wait_ms: int = 120000
    cors_allow_origins: List[str] = ["*"]
    ffmpeg_bin: Optional[str] = None
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        origins = [
            origin.strip()
            for origin in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",")
            if origin.strip()
        ]
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            # GOOGLE_API_KEY is what the google-generativeai SDK reads by default
            gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY"),
            openai_analysis_model=os.getenv("OPENAI_ANALYSIS_MODEL", "gpt-4o-audio-preview"),
            openai_normalizer_model=os.getenv("OPENAI_NORMALIZER_MODEL", "gpt-4o-mini"),
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
            gemini_poll_interval_ms=int(os.getenv("GEMINI_POLL_INTERVAL_MS", "2000")),
            gemini_max_wait_ms=int(os.getenv("GEMINI_MAX_WAIT_MS", "120000")),
            cors_allow_origins=origins or ["*"],
            ffmpeg_bin=os.getenv("FFMPEG_BIN"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            host=os.getenv("HOST", "127.0.0.1"),
            port=int(os.getenv("PORT", "8000")),
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()
