"""
Runtime configuration, read once at process start.

Everything the planner needs from the environment (LLM credentials, token
signing secret, database URL) lives on a single ``Settings`` object that is
handed to the components that need it.  Nothing below main.py reads
``os.environ`` directly.
"""
from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_LLM_API_BASE = "https://api.groq.com/openai/v1"
DEFAULT_LLM_MODEL = "groq/llama-3.3-70b-versatile"


def _api_base_from_url(url: str) -> str:
    """Accept either a base URL or the full chat-completions endpoint."""
    url = url.rstrip("/")
    suffix = "/chat/completions"
    if url.endswith(suffix):
        url = url[: -len(suffix)]
    return url


@dataclass(frozen=True)
class Settings:
    llm_api_key: str = ""
    llm_api_base: str = DEFAULT_LLM_API_BASE
    llm_model: str = DEFAULT_LLM_MODEL
    llm_timeout: float = 60.0
    jwt_secret: str = "your-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 7 days
    database_url: str = "sqlite:///./trip_planner.db"
    environment: str = "development"
    generation_workers: int = 2

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (and a .env file if present)."""
        load_dotenv()
        return cls(
            # GROK_API_KEY is still honoured for older .env files
            llm_api_key=os.getenv("GROQ_API_KEY") or os.getenv("GROK_API_KEY", ""),
            llm_api_base=_api_base_from_url(os.getenv("GROQ_API_URL", DEFAULT_LLM_API_BASE)),
            llm_model=os.getenv("LLM_MODEL", DEFAULT_LLM_MODEL),
            llm_timeout=float(os.getenv("LLM_TIMEOUT", "60")),
            jwt_secret=os.getenv("JWT_SECRET", cls.jwt_secret),
            jwt_expire_minutes=int(os.getenv("JWT_EXPIRE_MINUTES", str(cls.jwt_expire_minutes))),
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            environment=os.getenv("APP_ENV", "development"),
            generation_workers=int(os.getenv("GENERATION_WORKERS", "2")),
        )
