"""
Runtime settings for the mock interview backend.
Every field can be overridden through environment variables (or a .env file).
"""
import os
from dataclasses import dataclass, field
from datetime import timedelta


# Lazily corrects in-progress interviews older than this on read.
AUTO_EXPIRY_WINDOW = timedelta(minutes=5)
# Client-side timer budget, measured from start_date_time.
CLIENT_TIME_BUDGET = timedelta(minutes=3)


@dataclass
class Settings:
    database_url: str = field(
        default_factory=lambda: os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./mock_interview.db")
    )
    gemini_api_key: str | None = field(default_factory=lambda: os.getenv("GEMINI_API_KEY"))
    scoring_model: str = field(default_factory=lambda: os.getenv("SCORING_MODEL", "gemini-2.5-flash"))
    summary_model: str = field(default_factory=lambda: os.getenv("SUMMARY_MODEL", "gemini-2.5-flash"))

    heygen_api_key: str | None = field(default_factory=lambda: os.getenv("HEYGEN_API_KEY"))
    heygen_base_url: str = field(
        default_factory=lambda: os.getenv("HEYGEN_BASE_URL", "https://api.heygen.com")
    )
    heygen_timeout_seconds: float = field(
        default_factory=lambda: float(os.getenv("HEYGEN_TIMEOUT_SECONDS", "15"))
    )

    resume_storage_dir: str = field(default_factory=lambda: os.getenv("RESUME_STORAGE_DIR", "./resumes"))
    resume_public_base_url: str = field(
        default_factory=lambda: os.getenv("RESUME_PUBLIC_BASE_URL", "http://localhost:8000/resumes")
    )

    auth_user_header: str = field(default_factory=lambda: os.getenv("AUTH_USER_HEADER", "X-User-Id"))
    frontend_url: str = field(default_factory=lambda: os.getenv("FRONTEND_URL", "http://localhost:3000"))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    @classmethod
    def from_env(cls) -> "Settings":
        return cls()


settings = Settings.from_env()
