"""
Centralized Configuration Module
Medical Report Insights

Loads all settings from environment variables with validation.
Never hardcodes sensitive values - all secrets via .env
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator, computed_field
from functools import lru_cache
from typing import List
import os

from reportlens.core.errors import AIUnavailableError


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Pydantic validates all fields at startup - fails fast on misconfiguration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ────────────────────────────────────────────────
    app_name: str = "Medical Report Insights"
    app_version: str = "1.0.0"
    app_env: str = "development"
    debug: bool = False

    # ── Server ─────────────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 8080

    # ── Database ───────────────────────────────────────────────────
    database_url: str = "sqlite+aiosqlite:///./medical_reports.db"
    database_sync_url: str = "sqlite:///./medical_reports.db"

    # ── AI Configuration ───────────────────────────────────────────
    medical_ai_api_key: str = ""
    ai_model: str = "gemini-2.5-flash"
    ai_temperature: float = 0.3
    ai_top_p: float = 0.95
    ai_top_k: int = 40
    ai_max_tokens: int = 2048
    ai_timeout_seconds: float = 120.0

    # ── Prompt Template ────────────────────────────────────────────
    prompt_template_path: str = "prompts/medical_analysis_prompt.txt"

    # ── Report Processing ──────────────────────────────────────────
    resume_pending_on_startup: bool = True
    resume_pending_limit: int = 50
    # Extra time on top of the AI timeout for in-flight reports at shutdown
    shutdown_grace_seconds: float = 15.0

    # ── Rate Limiting ──────────────────────────────────────────────
    rate_limit_requests: int = 10
    rate_limit_window: int = 60  # seconds
    # Only these peers may set X-Forwarded-For (comma-separated IPs)
    trusted_proxies: str = ""

    # ── File Upload ────────────────────────────────────────────────
    upload_dir: str = "./uploads"
    max_file_size_mb: int = 20
    allowed_extensions: str = "txt,pdf,docx,doc"

    # ── CORS ───────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:8080"

    # ── Logging ────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "text"

    # ── System Disclaimer (immutable) ─────────────────────────────
    disclaimer: str = (
        "This system is for informational purposes only and does not "
        "provide medical diagnosis."
    )

    # ── Computed Properties ────────────────────────────────────────
    @computed_field
    @property
    def allowed_extensions_list(self) -> List[str]:
        return [ext.strip().lower().lstrip(".") for ext in self.allowed_extensions.split(",")]

    @computed_field
    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @computed_field
    @property
    def trusted_proxies_list(self) -> List[str]:
        return [ip.strip() for ip in self.trusted_proxies.split(",") if ip.strip()]

    @computed_field
    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    # ── Validators ─────────────────────────────────────────────────
    @field_validator("ai_temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("AI temperature must be between 0.0 and 1.0")
        return v

    @field_validator("ai_max_tokens", "ai_top_k")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    def get_ai_api_key(self) -> str:
        """Get API key with explicit error if not configured."""
        key = self.medical_ai_api_key or os.environ.get("MEDICAL_AI_API_KEY", "")
        if not key:
            raise AIUnavailableError(
                "MEDICAL_AI_API_KEY environment variable is not set. "
                "Please configure your Gemini API key in the .env file."
            )
        return key

    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Cached settings instance — singleton pattern.
    Called once at startup, cached for lifetime of application.
    """
    return Settings()


# Module-level convenience access
settings = get_settings()
