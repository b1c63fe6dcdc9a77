from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    cors_origins: str = "*"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 4096
    openai_api_key: str | None = None
    openai_base_url: str | None = "https://api.openai.com/v1"
    llm_request_timeout_seconds: float = 60.0

    summary_max_tokens: int = 2048
    summary_temperature: float = 0.3
    summary_system_prompt: str = (
        "You are a session summariser for a project management app. Given a "
        "conversation transcript, produce a structured JSON summary. Respond ONLY "
        "with valid JSON matching this schema:\n"
        "{\n"
        '  "contentEstablished": {\n'
        '    "decisions": ["string"],\n'
        '    "factsLearned": ["string"],\n'
        '    "progressMade": ["string"]\n'
        "  },\n"
        '  "contentObserved": {\n'
        '    "patterns": ["string"],\n'
        '    "concerns": ["string"],\n'
        '    "strengths": ["string"]\n'
        "  },\n"
        '  "whatComesNext": {\n'
        '    "nextActions": ["string"],\n'
        '    "openQuestions": ["string"],\n'
        '    "suggestedMode": "string or null"\n'
        "  }\n"
        "}\n"
        "Be concise. Each array item should be one clear sentence."
    )

    redis_url: str | None = None

    auto_summary_enabled: bool = True
    auto_summary_timeout_seconds: float = 24 * 60 * 60
    auto_summary_max_retries: int = 3
    auto_summary_check_interval_seconds: float = 15 * 60
    auto_summary_backoff_base_seconds: float = 1.0
    auto_summary_max_concurrency: int = 1

    context_total_budget: int = 20000
    context_response_reserve: int = 2500

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        extra="allow",
    )


def get_settings() -> Settings:
    """Return the application settings singleton (loaded from env / .env)."""
    global _SETTINGS
    try:
        return _SETTINGS
    except NameError:
        _SETTINGS = Settings()
        return _SETTINGS
