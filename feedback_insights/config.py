"""Configuration management for the feedback insights service."""
import os
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration.

    Values are read from the environment once at import time. Individual
    instances can override any of them, which keeps classifier, composer and
    orchestrator instances independently configurable:

        Config(OPENAI_API_KEY="", USE_MOCK_AI=True)
    """

    # OpenAI Configuration
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
    AI_MODEL = os.getenv("AI_MODEL", "gpt-4o-mini")
    AI_TIMEOUT_SECONDS = int(os.getenv("AI_TIMEOUT_SECONDS", "10"))
    AI_PROVIDER_ENABLED = _env_flag("AI_PROVIDER_ENABLED", "true")
    AI_MAX_RETRIES = int(os.getenv("AI_MAX_RETRIES", "1"))
    AI_CLASSIFY_MAX_TOKENS = int(os.getenv("AI_CLASSIFY_MAX_TOKENS", "400"))
    AI_SUMMARY_MAX_TOKENS = int(os.getenv("AI_SUMMARY_MAX_TOKENS", "600"))

    # Deterministic mode for offline/local runs
    USE_MOCK_AI = _env_flag("USE_MOCK_AI", "false")

    # API Configuration
    INGEST_TOKEN = os.getenv("INGEST_TOKEN", "")

    # Database Configuration
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./feedback.db")

    # Notification Configuration
    SLACK_WEBHOOK_URL = os.getenv("SLACK_WEBHOOK_URL", "")
    DASHBOARD_URL = os.getenv("DASHBOARD_URL", "http://localhost:8000/dashboard")
    NOTIFY_TIMEOUT_SECONDS = float(os.getenv("NOTIFY_TIMEOUT_SECONDS", "5"))
    NOTIFY_MAX_ATTEMPTS = int(os.getenv("NOTIFY_MAX_ATTEMPTS", "1"))

    # Daily analysis schedule (UTC)
    DAILY_ANALYSIS_ENABLED = _env_flag("DAILY_ANALYSIS_ENABLED", "false")
    DAILY_ANALYSIS_HOUR_UTC = int(os.getenv("DAILY_ANALYSIS_HOUR_UTC", "9"))
    DAILY_ANALYSIS_MINUTE_UTC = int(os.getenv("DAILY_ANALYSIS_MINUTE_UTC", "0"))

    # Listing limits
    STATS_RECORD_LIMIT = int(os.getenv("STATS_RECORD_LIMIT", "1000"))
    DEFAULT_LIST_LIMIT = int(os.getenv("DEFAULT_LIST_LIMIT", "100"))
    MAX_LIST_LIMIT = int(os.getenv("MAX_LIST_LIMIT", "200"))

    def __init__(self, **overrides):
        for name, value in overrides.items():
            if not hasattr(type(self), name):
                raise AttributeError(f"Unknown configuration option: {name}")
            setattr(self, name, value)

    @property
    def inference_configured(self) -> bool:
        """Whether a real inference service can be called."""
        return bool(self.AI_PROVIDER_ENABLED and self.OPENAI_API_KEY)


config = Config()
