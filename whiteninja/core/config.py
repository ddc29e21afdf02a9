from pydantic_settings import BaseSettings
from typing import List, Any
import json


def parse_cors_origins(v: Any) -> List[str]:
    """Parse CORS origins from string or list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        # Try JSON parsing first
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        # Fall back to comma-separated
        return [origin.strip() for origin in v.split(',') if origin.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    # ==========================================
    # Application
    # ==========================================
    APP_NAME: str = "White Ninja AI"
    SERVER_VERSION: str = "0.2.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Server Configuration
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 3001

    # ==========================================
    # Model provider
    # ==========================================
    ANTHROPIC_API_KEY: str = ""
    ANTHROPIC_BASE_URL: str = ""
    CLAUDE_MODEL: str = "claude-sonnet-4-20250514"
    CLAUDE_SUGGEST_MODEL: str = "claude-3-5-haiku-20241022"
    CLAUDE_MAX_TOKENS: int = 8000
    CLAUDE_SUGGEST_MAX_TOKENS: int = 2000
    CLAUDE_TEMPERATURE: float = 0.7
    CLAUDE_CONNECT_TIMEOUT: int = 30  # seconds

    # ==========================================
    # Build limits
    # ==========================================
    MAX_CONCURRENT_BUILDS: int = 3
    MAX_API_CALLS_PER_MINUTE: int = 5  # per session
    RATE_WINDOW_SECONDS: float = 60.0
    RATE_POLL_INTERVAL: float = 5.0

    AGENT_CALL_TIMEOUT_SECONDS: float = 60.0
    API_RETRY_COUNT: int = 3
    API_RETRY_BASE_DELAY: float = 2.0  # doubled per attempt

    SESSION_TIMEOUT_SECONDS: int = 1800  # 30 minutes idle
    SESSION_CLEANUP_INTERVAL_SECONDS: int = 60

    BRIEF_MIN_LENGTH: int = 10
    BRIEF_MAX_LENGTH: int = 5000

    PAUSE_POLL_INTERVAL: float = 0.5
    PHASE_TRANSITION_DELAY: float = 0.6

    # ==========================================
    # Memory bounds
    # ==========================================
    FILE_HISTORY_LIMIT: int = 10
    EVENT_HISTORY_LIMIT: int = 500

    # Context fed back into agent prompts
    CONTEXT_RECENT_EVENTS: int = 6
    CONTEXT_FILE_LIMIT: int = 10
    CONTEXT_FILE_CHARS: int = 2000
    FALLBACK_NOTE_CHARS: int = 500
    THINKING_PREVIEW_CHARS: int = 600

    # ==========================================
    # Logging / CORS
    # ==========================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # CORS (stored as comma-separated string, parsed to list)
    CORS_ORIGINS_STR: str = "*"

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return parse_cors_origins(self.CORS_ORIGINS_STR)

    @property
    def has_valid_api_key(self) -> bool:
        """A key is usable when it is set, not a placeholder and long enough"""
        key = (self.ANTHROPIC_API_KEY or "").strip()
        return bool(key) and key != "your-api-key-here" and len(key) >= 10

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env that aren't defined in Settings


settings = Settings()
