import os
from functools import lru_cache

_DEFAULT_API_URL = "https://api.deepseek.com/v1/chat/completions"
_DEFAULT_MODEL = "deepseek-chat"


class ConfigError(Exception):
    pass


def _int_env(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


class Settings:
    """Centralized configuration pulled from environment variables."""

    app_name: str = "chatwatch"
    app_version: str = os.getenv("APP_VERSION", "0.1.0")

    api_key: str
    api_url: str
    model: str

    chat_file: str
    max_context_messages: int
    request_timeout_s: int
    debounce_ms: int
    queue_size: int

    status_port: int | None
    log_level: str

    def __init__(self) -> None:
        self.api_key = os.getenv("DEEPSEEK_API_KEY", "").strip()
        self.api_url = os.getenv("CHATWATCH_API_URL", "").strip() or _DEFAULT_API_URL
        self.model = os.getenv("CHATWATCH_MODEL", "").strip() or _DEFAULT_MODEL

        self.chat_file = os.getenv("CHATWATCH_FILE", "").strip() or "chat.md"
        self.max_context_messages = _int_env("CHATWATCH_MAX_CONTEXT", 6, minimum=1)
        self.request_timeout_s = _int_env("CHATWATCH_TIMEOUT_S", 30, minimum=1)
        self.debounce_ms = _int_env("CHATWATCH_DEBOUNCE_MS", 50)
        self.queue_size = _int_env("CHATWATCH_QUEUE_SIZE", 10, minimum=1)

        # status API is opt-in; unset means no HTTP listener at all
        port = os.getenv("CHATWATCH_STATUS_PORT", "").strip()
        self.status_port = _int_env("CHATWATCH_STATUS_PORT", 0, minimum=1) if port else None

        self.log_level = (os.getenv("CHATWATCH_LOG_LEVEL", "").strip() or "INFO").upper()

    def require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigError("DEEPSEEK_API_KEY not found in environment variables")
        return self.api_key


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
