from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Proxy settings with environment variable support.

    Built once at startup and treated as read-only afterwards.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    nim_api_base: str = "https://integrate.api.nvidia.com/v1"
    nim_api_key: SecretStr | None = None
    upstream_timeout: float | None = None

    show_reasoning: bool = False  # wrap reasoning in <think> tags
    enable_thinking_mode: bool = False  # adds chat_template_kwargs.thinking=true

    log_requests: bool = False
    log_headers: bool = False
    log_bodies: bool = False
    log_max_body_size: int = 2000
    redact_headers: bool = True

    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "info"

    @property
    def api_key_configured(self) -> bool:
        return self.nim_api_key is not None and bool(self.nim_api_key.get_secret_value())


@lru_cache
def get_settings() -> Settings:
    return Settings()
