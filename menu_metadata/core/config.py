from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Menu Metadata Studio"
    environment: str = "local"
    log_level: str = "INFO"
    sentry_dsn: str | None = None
    sentry_environment: str | None = None

    # Generation service
    gemini_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "API_KEY", "gemini_api_key"),
    )
    gemini_model: str = "gemini-2.5-flash"
    gemini_api_base: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_timeout_seconds: float = 60.0

    # Input limits
    max_upload_bytes: int = 10 * 1024 * 1024
    item_name_max_length: int = 200
    description_max_length: int = 4000

    # UI sessions
    copy_feedback_seconds: float = 2.0
    max_sessions: int = 256
    submit_rate_limit: str = "30/minute"


settings = Settings()
