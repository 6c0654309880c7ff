from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Configuration settings for commonplace."""

    # Database
    db_path: str = Field(
        default="commonplace.db", description="Path to SQLite database file"
    )

    # LLM
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL for the OpenAI-compatible API",
    )
    analysis_model: str = Field(
        default="gpt-4.1-nano", description="Model used for note analysis"
    )
    categorization_model: str = Field(
        default="gpt-4.1-nano", description="Model used for folder categorization"
    )
    transcription_model: str = Field(
        default="whisper-1", description="Model used for audio transcription"
    )
    analysis_temperature: float = Field(
        default=0.1, description="Sampling temperature for analysis calls"
    )
    categorization_temperature: float = Field(
        default=0.1, description="Sampling temperature for categorization calls"
    )
    llm_timeout_seconds: float = Field(
        default=60.0, description="Timeout for LLM HTTP requests in seconds"
    )

    # Notes
    max_note_length: int = Field(
        default=50_000, description="Maximum characters accepted for a note"
    )

    # Password reset
    app_url: str = Field(
        default="http://localhost:3000",
        description="Public URL used to build password reset links",
    )
    reset_token_ttl_minutes: int = Field(
        default=60, description="Lifetime of a password reset token in minutes"
    )

    # Email
    smtp_host: str = Field(default="", description="SMTP server host")
    smtp_port: int | None = Field(default=None, description="SMTP server port")
    smtp_user: str = Field(default="", description="SMTP username")
    smtp_pass: str = Field(default="", description="SMTP password")
    email_from: str = Field(default="", description="Sender address for emails")

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    class Config:
        env_prefix = "COMMONPLACE_"
        case_sensitive = False


settings = Settings()
