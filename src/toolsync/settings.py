from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    model: str = "gemini-2.5-flash"
    temperature: float = 0.0
    openai_api_key: str | None = None
    openai_base_url: str | None = "https://generativelanguage.googleapis.com/v1beta/openai/"

    max_turns: int = 5
    tool_choice: Literal["auto", "required"] = "auto"

    # Names or fnmatch patterns of tools that keep their full schema.
    critical_tool_names: set[str] = Field(
        default_factory=lambda: {"send_message", "post_message", "get_*", "list_*", "read_*"}
    )
    reduce_tool_complexity: bool = True
    critical_description_limit: int = 1024
    minimal_description_limit: int = 120

    protocol_version: str = "2024-11-05"
    client_name: str = "toolsync-client"
    client_version: str = "1.0.0"
    generate_session_id_fallback: bool = False

    http_timeout_seconds: float = 30.0
    invocation_deadline_seconds: float = 120.0

    webhook_signature: str | None = None
    signature_header: str = "X-ClipCrow-Signature"

    chat_system_prompt: str = (
        "Be clear and short, don't try to answer everything at once, "
        "and try to keep the conversation going with your users."
    )
    sync_prompt_template: str = (
        "The tool settings sync button was clicked. "
        "Write a message to the chat with serial number {serial_no} "
        "announcing that its tools have been synced."
    )

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
