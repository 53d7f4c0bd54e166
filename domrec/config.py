"""Configuration management for domrec recording and replay."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_FRAME_STYLESHEETS = {
    "source-viewer.css": "/client/source-viewer.css?1",
    "editor.main.css": "/client/monaco-editor/min/vs/editor/editor.main.css?1",
    "pml.css": "/client/pml.css?1",
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DOMREC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Recording
    skip_hidden_ids: list[str] = Field(
        default_factory=lambda: ["toolbox"],
        description="Ids of hidden DIV/PRE elements left out of recordings",
    )
    scrollbar_suppression_css: str = Field(
        ".scrollbar { opacity: 0 ! important }",
        description="Style text appended to every bridged frame body",
    )

    # Stylesheet cache
    frame_stylesheets: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_FRAME_STYLESHEETS),
        description="Stylesheet cache key -> fetch path",
    )
    script_url: Optional[str] = Field(
        None,
        description="Full URL of the replay script, used to resolve /client/ paths",
    )
    stylesheet_fetch_timeout: float = Field(30.0, description="Stylesheet fetch timeout in seconds")

    # Replay
    replay_margin: int = Field(2, description="Host viewport margin in pixels")
    caret_char_width: float = Field(7.0, description="Approximate glyph width used to place the fake caret")

    # Logging
    log_level: str = Field("INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    log_json: bool = Field(False, description="Render logs as JSON")


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
