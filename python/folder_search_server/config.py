"""Configuration management for folder-search server."""
from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Server
    host: str = "127.0.0.1"
    port: int = 8766

    # Database
    db_path: Path = Path.home() / "folder-search" / "folder-search.db"

    # Search
    search_limit: int = 50
    suggestion_limit: int = 5
    highlight_start: str = "<mark>"
    highlight_end: str = "</mark>"
    snippet_tokens: int = 10

    # Watcher write settling (seconds)
    watcher_stability_threshold: float = 2.0
    watcher_poll_interval: float = 0.1

    # Indexing defaults (overridable through the config API)
    default_ocr_languages: List[str] = ["eng", "fra"]
    default_max_file_size: str = "100MB"

    class Config:
        env_prefix = "FOLDER_SEARCH_"


settings = Settings()

# Ensure database directory exists
settings.db_path.parent.mkdir(parents=True, exist_ok=True)

# Glob patterns never indexed or watched, matched against root-relative paths
DEFAULT_EXCLUDE_PATTERNS = [
    "**/node_modules/**",
    "**/.git/**",
    "**/.DS_Store",
    "**/Thumbs.db",
    "**/*.tmp",
    "**/*.temp",
    "**/.*",
    "**/__pycache__/**",
    "**/dist/**",
    "**/build/**",
    "**/out/**",
]
