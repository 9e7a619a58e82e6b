"""Application config persisted in the store's key-value table.

Each section of ``AppConfig`` is stored as JSON under its own key.
"""
import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from folder_search_server.models.schemas import AppConfig

logger = logging.getLogger(__name__)

CONFIG_SECTIONS = ("indexing", "ai", "ui")
INDEXED_FOLDERS_KEY = "indexedFolders"
LAST_INDEXED_FOLDER_KEY = "lastIndexedFolder"


class ConfigService:
    """Reads and writes the application config."""

    def __init__(self, db):
        self.db = db

    def get_value(self, key: str) -> Any:
        """Get a single JSON value by key, or None."""
        raw = self.db.get_config(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return raw

    def set_value(self, key: str, value: Any):
        """Store a single value as JSON."""
        self.db.set_config(key, json.dumps(value))

    def get_config(self) -> AppConfig:
        """Get the full config: stored sections over defaults."""
        config = AppConfig().model_dump()
        for section in CONFIG_SECTIONS:
            stored = self.get_value(section)
            if not isinstance(stored, dict):
                continue
            candidate = {**config, section: {**config[section], **stored}}
            try:
                AppConfig.model_validate(candidate)
            except ValidationError as e:
                logger.error(f"Ignoring invalid stored config for {section}: {e}")
                continue
            config = candidate
        return AppConfig.model_validate(config)

    def update_config(self, partial: Dict[str, Any]) -> AppConfig:
        """Merge a partial config section by section, validate and store it.

        Raises ValidationError (nothing stored) if the result is invalid.
        """
        current = self.get_config().model_dump()
        for section in CONFIG_SECTIONS:
            if isinstance(partial.get(section), dict):
                current[section] = {**current[section], **partial[section]}

        updated = AppConfig.model_validate(current)
        for section in CONFIG_SECTIONS:
            self.set_value(section, getattr(updated, section).model_dump())
        logger.info(f"Updated config sections: {[s for s in CONFIG_SECTIONS if s in partial]}")
        return updated

    def reset_to_defaults(self) -> AppConfig:
        defaults = AppConfig()
        for section in CONFIG_SECTIONS:
            self.set_value(section, getattr(defaults, section).model_dump())
        return defaults

    def get_indexed_folders(self) -> List[str]:
        folders = self.get_value(INDEXED_FOLDERS_KEY)
        return list(folders) if isinstance(folders, list) else []

    def get_last_indexed_folder(self) -> Optional[str]:
        return self.get_value(LAST_INDEXED_FOLDER_KEY)
