"""Tests for the persisted application config."""
import json

import pytest
from pydantic import ValidationError

from folder_search_server.config import DEFAULT_EXCLUDE_PATTERNS
from folder_search_server.services.config_service import ConfigService


@pytest.fixture
def config(temp_db):
    return ConfigService(temp_db)


def test_defaults(config):
    current = config.get_config()

    assert current.indexing.exclude_patterns == DEFAULT_EXCLUDE_PATTERNS
    assert current.indexing.max_file_size == "100MB"
    assert current.indexing.ocr_languages == ["eng", "fra"]
    assert set(current.indexing.model_dump()) == {"exclude_patterns", "max_file_size", "ocr_languages"}
    assert current.ai.provider == "local"
    assert current.ui.theme == "auto"


def test_partial_update_merges_sections(config):
    config.update_config({"ui": {"theme": "dark"}})
    updated = config.update_config({"indexing": {"max_file_size": "10MB"}})

    assert updated.ui.theme == "dark"
    assert updated.ui.show_thumbnails is True
    assert updated.indexing.max_file_size == "10MB"
    assert updated.indexing.ocr_languages == ["eng", "fra"]
    assert config.get_config() == updated
    assert json.loads(config.db.get_config("ui"))["theme"] == "dark"


def test_invalid_update_stores_nothing(config):
    with pytest.raises(ValidationError):
        config.update_config({"ui": {"theme": "neon"}})

    assert config.get_config().ui.theme == "auto"
    assert config.db.get_config("ui") is None


def test_corrupt_stored_section_falls_back_to_defaults(config):
    config.db.set_config("ai", json.dumps({"provider": "skynet"}))
    config.db.set_config("ui", "not json at all")

    current = config.get_config()
    assert current.ai.provider == "local"
    assert current.ui.theme == "auto"


def test_reset_to_defaults(config):
    config.update_config({"ai": {"model": "gpt", "max_tokens": 10}})

    assert config.reset_to_defaults().ai.model == "llama3-8b"
    assert config.get_config().ai.max_tokens == 4000


def test_indexed_folders(config):
    assert config.get_indexed_folders() == []
    assert config.get_last_indexed_folder() is None

    config.set_value("indexedFolders", ["/a", "/b"])
    config.set_value("lastIndexedFolder", "/b")

    assert config.get_indexed_folders() == ["/a", "/b"]
    assert config.get_last_indexed_folder() == "/b"
