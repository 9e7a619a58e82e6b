"""Shared fixtures for folder-search tests."""
import pytest

from folder_search_server.services.database import Database
from folder_search_server.services.events import EventBus
from folder_search_server.services.indexing_service import IndexingService


class FakeObserver:
    """Stands in for a watchdog Observer; events are injected by the tests."""

    instances = []

    def __init__(self):
        self.handler = None
        self.path = None
        self.started = False
        self.stopped = False
        FakeObserver.instances.append(self)

    def schedule(self, handler, path, recursive=False):
        self.handler = handler
        self.path = path

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def join(self, timeout=None):
        pass


class BrokenObserver(FakeObserver):
    def start(self):
        raise OSError("inotify watch limit reached")


class FakeOCR:
    """OCR service returning canned text per file name."""

    def __init__(self, texts=None):
        self.texts = texts or {}
        self.languages = ["eng", "fra"]
        self.calls = []
        self.terminated = False

    def extract_text(self, image_path):
        self.calls.append(str(image_path))
        for name, text in self.texts.items():
            if str(image_path).endswith(name):
                return text
        return ""

    def set_languages(self, languages):
        self.languages = list(languages)

    def get_languages(self):
        return list(self.languages)

    def get_supported_languages(self):
        return ["eng", "fra", "deu"]

    def terminate(self):
        self.terminated = True


@pytest.fixture(autouse=True)
def reset_fake_observers():
    FakeObserver.instances.clear()
    yield
    FakeObserver.instances.clear()


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary database for testing."""
    db = Database(tmp_path / "test.db")
    yield db
    db.close()


@pytest.fixture
def fake_ocr():
    return FakeOCR({"scan.png": "Invoice   total\n\n42 EUR"})


@pytest.fixture
def indexer(temp_db, fake_ocr):
    """Indexing service wired to fakes, with a short write-settling window."""
    return IndexingService(
        temp_db,
        events=EventBus(),
        ocr_service=fake_ocr,
        stability_threshold=0.05,
        poll_interval=0.01,
        observer_factory=FakeObserver
    )


@pytest.fixture
def sample_tree(tmp_path):
    """A small folder with indexable, excluded and unsupported files."""
    root = tmp_path / "docs"
    (root / "notes").mkdir(parents=True)
    (root / "node_modules" / "pkg").mkdir(parents=True)
    (root / "notes" / "meeting.md").write_text("Quarterly budget review with the finance team")
    (root / "notes" / "todo.txt").write_text("buy milk\nrenew passport")
    (root / "page.html").write_text("<html><body><h1>Welcome</h1><script>var x;</script></body></html>")
    (root / "scan.png").write_bytes(b"\x89PNG fake image bytes")
    (root / "node_modules" / "pkg" / "index.js").write_text("module.exports = budget")
    (root / "archive.bin").write_bytes(b"\x00\x01\x02")
    (root / ".secret.txt").write_text("hidden budget")
    return root
