"""Tests for the folder watcher."""
import asyncio

from watchdog.events import DirDeletedEvent, DirMovedEvent, FileDeletedEvent, FileModifiedEvent, FileMovedEvent

from conftest import FakeObserver
from folder_search_server.services.globmatch import GlobMatcher
from folder_search_server.services.watcher import ADD, CHANGE, UNLINK, UNLINK_DIR, FolderWatcher, _WatchdogHandler


class RecordingWatcher:
    def __init__(self):
        self.notified = []

    def notify(self, kind, path):
        self.notified.append((kind, path))


def make_watcher(root, received, **kwargs):
    async def on_event(kind, path):
        received.append((kind, path))

    return FolderWatcher(root, on_event, stability_threshold=0.05, poll_interval=0.01,
                         observer_factory=FakeObserver, **kwargs)


async def wait_for(predicate, timeout=2.0):
    for _ in range(int(timeout / 0.01)):
        if predicate():
            return
        await asyncio.sleep(0.01)


def test_burst_of_writes_is_reported_once(tmp_path):
    received = []
    target = tmp_path / "draft.txt"

    async def scenario():
        watcher = make_watcher(tmp_path, received)
        await watcher.start()
        target.write_text("a")
        watcher.notify(ADD, str(target))
        for text in ("ab", "abc"):
            await asyncio.sleep(0.01)
            target.write_text(text)
            watcher.notify(CHANGE, str(target))
        await wait_for(lambda: received)
        await asyncio.sleep(0.1)
        await watcher.stop()

    asyncio.run(scenario())

    assert received == [(ADD, str(target))]


def test_excluded_paths_are_ignored(tmp_path):
    received = []
    ignored = tmp_path / "node_modules" / "lib.js"
    ignored.parent.mkdir()
    ignored.write_text("x")
    kept = tmp_path / "app.js"
    kept.write_text("y")

    async def scenario():
        watcher = make_watcher(tmp_path, received, exclude=GlobMatcher(["**/node_modules/**"]))
        await watcher.start()
        watcher.notify(ADD, str(ignored))
        watcher.notify(ADD, str(kept))
        watcher.notify(ADD, "/somewhere/else/outside.js")
        await wait_for(lambda: received)
        await asyncio.sleep(0.1)
        await watcher.stop()

    asyncio.run(scenario())

    assert received == [(ADD, str(kept))]


def test_unlink_cancels_pending_write(tmp_path):
    received = []
    target = tmp_path / "temp.txt"
    target.write_text("short lived")

    async def scenario():
        watcher = make_watcher(tmp_path, received)
        await watcher.start()
        watcher.notify(ADD, str(target))
        watcher.notify(UNLINK, str(target))
        await wait_for(lambda: received)
        await asyncio.sleep(0.15)
        await watcher.stop()

    asyncio.run(scenario())

    assert received == [(UNLINK, str(target))]


def test_handler_errors_do_not_stop_the_watcher(tmp_path):
    errors = []
    handled = []

    async def on_event(kind, path):
        if path.endswith("bad.txt"):
            raise RuntimeError("boom")
        handled.append(path)

    async def scenario():
        watcher = FolderWatcher(tmp_path, on_event, on_error=lambda e, path: errors.append((str(e), path)),
                                observer_factory=FakeObserver)
        await watcher.start()
        watcher.notify(UNLINK, str(tmp_path / "bad.txt"))
        watcher.notify(UNLINK, str(tmp_path / "good.txt"))
        await wait_for(lambda: handled)
        assert watcher.running
        await watcher.stop()
        assert not watcher.running

    asyncio.run(scenario())

    assert errors == [("boom", str(tmp_path / "bad.txt"))]
    assert handled == [str(tmp_path / "good.txt")]


def test_start_schedules_recursive_observer(tmp_path):
    async def scenario():
        watcher = make_watcher(tmp_path, [])
        await watcher.start()
        observer = FakeObserver.instances[-1]
        assert observer.started
        assert observer.path == str(tmp_path)
        await watcher.stop()
        assert observer.stopped

    asyncio.run(scenario())


def test_watchdog_events_are_translated(tmp_path):
    moved_dir = tmp_path / "renamed"
    moved_dir.mkdir()
    (moved_dir / "inner.txt").write_text("x")

    watcher = RecordingWatcher()
    handler = _WatchdogHandler(watcher)
    handler.on_modified(FileModifiedEvent("/r/a.txt"))
    handler.on_deleted(FileDeletedEvent("/r/b.txt"))
    handler.on_deleted(DirDeletedEvent("/r/sub"))
    handler.on_moved(FileMovedEvent("/r/c.txt", "/r/d.txt"))
    handler.on_moved(DirMovedEvent("/r/old", str(moved_dir)))

    assert watcher.notified == [
        (CHANGE, "/r/a.txt"),
        (UNLINK, "/r/b.txt"),
        (UNLINK_DIR, "/r/sub"),
        (UNLINK, "/r/c.txt"),
        (ADD, "/r/d.txt"),
        (UNLINK_DIR, "/r/old"),
        (ADD, str(moved_dir / "inner.txt")),
    ]
