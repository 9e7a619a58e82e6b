"""File-system watcher for one indexed folder.

watchdog delivers events on its observer thread; they are handed to the
asyncio loop, settled (a file must stop changing before it is reported)
and applied one at a time by a single consumer task, so events for a
given path are handled in the order they were delivered.
"""
import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from folder_search_server.services.globmatch import GlobMatcher

logger = logging.getLogger(__name__)

# Event kinds delivered to the callback
ADD = "add"
CHANGE = "change"
UNLINK = "unlink"
UNLINK_DIR = "unlink_dir"

EventCallback = Callable[[str, str], Awaitable[None]]
ErrorCallback = Callable[[Exception, Optional[str]], None]


@dataclass
class _PendingWrite:
    kind: str
    signature: Optional[Tuple[int, int]] = None
    stable_since: float = 0.0
    handle: Optional[asyncio.TimerHandle] = None


def _stat_signature(path: str) -> Optional[Tuple[int, int]]:
    try:
        stat = os.stat(path)
    except OSError:
        return None
    return stat.st_size, stat.st_mtime_ns


class _WatchdogHandler(FileSystemEventHandler):
    """Translates watchdog events into watcher notifications."""

    def __init__(self, watcher: "FolderWatcher"):
        self.watcher = watcher

    def on_created(self, event: FileSystemEvent):
        if not event.is_directory:
            self.watcher.notify(ADD, event.src_path)

    def on_modified(self, event: FileSystemEvent):
        if not event.is_directory:
            self.watcher.notify(CHANGE, event.src_path)

    def on_deleted(self, event: FileSystemEvent):
        self.watcher.notify(UNLINK_DIR if event.is_directory else UNLINK, event.src_path)

    def on_moved(self, event: FileSystemEvent):
        if event.is_directory:
            self.watcher.notify(UNLINK_DIR, event.src_path)
            for dirpath, _dirnames, filenames in os.walk(event.dest_path):
                for filename in filenames:
                    self.watcher.notify(ADD, os.path.join(dirpath, filename))
        else:
            self.watcher.notify(UNLINK, event.src_path)
            self.watcher.notify(ADD, event.dest_path)


class FolderWatcher:
    """Watches one root folder and reports settled add/change/unlink events."""

    def __init__(
        self,
        root: Path,
        on_event: EventCallback,
        on_error: Optional[ErrorCallback] = None,
        exclude: Optional[GlobMatcher] = None,
        stability_threshold: float = 2.0,
        poll_interval: float = 0.1,
        observer_factory: Callable[[], Observer] = Observer
    ):
        self.root = Path(root)
        self.on_event = on_event
        self.on_error = on_error
        self.exclude = exclude or GlobMatcher()
        self.stability_threshold = stability_threshold
        self.poll_interval = poll_interval
        self._observer_factory = observer_factory

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._observer = None
        self._queue: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None
        self._pending: Dict[str, _PendingWrite] = {}

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    async def start(self):
        """Start observing. Raises if the observer cannot be started."""
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()

        observer = self._observer_factory()
        observer.schedule(_WatchdogHandler(self), str(self.root), recursive=True)
        observer.start()
        self._observer = observer

        self._consumer = asyncio.create_task(self._consume())
        logger.info(f"Watching {self.root}")

    async def stop(self):
        """Stop observing and drop events that have not settled yet."""
        if self._observer is not None:
            self._observer.stop()
            await asyncio.to_thread(self._observer.join, 5)
            self._observer = None

        for pending in self._pending.values():
            if pending.handle is not None:
                pending.handle.cancel()
        self._pending.clear()

        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None
        logger.info(f"Stopped watching {self.root}")

    def is_excluded(self, path: str) -> bool:
        try:
            relative = os.path.relpath(path, self.root)
        except ValueError:
            # Different drive on Windows
            return True
        if relative.startswith(".."):
            return True
        return self.exclude.matches(relative)

    def notify(self, kind: str, path: str):
        """Report a raw event. Safe to call from any thread."""
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._on_raw_event, kind, os.fsdecode(path))

    def _on_raw_event(self, kind: str, path: str):
        if self._queue is None or self.is_excluded(path):
            return

        if kind in (ADD, CHANGE):
            self._settle(kind, path)
            return

        pending = self._pending.pop(path, None)
        if pending is not None and pending.handle is not None:
            pending.handle.cancel()
        if kind == UNLINK_DIR:
            prefix = path.rstrip(os.sep) + os.sep
            for pending_path in [p for p in self._pending if p.startswith(prefix)]:
                handle = self._pending.pop(pending_path).handle
                if handle is not None:
                    handle.cancel()
        self._queue.put_nowait((kind, path))

    def _settle(self, kind: str, path: str):
        pending = self._pending.get(path)
        if pending is not None:
            # An add followed by writes is still reported as an add
            if pending.kind != ADD:
                pending.kind = kind
            return

        pending = _PendingWrite(kind=kind, stable_since=self._loop.time())
        self._pending[path] = pending
        pending.handle = self._loop.call_later(self.poll_interval, self._check_stable, path)

    def _check_stable(self, path: str):
        pending = self._pending.get(path)
        if pending is None:
            return

        signature = _stat_signature(path)
        if signature is None:
            # Gone before it settled; the delete event follows
            del self._pending[path]
            return

        now = self._loop.time()
        if signature != pending.signature:
            pending.signature = signature
            pending.stable_since = now
        elif now - pending.stable_since >= self.stability_threshold:
            del self._pending[path]
            self._queue.put_nowait((pending.kind, path))
            return

        pending.handle = self._loop.call_later(self.poll_interval, self._check_stable, path)

    async def _consume(self):
        while True:
            kind, path = await self._queue.get()
            try:
                await self.on_event(kind, path)
            except Exception as e:
                logger.error(f"Watcher error handling {kind} for {path}: {e}", exc_info=True)
                if self.on_error is not None:
                    self.on_error(e, path)
            finally:
                self._queue.task_done()
