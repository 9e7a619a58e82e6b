"""Indexing engine: folder scans, change detection and live watching."""
import asyncio
import hashlib
import json
import logging
import os
import time
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import psutil
from watchdog.observers import Observer

from folder_search_server.config import DEFAULT_EXCLUDE_PATTERNS, settings
from folder_search_server.models.schemas import IndexedFile, IndexingConfig, IndexingProgress, parse_size
from folder_search_server.services import events as ev
from folder_search_server.services.config_service import INDEXED_FOLDERS_KEY, LAST_INDEXED_FOLDER_KEY
from folder_search_server.services.database import Database
from folder_search_server.services.events import EventBus
from folder_search_server.services.globmatch import GlobMatcher
from folder_search_server.services.ocr_service import OCRService, get_ocr_service
from folder_search_server.services.text_extraction import TextExtractionService
from folder_search_server.services.watcher import ADD, CHANGE, UNLINK, UNLINK_DIR, FolderWatcher

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {
    # Text documents
    '.txt', '.md', '.rtf', '.log',
    # Office documents
    '.docx', '.xlsx', '.pptx', '.pdf',
    # Images
    '.jpg', '.jpeg', '.png', '.gif', '.bmp', '.tiff', '.webp',
    # Source code and markup
    '.js', '.ts', '.jsx', '.tsx', '.py', '.java', '.cpp', '.c', '.h',
    '.css', '.scss', '.html', '.htm', '.xml', '.json', '.yaml', '.yml',
    '.php', '.rb', '.go', '.rs', '.swift', '.kt', '.dart',
    # Configuration
    '.ini', '.conf', '.config', '.env',
}

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.gif', '.bmp', '.tiff', '.webp'}

# Outcomes of indexing a single file
INDEXED = "indexed"
UNCHANGED = "unchanged"
SKIPPED = "skipped"


class IndexingBusyError(RuntimeError):
    """A folder scan was requested while another one is running."""


class FolderState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    WATCHING = "watching"
    ERROR = "error"


def compute_md5(data: bytes) -> str:
    """Content hash used for change detection."""
    return hashlib.md5(data).hexdigest()


def _now() -> int:
    return int(time.time())


def log_memory_usage(context: str = ""):
    """Log current memory usage for debugging."""
    try:
        mem_info = psutil.Process().memory_info()
        logger.info(f"[MEMORY{(' ' + context) if context else ''}] "
                    f"RSS: {mem_info.rss / 1024 / 1024:.1f} MB, VMS: {mem_info.vms / 1024 / 1024:.1f} MB")
    except Exception as e:
        logger.warning(f"Could not get memory info: {e}")


class IndexingService:
    """Scans folders into the store and keeps them current with watchers.

    Only one scan runs at a time in the process; a second call to
    ``index_folder`` raises ``IndexingBusyError`` straight away.
    """

    def __init__(
        self,
        db: Database,
        events: Optional[EventBus] = None,
        text_service: Optional[TextExtractionService] = None,
        ocr_service: Optional[OCRService] = None,
        exclude_patterns: Optional[Iterable[str]] = None,
        supported_extensions: Optional[Iterable[str]] = None,
        max_file_size: Union[str, int, None] = settings.default_max_file_size,
        stability_threshold: float = settings.watcher_stability_threshold,
        poll_interval: float = settings.watcher_poll_interval,
        observer_factory=Observer
    ):
        self.db = db
        self.events = events or EventBus()
        self.text_service = text_service or TextExtractionService()
        self.ocr_service = ocr_service or get_ocr_service()
        self.exclude = GlobMatcher(DEFAULT_EXCLUDE_PATTERNS if exclude_patterns is None else exclude_patterns)
        self.supported_extensions = set(SUPPORTED_EXTENSIONS if supported_extensions is None
                                        else (ext.lower() for ext in supported_extensions))
        self.max_file_size = parse_size(max_file_size)
        self.stability_threshold = stability_threshold
        self.poll_interval = poll_interval
        self._observer_factory = observer_factory

        self._is_indexing = False
        self._states: Dict[str, FolderState] = {}
        self._watchers: Dict[str, FolderWatcher] = {}
        # Folders removed while the current scan was running
        self._removed_during_scan: List[str] = []

    # -------------------------------------------------------------------------
    # Folder scans
    # -------------------------------------------------------------------------

    @property
    def is_indexing(self) -> bool:
        return self._is_indexing

    async def index_folder(self, folder_path: Union[str, Path]) -> Dict[str, Any]:
        """Index every supported file under a folder, then watch it.

        Returns ``{"folder_path", "total", "indexed"}``. Per-file failures
        are logged and skipped; a missing folder or a watcher that cannot
        start fails the whole operation.
        """
        if self._is_indexing:
            raise IndexingBusyError("Indexing already in progress")
        self._is_indexing = True
        self._removed_during_scan = []

        root = self._normalize(folder_path)
        key = str(root)
        self._states[key] = FolderState.SCANNING
        self.events.publish(ev.INDEXING_STARTED, {"folder_path": key})
        log_memory_usage(f"before indexing {key}")

        try:
            if not root.exists():
                raise FileNotFoundError(f"Folder not found: {key}")
            if not root.is_dir():
                raise NotADirectoryError(f"Not a folder: {key}")

            await self._stop_watcher(key)

            files, scan_errors = await asyncio.to_thread(self._scan_directory, root)
            for directory, error in scan_errors:
                logger.error(f"Error scanning directory {directory}: {error}")
                self._log_diagnostic("error", f"Failed to scan directory: {directory}", {"error": str(error)})

            total = len(files)
            current = 0
            indexed = 0
            self._publish_progress(current, total, "")

            for file_path in files:
                if self._removed_while_scanning(str(file_path)):
                    current += 1
                    continue
                try:
                    await self.index_file(file_path)
                    indexed += 1
                except Exception as e:
                    logger.error(f"Error indexing file {file_path}: {e}")
                    self._log_diagnostic("error", f"Failed to index file: {file_path}", {"error": str(e)})
                current += 1
                self._publish_progress(current, total, file_path.name)

            # A file extracted while its folder was being removed may have been stored after the delete
            for prefix in self._removed_during_scan:
                self.db.delete_files_by_path_prefix(prefix)
            if self._removed_while_scanning(key + os.sep):
                logger.info(f"Folder removed during indexing, not watching: {key}")
                self.events.publish(ev.INDEXING_COMPLETED, {"folder_path": key, "total": total, "indexed": 0})
                return {"folder_path": key, "total": total, "indexed": 0}

            await self._start_watcher(root)
            self._states[key] = FolderState.WATCHING
            self._remember_folder(key)

            log_memory_usage(f"after indexing {key}")
            logger.info(f"Indexed {indexed}/{total} files under {key}")
            self.events.publish(ev.INDEXING_COMPLETED, {"folder_path": key, "total": total, "indexed": indexed})
            return {"folder_path": key, "total": total, "indexed": indexed}

        except Exception as e:
            self._states[key] = FolderState.ERROR
            logger.error(f"Indexing failed for {key}: {e}", exc_info=True)
            self._log_diagnostic("error", f"Indexing failed: {key}", {"error": str(e)})
            self.events.publish(ev.INDEXING_ERROR, {"folder_path": key, "error": str(e)})
            self._states[key] = FolderState.IDLE
            raise
        finally:
            self._is_indexing = False
            self._removed_during_scan = []

    def _removed_while_scanning(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self._removed_during_scan)

    def _scan_directory(self, root: Path) -> Tuple[List[Path], List[Tuple[Path, OSError]]]:
        """Depth-first list of supported files, pruning excluded directories."""
        files: List[Path] = []
        errors: List[Tuple[Path, OSError]] = []

        def scan(directory: Path):
            try:
                with os.scandir(directory) as it:
                    entries = sorted(it, key=lambda entry: entry.name)
            except OSError as e:
                errors.append((directory, e))
                return

            for entry in entries:
                full_path = Path(entry.path)
                if self.exclude.matches(full_path.relative_to(root)):
                    continue
                try:
                    if entry.is_dir(follow_symlinks=False):
                        scan(full_path)
                    elif entry.is_file() and self.is_supported_file(full_path):
                        files.append(full_path)
                except OSError as e:
                    errors.append((full_path, e))

        scan(root)
        return files, errors

    def _publish_progress(self, current: int, total: int, current_file: str):
        percentage = current * 100 // total if total else 100
        progress = IndexingProgress(current=current, total=total, current_file=current_file,
                                    percentage=percentage)
        self.events.publish(ev.INDEXING_PROGRESS, progress.model_dump())

    # -------------------------------------------------------------------------
    # Single files
    # -------------------------------------------------------------------------

    async def index_file(self, file_path: Union[str, Path], force: bool = False) -> str:
        """Extract and store one file unless its content hash is unchanged.

        Returns INDEXED, UNCHANGED or SKIPPED (larger than max_file_size).
        Read and store errors propagate.
        """
        path = Path(file_path)
        key = str(path)

        stat = await asyncio.to_thread(path.stat)
        if self.max_file_size and stat.st_size > self.max_file_size:
            logger.info(f"Skipping {key}: {stat.st_size} bytes exceeds {self.max_file_size}")
            self._log_diagnostic("warning", f"Skipped large file: {key}",
                                 {"size": stat.st_size, "max_file_size": self.max_file_size})
            return SKIPPED

        data = await asyncio.to_thread(path.read_bytes)
        content_hash = compute_md5(data)
        if not force and self.db.get_file_hash(key) == content_hash:
            return UNCHANGED

        extension = path.suffix.lower()
        content = ""
        ocr_content = ""
        if extension in IMAGE_EXTENSIONS:
            ocr_content = await asyncio.to_thread(self.ocr_service.extract_text, key)
        else:
            # Hash and text come from the same read; office files are reopened by their converters
            content = await asyncio.to_thread(self.text_service.extract_text, key, data)

        indexed_file = IndexedFile(
            path=key,
            name=path.name,
            extension=extension,
            size=stat.st_size,
            modified_date=int(stat.st_mtime),
            content_hash=content_hash,
            content=content or None,
            ocr_content=ocr_content or None,
            index_date=_now()
        )
        indexed_file.id = self.db.upsert_file(indexed_file)
        self.events.publish(ev.FILE_INDEXED, {"path": key, "name": indexed_file.name, "id": indexed_file.id})
        return INDEXED

    async def reindex_file(self, file_path: Union[str, Path]) -> str:
        """Re-extract a file even if its hash is unchanged."""
        return await self.index_file(self._normalize(file_path), force=True)

    async def handle_file_change(self, file_path: str, event: str):
        """Apply one watcher event to the store. Failures are logged, not raised."""
        if event != UNLINK_DIR and not self.is_supported_file(file_path):
            return

        try:
            if event in (ADD, CHANGE):
                if await self.index_file(file_path) == INDEXED:
                    self.events.publish(ev.FILE_UPDATED, {"path": file_path, "event": event})
            elif event == UNLINK:
                self.db.delete_file(file_path)
                self.events.publish(ev.FILE_DELETED, {"path": file_path})
            elif event == UNLINK_DIR:
                count = self.db.delete_files_by_path_prefix(file_path.rstrip(os.sep) + os.sep)
                if count:
                    self.events.publish(ev.FILE_DELETED, {"path": file_path, "count": count})
        except Exception as e:
            logger.error(f"Error handling file change {file_path} ({event}): {e}")
            self._log_diagnostic("error", f"Failed to handle file change: {file_path}",
                                 {"event": event, "error": str(e)})
            self.events.publish(ev.WATCHER_ERROR, {"path": file_path, "event": event, "error": str(e)})

    def is_supported_file(self, file_path: Union[str, Path]) -> bool:
        return Path(file_path).suffix.lower() in self.supported_extensions

    # -------------------------------------------------------------------------
    # Watchers and folder removal
    # -------------------------------------------------------------------------

    async def _start_watcher(self, root: Path):
        key = str(root)
        watcher = FolderWatcher(
            root,
            self.handle_file_change,
            on_error=self._on_watcher_error,
            exclude=self.exclude,
            stability_threshold=self.stability_threshold,
            poll_interval=self.poll_interval,
            observer_factory=self._observer_factory
        )
        await watcher.start()
        self._watchers[key] = watcher
        self.events.publish(ev.WATCHER_STARTED, {"folder_path": key})

    async def _stop_watcher(self, key: str):
        watcher = self._watchers.pop(key, None)
        if watcher is None:
            return
        await watcher.stop()
        if self._states.get(key) == FolderState.WATCHING:
            self._states[key] = FolderState.IDLE
        self.events.publish(ev.WATCHER_STOPPED, {"folder_path": key})

    def _on_watcher_error(self, error: Exception, path: Optional[str]):
        self.events.publish(ev.WATCHER_ERROR, {"path": path, "error": str(error)})

    async def stop_watching(self, folder_path: Union[str, Path, None] = None):
        """Stop the watcher for one folder, or every watcher."""
        if folder_path is None:
            keys = list(self._watchers)
        else:
            keys = [str(self._normalize(folder_path))]
        for key in keys:
            await self._stop_watcher(key)

    async def remove_folder(self, folder_path: Union[str, Path]) -> int:
        """Stop watching a folder and delete every indexed file under it."""
        key = str(self._normalize(folder_path))
        prefix = key.rstrip(os.sep) + os.sep
        if self._is_indexing:
            self._removed_during_scan.append(prefix)

        for watched in list(self._watchers):
            if watched == key or watched.startswith(prefix):
                await self._stop_watcher(watched)
        for known in list(self._states):
            if known == key or known.startswith(prefix):
                del self._states[known]
        self._forget_folder(key)

        count = self.db.delete_files_by_path_prefix(prefix)
        logger.info(f"Removed {count} indexed files from folder: {key}")
        return count

    async def shutdown(self):
        """Stop all watchers and release the OCR worker."""
        await self.stop_watching()
        self.ocr_service.terminate()

    # -------------------------------------------------------------------------
    # Status and settings
    # -------------------------------------------------------------------------

    def get_indexing_status(self) -> Dict[str, Any]:
        return {
            "is_indexing": self._is_indexing,
            "folders": self.get_folder_states(),
            "watching": sorted(key for key, watcher in self._watchers.items() if watcher.running),
            "extractable_extensions": self.text_service.get_supported_extensions(),
        }

    def get_folder_states(self) -> Dict[str, str]:
        return {key: state.value for key, state in self._states.items()}

    def get_index_stats(self) -> Dict[str, Any]:
        stats = self.db.get_stats()
        return {
            "total_files": self.db.get_file_count(),
            "total_size": stats["total_size_bytes"],
            "last_indexed": stats["last_indexed"],
        }

    def set_exclude_patterns(self, patterns: Iterable[str]):
        self.exclude = GlobMatcher(patterns)
        for watcher in self._watchers.values():
            watcher.exclude = self.exclude

    def set_supported_extensions(self, extensions: Iterable[str]):
        self.supported_extensions = {ext.lower() for ext in extensions}

    def set_max_file_size(self, max_file_size: Union[str, int, None]):
        self.max_file_size = parse_size(max_file_size)

    async def apply_config(self, config: IndexingConfig):
        """Apply the indexing section of the application config."""
        self.set_exclude_patterns(config.exclude_patterns)
        self.set_max_file_size(config.max_file_size)
        await asyncio.to_thread(self.ocr_service.set_languages, config.ocr_languages)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _normalize(folder_path: Union[str, Path]) -> Path:
        return Path(folder_path).expanduser().resolve()

    def _log_diagnostic(self, level: str, message: str, details: Any = None):
        try:
            self.db.add_log(level, message, details)
        except Exception as e:
            logger.error(f"Could not write diagnostic log entry '{message}': {e}")

    def _indexed_folders(self) -> List[str]:
        raw = self.db.get_config(INDEXED_FOLDERS_KEY)
        if not raw:
            return []
        try:
            return list(json.loads(raw))
        except ValueError:
            return []

    def _remember_folder(self, key: str):
        folders = self._indexed_folders()
        if key not in folders:
            folders.append(key)
            self.db.set_config(INDEXED_FOLDERS_KEY, json.dumps(folders))
        self.db.set_config(LAST_INDEXED_FOLDER_KEY, json.dumps(key))

    def _forget_folder(self, key: str):
        folders = self._indexed_folders()
        if key in folders:
            folders.remove(key)
            self.db.set_config(INDEXED_FOLDERS_KEY, json.dumps(folders))
