"""Database service for folder-search.

The files table and its FTS5 projection are kept consistent by triggers
defined in the schema; every mutation here runs as a single transaction
under one lock so readers never see a row without its searchable text.
"""
import json
import logging
import os
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import libsql

from folder_search_server.models.db_models import SCHEMA
from folder_search_server.models.schemas import IndexedFile, SearchFilters

logger = logging.getLogger(__name__)

# Every column except the reserved embedding blob
FILE_COLUMNS = ("id", "path", "name", "extension", "size", "modified_date",
                "content_hash", "content", "ocr_content", "index_date")


def _row_to_dict(cursor, row):
    """Convert a database row tuple to a dict using cursor description."""
    if row is None:
        return None
    return {desc[0]: value for desc, value in zip(cursor.description, row)}


def _row_to_file(cursor, row) -> Optional[IndexedFile]:
    data = _row_to_dict(cursor, row)
    if data is None:
        return None
    return IndexedFile(**{key: data[key] for key in FILE_COLUMNS})


class Database:
    """Database connection and operations."""

    def __init__(self, db_path: Union[Path, str]):
        """Open (or create) the database and initialize the schema."""
        self.db_path = db_path
        # libsql doesn't support check_same_thread parameter; access is
        # serialized through self._lock instead
        self.conn = libsql.connect(str(db_path))
        self._lock = threading.RLock()

        self.conn.execute("PRAGMA journal_mode = WAL")
        self.conn.execute("PRAGMA synchronous = NORMAL")
        self.conn.execute("PRAGMA temp_store = MEMORY")

        self._initialize_schema()
        logger.info(f"Opened database {db_path}")

    def _initialize_schema(self):
        """Create all tables and triggers if they don't exist."""
        cursor = self.conn.cursor()
        cursor.executescript(SCHEMA)
        self.conn.commit()

    @contextmanager
    def _transaction(self):
        """Run the enclosed statements as one committed unit."""
        with self._lock:
            cursor = self.conn.cursor()
            try:
                yield cursor
                self.conn.commit()
            except Exception:
                self.conn.rollback()
                raise

    def close(self):
        """Close database connection."""
        with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None
        logger.info("Closed database connection")

    # -------------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------------

    def upsert_file(self, file: IndexedFile) -> int:
        """Insert a file row, or replace every field of the row with the same path.

        Returns the row id, which is stable across updates.
        """
        with self._transaction() as cursor:
            cursor.execute(
                """INSERT INTO files
                   (path, name, extension, size, modified_date, content_hash,
                    content, ocr_content, embedding, index_date)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(path) DO UPDATE SET
                       name = excluded.name,
                       extension = excluded.extension,
                       size = excluded.size,
                       modified_date = excluded.modified_date,
                       content_hash = excluded.content_hash,
                       content = excluded.content,
                       ocr_content = excluded.ocr_content,
                       embedding = excluded.embedding,
                       index_date = excluded.index_date""",
                (file.path, file.name, file.extension, file.size, file.modified_date,
                 file.content_hash, file.content or None, file.ocr_content or None,
                 file.embedding, file.index_date)
            )
            cursor.execute("SELECT id FROM files WHERE path = ?", (file.path,))
            return cursor.fetchone()[0]

    def get_file(self, path: str) -> Optional[IndexedFile]:
        """Get a file row by path."""
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute(f"SELECT {', '.join(FILE_COLUMNS)} FROM files WHERE path = ?", (path,))
            return _row_to_file(cursor, cursor.fetchone())

    def get_file_hash(self, path: str) -> Optional[str]:
        """Get the stored content hash for a path without loading its content."""
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute("SELECT content_hash FROM files WHERE path = ?", (path,))
            row = cursor.fetchone()
            return row[0] if row else None

    def get_all_files(self) -> List[IndexedFile]:
        """Get every file row, most recently modified first."""
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute(
                f"SELECT {', '.join(FILE_COLUMNS)} FROM files ORDER BY modified_date DESC"
            )
            return [_row_to_file(cursor, row) for row in cursor.fetchall()]

    def get_file_names(self) -> List[str]:
        """Get every file name, most recently modified first."""
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute("SELECT name FROM files ORDER BY modified_date DESC")
            return [row[0] for row in cursor.fetchall()]

    def get_file_names_containing(self, partial: str, limit: int = 5) -> List[str]:
        """Distinct file names containing partial (case-insensitive), most recently modified first."""
        # SQLite's lower() only folds ASCII, so compare in Python
        needle = partial.casefold()
        names: List[str] = []
        for name in self.get_file_names():
            if needle in name.casefold() and name not in names:
                names.append(name)
                if len(names) >= limit:
                    break
        return names

    def get_file_count(self) -> int:
        """Count indexed files."""
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM files")
            return cursor.fetchone()[0]

    def delete_file(self, path: str) -> bool:
        """Delete a file row (and its FTS entry). Returns True if a row existed."""
        with self._transaction() as cursor:
            cursor.execute("SELECT COUNT(*) FROM files WHERE path = ?", (path,))
            existed = cursor.fetchone()[0] > 0
            cursor.execute("DELETE FROM files WHERE path = ?", (path,))
            return existed

    def delete_files_by_path_prefix(self, prefix: str) -> int:
        """Delete every file whose path starts with prefix. Returns the row count."""
        with self._transaction() as cursor:
            # substr comparison instead of LIKE: folder names may contain % or _
            cursor.execute(
                "SELECT COUNT(*) FROM files WHERE substr(path, 1, length(?)) = ?",
                (prefix, prefix)
            )
            count = cursor.fetchone()[0]
            cursor.execute(
                "DELETE FROM files WHERE substr(path, 1, length(?)) = ?",
                (prefix, prefix)
            )
        logger.info(f"Deleted {count} files under {prefix}")
        return count

    def clear_files(self) -> int:
        """Delete every indexed file. Returns the row count."""
        with self._transaction() as cursor:
            cursor.execute("SELECT COUNT(*) FROM files")
            count = cursor.fetchone()[0]
            cursor.execute("DELETE FROM files")
        logger.info(f"Cleared {count} files from the index")
        return count

    # -------------------------------------------------------------------------
    # Full-text search
    # -------------------------------------------------------------------------

    def search(
        self,
        match_expression: str,
        filters: Optional[SearchFilters] = None,
        limit: int = 50,
        highlight_start: str = "<mark>",
        highlight_end: str = "</mark>",
        snippet_tokens: int = 10
    ) -> List[Dict[str, Any]]:
        """Run an FTS5 MATCH and return ranked rows.

        Each row holds the file columns plus ``score`` (bm25, lower is
        better) and ``snippet`` (best column, matches wrapped in markers).
        """
        columns = ", ".join(f"f.{column}" for column in FILE_COLUMNS)
        # snippet() column -1 lets FTS5 pick the best matching column
        query = f"""
            SELECT {columns},
                   bm25(files_fts) AS score,
                   snippet(files_fts, -1, ?, ?, '...', ?) AS snippet
            FROM files_fts
            JOIN files f ON f.id = files_fts.rowid
        """
        params: List[Any] = [highlight_start, highlight_end, snippet_tokens]
        where_clauses = ["files_fts MATCH ?"]
        params.append(match_expression)

        if filters:
            if filters.file_types:
                placeholders = ", ".join("?" for _ in filters.file_types)
                where_clauses.append(f"f.extension IN ({placeholders})")
                params.extend(filters.file_types)

            if filters.date_range:
                where_clauses.append("f.modified_date BETWEEN ? AND ?")
                params.extend([filters.date_range.start, filters.date_range.end])

            if filters.size_range:
                where_clauses.append("f.size BETWEEN ? AND ?")
                params.extend([filters.size_range.min, filters.size_range.max])

            if filters.folders:
                folder_clauses = []
                for folder in filters.folders:
                    prefix = folder.rstrip(os.sep) + os.sep
                    folder_clauses.append("substr(f.path, 1, length(?)) = ?")
                    params.extend([prefix, prefix])
                where_clauses.append("(" + " OR ".join(folder_clauses) + ")")

        query += " WHERE " + " AND ".join(where_clauses)
        query += " ORDER BY score LIMIT ?"
        params.append(limit)

        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute(query, params)
            return [_row_to_dict(cursor, row) for row in cursor.fetchall()]

    # -------------------------------------------------------------------------
    # Config key-value table
    # -------------------------------------------------------------------------

    def get_config(self, key: str) -> Optional[str]:
        """Get a config value."""
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute("SELECT value FROM config WHERE key = ?", (key,))
            row = cursor.fetchone()
            return row[0] if row else None

    def set_config(self, key: str, value: str):
        """Set a config value (last write wins)."""
        with self._transaction() as cursor:
            cursor.execute(
                """INSERT INTO config (key, value, updated_at) VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET
                       value = excluded.value, updated_at = excluded.updated_at""",
                (key, value, int(time.time()))
            )

    # -------------------------------------------------------------------------
    # Diagnostic log
    # -------------------------------------------------------------------------

    def add_log(self, level: str, message: str, details: Any = None):
        """Append an entry to the diagnostic log."""
        encoded = json.dumps(details, default=str) if details is not None else None
        with self._transaction() as cursor:
            cursor.execute(
                "INSERT INTO logs (level, message, details, timestamp) VALUES (?, ?, ?, ?)",
                (level, message, encoded, int(time.time()))
            )

    def get_logs(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Get the most recent diagnostic log entries, newest first."""
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute(
                "SELECT id, level, message, details, timestamp FROM logs "
                "ORDER BY timestamp DESC, id DESC LIMIT ?",
                (limit,)
            )
            entries = [_row_to_dict(cursor, row) for row in cursor.fetchall()]

        for entry in entries:
            if entry["details"] is not None:
                try:
                    entry["details"] = json.loads(entry["details"])
                except ValueError:
                    pass
        return entries

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        """Get index statistics."""
        with self._lock:
            cursor = self.conn.cursor()
            stats = {}

            cursor.execute("SELECT COUNT(*), COALESCE(SUM(size), 0), MAX(index_date) FROM files")
            row = cursor.fetchone()
            stats["files_count"] = row[0]
            stats["total_size_bytes"] = row[1]
            stats["last_indexed"] = row[2]

            cursor.execute("SELECT COUNT(*) FROM files WHERE ocr_content IS NOT NULL")
            stats["ocr_files_count"] = cursor.fetchone()[0]

            cursor.execute("SELECT COUNT(*) FROM files_fts")
            stats["fts_entries_count"] = cursor.fetchone()[0]

            cursor.execute("SELECT COUNT(*) FROM logs")
            stats["logs_count"] = cursor.fetchone()[0]

            cursor.execute(
                "SELECT extension, COUNT(*) FROM files GROUP BY extension ORDER BY COUNT(*) DESC"
            )
            stats["extensions"] = {row[0]: row[1] for row in cursor.fetchall()}

        return stats

    def optimize(self):
        """Run ANALYZE to refresh query planner statistics.

        Should be run periodically after bulk indexing operations.
        """
        with self._lock:
            self.conn.execute("ANALYZE")
            self.conn.commit()
        logger.info("Database optimized (ANALYZE completed)")

    def vacuum(self):
        """Rebuild the database file to reclaim space."""
        with self._lock:
            self.conn.commit()
            self.conn.execute("VACUUM")
        logger.info("Database vacuumed")
