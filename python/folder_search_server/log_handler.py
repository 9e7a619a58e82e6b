"""In-memory log handler so clients can read recent server logs."""
import logging
import threading
from collections import deque
from typing import List, Optional


class MemoryLogHandler(logging.Handler):
    """Keeps the last formatted log lines in a ring buffer."""

    def __init__(self, capacity: int = 1000):
        super().__init__()
        self._records = deque(maxlen=capacity)
        self._buffer_lock = threading.Lock()
        self.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))

    def emit(self, record: logging.LogRecord):
        try:
            line = self.format(record)
        except Exception:
            self.handleError(record)
            return
        with self._buffer_lock:
            self._records.append(line)

    def get_recent_logs(self, lines: int = 10) -> List[str]:
        with self._buffer_lock:
            records = list(self._records)
        return records[-lines:] if lines > 0 else []


_memory_handler: Optional[MemoryLogHandler] = None


def get_memory_handler() -> MemoryLogHandler:
    """Get the memory handler, attaching it to the root logger on first use."""
    global _memory_handler
    if _memory_handler is None:
        _memory_handler = MemoryLogHandler()
        logging.getLogger().addHandler(_memory_handler)
    return _memory_handler
