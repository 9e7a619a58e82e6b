"""Open files and reveal them in the platform file manager."""
import logging
import os
import subprocess
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def _run(cmd):
    logger.info(f"Running {cmd}")
    subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,
                     start_new_session=True)


def open_path(file_path: str):
    """Open a file with its default application."""
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    if sys.platform == "win32":
        os.startfile(str(path))
    elif sys.platform == "darwin":
        _run(["open", str(path)])
    else:
        _run(["xdg-open", str(path)])


def reveal_path(file_path: str):
    """Show a file in the file manager (its folder on Linux)."""
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    if sys.platform == "win32":
        _run(["explorer", f"/select,{path}"])
    elif sys.platform == "darwin":
        _run(["open", "-R", str(path)])
    else:
        _run(["xdg-open", str(path.parent)])
