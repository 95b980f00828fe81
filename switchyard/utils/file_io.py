"""Atomic, serialized file access for tool and registry config files."""

from __future__ import annotations

import contextlib
import json
import os
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from switchyard.core.errors import ConfigParseError

_BOM = "﻿"

_locks_guard = threading.Lock()
_path_locks: Dict[str, threading.RLock] = {}


def _lock_for(path: Path) -> threading.RLock:
    key = os.path.abspath(str(path))
    with _locks_guard:
        lock = _path_locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _path_locks[key] = lock
        return lock


@contextlib.contextmanager
def locked_path(path: Path) -> Iterator[None]:
    """Serialize read-modify-write cycles on one file within this process."""
    lock = _lock_for(path)
    with lock:
        yield


def read_text(path: Path) -> Optional[str]:
    """Return the file contents without a leading BOM, or None when missing."""
    if not path.exists():
        return None
    content = path.read_text(encoding="utf-8")
    return content[1:] if content.startswith(_BOM) else content


def write_text_atomic(path: Path, content: str) -> None:
    """Write ``content`` via a temp file in the same directory and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        if path.exists():
            with contextlib.suppress(OSError):
                os.chmod(temp_path, path.stat().st_mode & 0o777)
        os.replace(temp_path, path)
    finally:
        try:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
        except OSError:
            pass


def backup_file(path: Path) -> Optional[Path]:
    """Copy an existing file to ``<name>.bak`` next to it; None when there is nothing to copy."""
    if not path.exists():
        return None
    backup = path.with_name(f"{path.name}.bak")
    shutil.copy2(path, backup)
    return backup


def dump_json(data: Any) -> str:
    """Serialize JSON the same way for every write so repeated writes are identical."""
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def read_json_object(path: Path) -> Optional[Dict[str, Any]]:
    """Load a JSON object from disk.

    Returns None when the file does not exist and an empty dict for an empty
    file. Raises ConfigParseError when the content is not a JSON object.
    """
    try:
        content = read_text(path)
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigParseError(str(path), f"{type(exc).__name__}: {exc}") from exc
    if content is None:
        return None
    if not content.strip():
        return {}
    try:
        payload = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ConfigParseError(str(path), f"invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigParseError(str(path), "root must be a JSON object")
    return payload


def write_json_atomic(path: Path, data: Dict[str, Any]) -> None:
    """Atomically write a JSON document."""
    write_text_atomic(path, dump_json(data))
