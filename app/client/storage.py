"""
Durable key/value storage for the client: one JSON file per key.

Writes go to a per-writer temp file beside `<key>.json` and are moved into
place with os.replace, so a crash mid-write leaves the previous value intact.
Read-modify-write callers wrap the whole cycle in `lock(key)`, an exclusive
flock on `<key>.lock` shared by every process using the same data dir.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

try:
    import fcntl
except ImportError:  # pragma: no cover
    fcntl = None

logger = logging.getLogger(__name__)

NOTICE_KEY = "doglog_goal_ai_status"


class LocalStorage:
    def __init__(self, data_dir: Path | str) -> None:
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    @contextmanager
    def lock(self, key: str) -> Iterator[None]:
        """Hold an exclusive cross-process lock for `key`."""
        fd = None
        try:
            fd = open(self.data_dir / f"{key}.lock", "a+", encoding="utf-8")
            if fcntl is not None:
                fcntl.flock(fd.fileno(), fcntl.LOCK_EX)
            yield
        finally:
            if fd is not None:
                try:
                    if fcntl is not None:
                        fcntl.flock(fd.fileno(), fcntl.LOCK_UN)
                finally:
                    fd.close()

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value; missing or unreadable keys give `default`."""
        path = self._path(key)
        if not path.exists():
            return default
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable client state %s: %s", path.name, exc)
            return default

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=self.data_dir, prefix=f".{key}.", suffix=".tmp", delete=False
        ) as f:
            tmp = f.name
            json.dump(value, f, ensure_ascii=False, indent=2)
        try:
            os.replace(tmp, path)
        except OSError:
            os.unlink(tmp)
            raise

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass


class SessionNoticeStore:
    """The "last AI generation status" notice, shown once and then dropped."""

    def __init__(self, storage: LocalStorage, key: str = NOTICE_KEY) -> None:
        self.storage = storage
        self.key = key

    def put(self, mode: str, notice: Optional[str]) -> None:
        with self.storage.lock(self.key):
            self.storage.set(self.key, {"mode": mode, "notice": notice})

    def consume(self) -> Optional[dict[str, Any]]:
        with self.storage.lock(self.key):
            value = self.storage.get(self.key)
            if value is None:
                return None
            self.storage.delete(self.key)
        return value if isinstance(value, dict) else None
