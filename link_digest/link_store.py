from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict

from .models import UserLinkQueue
from .utils import sanitize_email

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a queue record cannot be written."""


class LinkStore:
    """Pending links per email address, one JSON file per address.

    Every read-modify-write for an address must happen while holding
    ``lock(email)``; the lock is re-entrant so callers can wrap several
    store calls in one critical section.
    """

    def __init__(self, storage_dir: str | os.PathLike[str]):
        self._root = Path(storage_dir)
        self._root.mkdir(parents=True, exist_ok=True)
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, email: str) -> Path:
        path = self._root / f"{sanitize_email(email)}.json"
        if path.parent != self._root:
            raise StorageError(f"Queue record for {email!r} would leave the storage directory.")
        return path

    def lock(self, email: str) -> threading.RLock:
        key = sanitize_email(email)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    def load(self, email: str) -> UserLinkQueue:
        path = self.path_for(email)
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return UserLinkQueue(email=email)
        except (OSError, ValueError) as exc:
            logger.warning("Unreadable queue record %s; treating as empty: %s", path.name, exc)
            return UserLinkQueue(email=email)
        if not isinstance(raw, dict):
            logger.warning("Unexpected queue record shape in %s; treating as empty", path.name)
            return UserLinkQueue(email=email)
        return UserLinkQueue.from_dict(raw, email)

    def save(self, queue: UserLinkQueue) -> None:
        path = self.path_for(queue.email)
        data = json.dumps(queue.to_dict(), indent=2, ensure_ascii=False)
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self._root, prefix=f".{path.stem}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(data)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StorageError(f"Failed to write queue record {path.name}: {exc}") from exc

    def append(self, email: str, url: str) -> UserLinkQueue:
        with self.lock(email):
            queue = self.load(email)
            queue.links.append(url)
            try:
                self.save(queue)
            except StorageError as exc:
                logger.error("Dropping link for %s: %s", email, exc)
                queue.links.pop()
            return queue

    def count(self, email: str) -> int:
        return len(self.load(email).links)

    def clear(self, email: str) -> None:
        with self.lock(email):
            self.save(UserLinkQueue(email=email))
