"""Small persisted values shared between CLI invocations.

Every invocation is a fresh process, so anything that has to survive between
them (the instance session token, the poll watermark and the poll lock) is a
tiny plain-text value in the workspace state directory. Reads fail open: an
unreadable value is treated as absent.
"""

import logging
import os
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from .config import STATE_DIR_NAME

logger = logging.getLogger(__name__)

WATERMARK_KEY = "agentduty-poll-watermark"
INSTANCE_SESSION_KEY = "agentduty-instance.session"


def poll_lock_key(session_key: str) -> str:
    return f"agentduty-poll-{session_key}.pid"


class KeyValueStore(ABC):
    """Durable store for short string values."""

    @abstractmethod
    def read(self, key: str) -> Optional[str]:
        """Return the stored value, or None if absent or unreadable."""
        ...

    @abstractmethod
    def write(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a value. Missing keys are ignored."""
        ...


class FileStore(KeyValueStore):
    """One file per key inside a directory."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / key

    def read(self, key: str) -> Optional[str]:
        try:
            value = self._path(key).read_text().strip()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Could not read {key}: {e}")
            return None
        return value or None

    def write(self, key: str, value: str) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            # Write-then-rename so a concurrent reader never sees a partial value
            tmp = self._path(f".{key}.{os.getpid()}.tmp")
            tmp.write_text(value)
            os.replace(tmp, self._path(key))
        except OSError as e:
            logger.debug(f"Could not write {key}: {e}")

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.debug(f"Could not delete {key}: {e}")


class MemoryStore(KeyValueStore):
    """In-process store, for tests and dry runs."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self.data: dict[str, str] = dict(initial or {})

    def read(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def write(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


def workspace_store(workspace: Path, state_dir: str = STATE_DIR_NAME) -> FileStore:
    """The store for a workspace's hidden state directory."""
    return FileStore(Path(workspace) / state_dir)


class WatermarkStore:
    """Timestamp of the newest response already delivered in this workspace."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def read(self) -> Optional[str]:
        return self.store.read(WATERMARK_KEY)

    def write(self, timestamp: str) -> None:
        self.store.write(WATERMARK_KEY, timestamp)

    def advance(self, timestamp: str) -> str:
        """Persist timestamp unless it is older than the stored one.

        Returns the value now stored.
        """
        current = self.read() or ""
        if timestamp > current:
            self.write(timestamp)
            return timestamp
        return current


def pid_alive(pid: int) -> bool:
    """True if a process with this PID exists (signal 0 check)."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, but belongs to someone else
        return True
    except OSError:
        return False
    return True


class PollLock:
    """Advisory marker that a poller is waiting on a session.

    The record is just a PID. Liveness is re-checked on every read, so a
    record left behind by a crashed process reads as inactive.
    """

    def __init__(self, store: KeyValueStore, session_key: str):
        self.store = store
        self.session_key = session_key
        self.key = poll_lock_key(session_key)
        # Live poller we displaced on acquire; handed the record back on release
        self._previous: Optional[int] = None

    def holder(self) -> Optional[int]:
        value = self.store.read(self.key)
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    def is_active(self) -> bool:
        pid = self.holder()
        return pid is not None and pid_alive(pid)

    def acquire(self) -> None:
        pid = os.getpid()
        previous = self.holder()
        self._previous = previous if previous not in (None, pid) and pid_alive(previous) else None
        self.store.write(self.key, str(pid))
        logger.debug(f"Acquired poll lock {self.key} (pid {pid})")

    def release(self) -> None:
        """Drop our record, leaving any other poller's record alone."""
        holder = self.holder()
        if holder is not None and holder != os.getpid():
            logger.debug(f"Poll lock {self.key} now held by pid {holder}, leaving it")
            return
        previous, self._previous = self._previous, None
        if previous is not None and pid_alive(previous):
            self.store.write(self.key, str(previous))
            logger.debug(f"Handed poll lock {self.key} back to pid {previous}")
            return
        self.store.delete(self.key)
        logger.debug(f"Released poll lock {self.key}")

    @contextmanager
    def hold(self) -> Iterator["PollLock"]:
        """Hold the lock for the duration of the block, releasing on any exit."""
        self.acquire()
        try:
            yield self
        finally:
            self.release()
