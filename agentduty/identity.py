"""Workspace and session identity.

Independent CLI invocations have to land in the same conversation without
sharing any process state. The workspace is the git root (or the directory
itself), and the session key is either the instance token written by the
session-start hook or a hash of the workspace and today's date.
"""

import hashlib
import logging
import secrets
import subprocess
from datetime import date
from pathlib import Path
from typing import Optional

from .state import INSTANCE_SESSION_KEY, KeyValueStore

logger = logging.getLogger(__name__)

SESSION_KEY_BYTES = 4


def resolve_workspace(path: Optional[Path] = None) -> Path:
    """Return the git repository root containing path, else path itself."""
    path = Path(path) if path else Path.cwd()
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            cwd=path,
            capture_output=True,
            text=True,
            check=True,
        )
    except (subprocess.CalledProcessError, OSError) as e:
        logger.debug(f"No git root for {path}: {e}")
        return path
    root = result.stdout.strip()
    return Path(root) if root else path


def _short_hash(*parts: str) -> str:
    digest = hashlib.sha256("".join(parts).encode()).digest()
    return digest[:SESSION_KEY_BYTES].hex()


def derive_session_key(workspace: Path, today: Optional[date] = None) -> str:
    """Deterministic key for (workspace, calendar day)."""
    today = today or date.today()
    return _short_hash(str(workspace), today.isoformat())


def read_instance_session(store: KeyValueStore) -> Optional[str]:
    return store.read(INSTANCE_SESSION_KEY)


def session_key(workspace: Path, store: KeyValueStore, today: Optional[date] = None) -> str:
    """The session key for a workspace.

    A persisted instance token is returned verbatim so a long agent session
    keeps one key across days; otherwise the date-derived key is used.
    """
    instance = read_instance_session(store)
    if instance:
        return instance
    return derive_session_key(workspace, today)


def create_instance_session(workspace: Path, store: KeyValueStore, today: Optional[date] = None) -> str:
    """Write a random-salted session key for this workspace and return it."""
    today = today or date.today()
    key = _short_hash(str(workspace), today.isoformat(), secrets.token_hex(SESSION_KEY_BYTES))
    store.write(INSTANCE_SESSION_KEY, key)
    logger.info(f"Created instance session {key} for {workspace}")
    return key


def ensure_instance_session(workspace: Path, store: KeyValueStore) -> str:
    """Return the existing instance session, creating one only if absent."""
    return read_instance_session(store) or create_instance_session(workspace, store)
