"""Tests for workspace and session identity."""

import subprocess
from datetime import date
from pathlib import Path

import pytest

from agentduty import identity
from agentduty.identity import (
    create_instance_session,
    derive_session_key,
    ensure_instance_session,
    resolve_workspace,
    session_key,
)
from agentduty.state import INSTANCE_SESSION_KEY, MemoryStore


class TestDeriveSessionKey:
    """Tests for the date-derived session key."""

    def test_same_workspace_same_day_converges(self):
        """Independent invocations on the same day agree."""
        day = date(2026, 3, 1)
        assert derive_session_key(Path("/src/app"), day) == derive_session_key(Path("/src/app"), day)

    def test_key_is_short_hex(self):
        key = derive_session_key(Path("/src/app"), date(2026, 3, 1))
        assert len(key) == 8
        int(key, 16)

    def test_new_day_new_key(self):
        assert derive_session_key(Path("/src/app"), date(2026, 3, 1)) != derive_session_key(
            Path("/src/app"), date(2026, 3, 2)
        )

    def test_different_workspaces_differ(self):
        day = date(2026, 3, 1)
        assert derive_session_key(Path("/src/app"), day) != derive_session_key(Path("/src/other"), day)


class TestInstanceSession:
    """Tests for the persisted instance session record."""

    def test_instance_record_wins(self):
        """A stored instance token is returned verbatim."""
        store = MemoryStore({INSTANCE_SESSION_KEY: "cafe0001"})
        assert session_key(Path("/src/app"), store) == "cafe0001"

    def test_falls_back_to_date_key(self):
        store = MemoryStore()
        day = date(2026, 3, 1)
        assert session_key(Path("/src/app"), store, day) == derive_session_key(Path("/src/app"), day)

    def test_reading_has_no_side_effects(self):
        store = MemoryStore()
        session_key(Path("/src/app"), store)
        assert store.data == {}

    def test_create_writes_record(self):
        store = MemoryStore()
        key = create_instance_session(Path("/src/app"), store)
        assert store.read(INSTANCE_SESSION_KEY) == key
        assert session_key(Path("/src/app"), store) == key

    def test_concurrent_instances_do_not_collide(self):
        """Two agents starting in the same workspace on the same day get different keys."""
        day = date(2026, 3, 1)
        first = create_instance_session(Path("/src/app"), MemoryStore(), day)
        second = create_instance_session(Path("/src/app"), MemoryStore(), day)
        assert first != second
        assert first != derive_session_key(Path("/src/app"), day)

    def test_ensure_keeps_existing(self):
        store = MemoryStore({INSTANCE_SESSION_KEY: "cafe0001"})
        assert ensure_instance_session(Path("/src/app"), store) == "cafe0001"
        assert store.read(INSTANCE_SESSION_KEY) == "cafe0001"

    def test_ensure_creates_once(self):
        store = MemoryStore()
        first = ensure_instance_session(Path("/src/app"), store)
        second = ensure_instance_session(Path("/src/app"), store)
        assert first == second


class TestResolveWorkspace:
    """Tests for workspace root resolution."""

    def test_uses_git_root(self, monkeypatch, tmp_path):
        def fake_run(cmd, **kwargs):
            assert cmd == ["git", "rev-parse", "--show-toplevel"]
            assert kwargs["cwd"] == tmp_path / "sub"
            return subprocess.CompletedProcess(cmd, 0, stdout=f"{tmp_path}\n", stderr="")

        monkeypatch.setattr(identity.subprocess, "run", fake_run)
        assert resolve_workspace(tmp_path / "sub") == tmp_path

    def test_not_a_repository(self, monkeypatch, tmp_path):
        def fake_run(cmd, **kwargs):
            raise subprocess.CalledProcessError(128, cmd, stderr="not a git repository")

        monkeypatch.setattr(identity.subprocess, "run", fake_run)
        assert resolve_workspace(tmp_path) == tmp_path

    def test_git_not_installed(self, monkeypatch, tmp_path):
        def fake_run(cmd, **kwargs):
            raise FileNotFoundError("git")

        monkeypatch.setattr(identity.subprocess, "run", fake_run)
        assert resolve_workspace(tmp_path) == tmp_path

    def test_defaults_to_cwd(self, monkeypatch, tmp_path):
        def fake_run(cmd, **kwargs):
            raise subprocess.CalledProcessError(128, cmd)

        monkeypatch.setattr(identity.subprocess, "run", fake_run)
        monkeypatch.chdir(tmp_path)
        assert resolve_workspace() == tmp_path
