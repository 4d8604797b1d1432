"""Pytest fixtures and utilities for codex-cli tests."""

import tempfile
from pathlib import Path

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from codex_cli import crypto
from codex_cli.audit import ChangeLogger
from codex_cli.filestore import TreeCache
from codex_cli.storage import CodexStore


@pytest.fixture
def temp_data_dir():
    """Create a temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def isolated_env(temp_data_dir, monkeypatch):
    """Point the data directory at a temp location and drop password env."""
    monkeypatch.setenv("CODEX_DATA_DIR", str(temp_data_dir))
    monkeypatch.delenv("CODEX_PASSWORD", raising=False)
    monkeypatch.delenv("CODEX_DEBUG", raising=False)
    yield


@pytest.fixture
def tree_cache():
    """Create a fresh read cache for each test."""
    cache = TreeCache()
    yield cache
    cache.clear()


@pytest.fixture
def store(temp_data_dir, tree_cache):
    """Create a store bound to the temp data directory."""
    return CodexStore(temp_data_dir, cache=tree_cache)


@pytest.fixture
def seeded_store(store):
    """Create a store with some entries and an alias."""
    store.set("server.production.ip", "10.0.0.1")
    store.set("server.production.user", "deploy")
    store.set("server.staging.ip", "10.0.0.2")
    store.set("commands.deploy", "ssh ${server.production.user}@${server.production.ip}")
    store.set_alias("prod", "server.production.ip")
    return store


@pytest.fixture
def fast_kdf(monkeypatch):
    """Lower the PBKDF2 iteration count for tests that encrypt a lot."""
    monkeypatch.setattr(crypto, "PBKDF2_ITERATIONS", 1000)
    yield 1000


@pytest.fixture
def change_logger(temp_data_dir):
    """Create a change logger with temp log path."""
    return ChangeLogger(temp_data_dir / "changes.log")


def read_json(path):
    """Helper to parse a JSON file."""
    import json
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def assert_log_entry(change_logger, result, action, path=None):
    """Helper to verify a log entry exists."""
    recent = change_logger.read_recent(100)
    for line in recent:
        parts = line.strip().split()
        if len(parts) >= 5:
            if parts[2] == result and parts[3] == action:
                if path is None or parts[4] == path:
                    return True
    return False
