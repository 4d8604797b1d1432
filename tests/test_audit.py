"""Unit tests for the change logger."""

import os
import threading
import time
from datetime import datetime, timedelta, timezone

from codex_cli.audit import ChangeLogger


class TestChangeLoggerInit:
    """Tests for ChangeLogger initialization."""

    def test_init_is_lazy(self, temp_data_dir):
        """Nothing is created until the first mutation is logged."""
        log_path = temp_data_dir / "subdir" / "changes.log"
        ChangeLogger(log_path)

        assert not log_path.parent.exists()

    def test_first_log_creates_directory_and_file(self, temp_data_dir):
        log_path = temp_data_dir / "subdir" / "changes.log"
        logger = ChangeLogger(log_path)
        logger.log_change("SET", "a.b")

        assert oct(log_path.parent.stat().st_mode)[-3:] == "700"
        assert oct(log_path.stat().st_mode)[-3:] == "600"

    def test_existing_log_preserved(self, temp_data_dir):
        log_path = temp_data_dir / "changes.log"
        log_path.write_text("existing content\n")

        logger = ChangeLogger(log_path)
        logger.log_change("SET", "a")

        content = log_path.read_text()
        assert content.startswith("existing content\n")
        assert " SET a" in content


class TestLogChange:
    """Tests for log_change."""

    def test_log_format(self, change_logger):
        change_logger.log_change("SET", "server.production.ip")

        recent = change_logger.read_recent(1)
        assert len(recent) == 1

        parts = recent[0].strip().split()
        # Format: TIMESTAMP [PID/command] RESULT ACTION path
        assert len(parts) == 5
        assert parts[1].startswith(f"[{os.getpid()}/")
        assert parts[2] == "OK"
        assert parts[3] == "SET"
        assert parts[4] == "server.production.ip"

    def test_log_detail(self, change_logger):
        change_logger.log_change("RENAME", "old.key", detail="new.key")

        parts = change_logger.read_recent(1)[0].split()
        assert parts[-1] == "new.key"

    def test_timestamp_format(self, change_logger):
        change_logger.log_change("SET", "x")

        # Like 2025-02-15T10:23:01.123456Z
        timestamp_part = change_logger.read_recent(1)[0].split()[0]
        assert timestamp_part.endswith("Z")
        datetime.strptime(timestamp_part, "%Y-%m-%dT%H:%M:%S.%fZ")

    def test_thread_safety(self, change_logger):
        errors = []

        def log_entries():
            try:
                for i in range(10):
                    change_logger.log_change("SET", f"test.{i}")
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=log_entries) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(change_logger.read_recent(100)) == 50


class TestLogRotation:
    """Tests for daily rotation."""

    def test_rotation_names_file_after_last_write(self, change_logger):
        change_logger.log_change("SET", "old_entry")
        yesterday = datetime.now(timezone.utc) - timedelta(days=1)

        change_logger._rotate(yesterday)

        rotated = change_logger.log_path.with_name(
            f"changes.log.{yesterday.strftime('%Y%m%d')}"
        )
        assert "old_entry" in rotated.read_text()
        assert change_logger.log_path.read_text() == ""

    def test_stale_log_rotated_on_next_write(self, change_logger):
        change_logger.log_change("SET", "old_entry")
        two_days_ago = time.time() - 2 * 86400
        os.utime(change_logger.log_path, (two_days_ago, two_days_ago))
        change_logger._last_rotation_check = None

        change_logger.log_change("SET", "new_entry")

        rotated = list(change_logger.log_path.parent.glob("changes.log.*"))
        assert len(rotated) == 1
        assert "old_entry" in rotated[0].read_text()
        assert "new_entry" in change_logger.log_path.read_text()
        assert "old_entry" not in change_logger.log_path.read_text()

    def test_no_rotation_same_day(self, change_logger):
        change_logger.log_change("SET", "test")
        change_logger._last_rotation_check = None

        change_logger._check_rotation()

        assert list(change_logger.log_path.parent.glob("changes.log.*")) == []


class TestLogCleanup:
    """Tests for old log cleanup."""

    def test_cleanup_removes_old_logs(self, temp_data_dir):
        logger = ChangeLogger(temp_data_dir / "changes.log", retention_days=7)

        old_date = datetime.now(timezone.utc) - timedelta(days=10)
        old_log = temp_data_dir / f"changes.log.{old_date.strftime('%Y%m%d')}"
        old_log.write_text("old content")

        recent_date = datetime.now(timezone.utc) - timedelta(days=2)
        recent_log = temp_data_dir / f"changes.log.{recent_date.strftime('%Y%m%d')}"
        recent_log.write_text("recent content")

        logger._cleanup_old_logs()

        assert not old_log.exists()
        assert recent_log.exists()

    def test_cleanup_ignores_foreign_files(self, temp_data_dir):
        logger = ChangeLogger(temp_data_dir / "changes.log")
        foreign = temp_data_dir / "changes.log.bak"
        foreign.write_text("keep me")

        logger._cleanup_old_logs()

        assert foreign.exists()


class TestReadRecent:
    """Tests for reading recent log entries."""

    def test_read_recent_returns_last_lines(self, change_logger):
        for i in range(5):
            change_logger.log_change("SET", f"test.{i}")

        recent = change_logger.read_recent(3)

        assert len(recent) == 3
        assert "test.2" in recent[0]
        assert "test.4" in recent[-1]

    def test_read_recent_missing_file(self, change_logger):
        assert change_logger.read_recent(10) == []


class TestGetLogFiles:
    """Tests for listing log files."""

    def test_get_log_files_sorted(self, change_logger):
        change_logger.log_change("SET", "test")

        for i in range(3):
            date = datetime.now(timezone.utc) - timedelta(days=i + 1)
            log_file = change_logger.log_path.parent / f"changes.log.{date.strftime('%Y%m%d')}"
            log_file.write_text(f"content {i}")
            mtime = time.time() - (i + 1) * 86400
            os.utime(log_file, (mtime, mtime))

        logs = change_logger.get_log_files()

        assert len(logs) == 4
        assert logs[0].name == "changes.log"
