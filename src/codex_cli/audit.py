#!/usr/bin/env python3
"""Change Logger - Append-only record of store mutations.

Provides append-only logging with daily rotation and retention management.
Only paths are recorded, never values.
"""

import os
import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

LOG_NAME = "changes.log"


class ChangeLogger:
    """Append-only change logger with rotation and retention."""

    def __init__(self, log_path: Path, retention_days: int = 30):
        """Initialize change logger.

        Args:
            log_path: Path to the log file (e.g., ~/.codexcli/changes.log)
            retention_days: Number of days to keep rotated logs

        """
        self.log_path = Path(log_path)
        self.retention_days = retention_days
        self.lock = threading.Lock()
        self._last_rotation_check: Optional[datetime] = None
        self._ready = False

    def _ensure_log_file(self) -> None:
        """Create the log directory and file with owner-only permissions."""
        if self._ready:
            return

        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self.log_path.parent.chmod(0o700)

        if not self.log_path.exists():
            fd = os.open(
                str(self.log_path),
                os.O_CREAT | os.O_APPEND | os.O_WRONLY,
                0o600
            )
            os.close(fd)
        self._ready = True

    def log_change(
        self,
        action: str,
        path: str,
        result: str = "OK",
        detail: Optional[str] = None
    ) -> None:
        """Log a mutation.

        Format: ISO8601Z [PID/command] RESULT ACTION path [detail]

        Args:
            action: SET | REMOVE | RENAME | ALIAS_SET | IMPORT | RESET | etc.
            path: Entry path, alias name or managed file kind
            result: OK | NOOP
            detail: Optional extra context (e.g. "merge +3 ~1 -0")

        """
        self._ensure_log_file()
        self._check_rotation()

        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
        command = Path(sys.argv[0]).name if sys.argv and sys.argv[0] else "python"

        parts = [
            timestamp,
            f"[{os.getpid()}/{command}]",
            result,
            action,
            path
        ]

        if detail:
            parts.append(detail)

        log_line = " ".join(parts) + "\n"

        with self.lock, open(self.log_path, "a", encoding="utf-8") as f:
            f.write(log_line)

    def _check_rotation(self) -> None:
        """Check if daily rotation is needed."""
        now = datetime.now(timezone.utc)

        # Only check once per hour at most
        if self._last_rotation_check:
            if (now - self._last_rotation_check).total_seconds() < 3600:
                return

        self._last_rotation_check = now

        if not self.log_path.exists():
            return

        try:
            mtime = datetime.fromtimestamp(
                self.log_path.stat().st_mtime,
                tz=timezone.utc
            )

            today_midnight = now.replace(
                hour=0, minute=0, second=0, microsecond=0
            )

            if mtime < today_midnight:
                self._rotate(mtime)
                self._cleanup_old_logs()
        except OSError:
            pass

    def _rotate(self, last_modified: datetime) -> None:
        """Move the current log aside, named after the day it was last written."""
        rotated_path = self.log_path.with_name(
            f"{self.log_path.name}.{last_modified.strftime('%Y%m%d')}"
        )

        if not rotated_path.exists():
            try:
                self.log_path.rename(rotated_path)
            except OSError:
                return

        fd = os.open(str(self.log_path), os.O_CREAT | os.O_APPEND | os.O_WRONLY, 0o600)
        os.close(fd)

    def _cleanup_old_logs(self) -> None:
        """Remove logs older than retention period."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=self.retention_days)

        for log_file in self.log_path.parent.glob(f"{self.log_path.name}.*"):
            try:
                date_str = log_file.name.split(".")[-1]
                log_date = datetime.strptime(date_str, "%Y%m%d").replace(
                    tzinfo=timezone.utc
                )
                if log_date < cutoff:
                    log_file.unlink()
            except (ValueError, OSError):
                # Not one of ours, or already gone
                continue

    def read_recent(self, lines: int = 100) -> List[str]:
        """Read recent log entries, most recent last."""
        if not self.log_path.exists():
            return []

        with open(self.log_path, encoding="utf-8") as f:
            return f.readlines()[-lines:]

    def get_log_files(self) -> List[Path]:
        """Get current and rotated log files, newest first."""
        logs = [self.log_path] if self.log_path.exists() else []
        logs.extend(self.log_path.parent.glob(f"{self.log_path.name}.*"))
        logs.sort(key=lambda p: p.stat().st_mtime, reverse=True)
        return logs
