"""
Durable message log for relaydesk.

Every message a user sends to the bot and every reply the bot delivers is
appended to a JSON Lines file, with rotation and compression support.
"""

import gzip
import json
import logging
from collections import deque
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from relaydesk.store.models import NormalizedMessage, StoredMessage

logger = logging.getLogger(__name__)

# Lines inspected from the end of the log when resuming the id sequence
TAIL_LINES = 16


class StoreError(Exception):
    """Raised when a record cannot be written to the message log."""

    pass


class MessageLog:
    """
    JSON Lines based message log.

    Records are numbered with a monotonically increasing id that survives
    restarts (it continues from the last record in the current file).
    """

    def __init__(
        self,
        log_path: str | Path,
        enable: bool = True,
        rotation: str = "daily",
        max_size_mb: int = 100,
        retention_days: int = 365,
        compress_old: bool = True,
        buffer_size: int = 1,
        flush_interval_seconds: int = 5,
    ) -> None:
        """
        Initialize the message log.

        Args:
            log_path: Path to the log file
            enable: Whether records are written at all
            rotation: Rotation strategy (daily, weekly, size, none)
            max_size_mb: Maximum log file size in MB before rotation
            retention_days: Days to keep rotated logs
            compress_old: Whether to gzip rotated logs
            buffer_size: Number of records to buffer before flush
            flush_interval_seconds: Seconds between forced flushes
        """
        self.log_path = Path(log_path).expanduser()
        self.enable = enable
        self.rotation = rotation
        self.max_size_mb = max_size_mb
        self.retention_days = retention_days
        self.compress_old = compress_old
        self.buffer_size = buffer_size
        self.flush_interval_seconds = flush_interval_seconds

        self._buffer: list[dict[str, Any]] = []
        self._last_flush = datetime.now()
        self._next_id = 1

        if self.enable:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            self._next_id = self._read_last_id() + 1

    @classmethod
    def from_config(cls, config: Any) -> "MessageLog":
        """
        Create a message log from configuration.

        Args:
            config: MessageLogConfig instance

        Returns:
            Configured MessageLog
        """
        return cls(
            log_path=config.path,
            enable=config.enable,
            rotation=config.rotation,
            max_size_mb=config.max_size_mb,
            retention_days=config.retention_days,
            compress_old=config.compress_old,
            buffer_size=config.buffer_size,
            flush_interval_seconds=config.flush_interval_seconds,
        )

    def _read_last_id(self) -> int:
        """Id of the last readable record in the current log file, 0 if there is none.

        A crash can leave a torn final line; it is skipped and terminated so
        the next record starts on a line of its own.
        """
        if not self.log_path.exists():
            return 0

        with self.log_path.open("rb") as f:
            tail = deque(f, maxlen=TAIL_LINES)

        if tail and not tail[-1].endswith(b"\n"):
            logger.warning(f"Incomplete last record in {self.log_path}, skipping it")
            with self.log_path.open("ab") as f:
                f.write(b"\n")

        for raw_line in reversed(tail):
            line = raw_line.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except ValueError:
                continue
            if isinstance(record, dict) and isinstance(record.get("id"), int):
                return record["id"]

        if any(line.strip() for line in tail):
            logger.warning(f"No readable record at the end of {self.log_path}, numbering from 1")
        return 0


    def record(self, platform: str, message: NormalizedMessage) -> StoredMessage:
        """
        Append a normalized message to the log.

        Args:
            platform: Platform the message belongs to
            message: Normalized message

        Returns:
            The stored record, with its assigned id

        Raises:
            StoreError: If the record cannot be written
        """
        stored = StoredMessage(
            id=self._next_id,
            **message.model_dump(exclude={"platform"}),
            platform=platform,
        )
        self._next_id += 1

        if not self.enable:
            return stored

        self._buffer.append(stored.model_dump(mode="json"))

        now = datetime.now()
        should_flush = (
            len(self._buffer) >= self.buffer_size
            or (now - self._last_flush).seconds >= self.flush_interval_seconds
        )
        if should_flush:
            self.flush()

        logger.debug(f"Logged {platform} message {stored.platform_message_id} as #{stored.id}")
        return stored

    def flush(self) -> None:
        """Flush buffered records to disk.

        Raises:
            StoreError: If the file cannot be written; the buffer is kept.
        """
        if not self.enable or not self._buffer:
            return

        try:
            self._rotate_if_needed()
            with self.log_path.open("a", encoding="utf-8") as f:
                for record in self._buffer:
                    f.write(json.dumps(record, ensure_ascii=False) + "\n")
        except OSError as e:
            raise StoreError(f"Cannot write message log {self.log_path}: {e}") from e

        self._buffer.clear()
        self._last_flush = datetime.now()

    def health_check(self) -> bool:
        """Check that the log location is writable."""
        if not self.enable:
            return True

        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with self.log_path.open("a", encoding="utf-8"):
                pass
            return True
        except OSError as e:
            logger.error(f"Message log health check failed: {e}")
            return False

    def _rotate_if_needed(self) -> None:
        """Rotate log file if needed based on configuration."""
        if not self.log_path.exists():
            return

        should_rotate = False

        if self.rotation == "size":
            size_mb = self.log_path.stat().st_size / (1024 * 1024)
            if size_mb >= self.max_size_mb:
                should_rotate = True

        elif self.rotation == "daily":
            mtime = datetime.fromtimestamp(self.log_path.stat().st_mtime)
            if mtime.date() < datetime.now().date():
                should_rotate = True

        elif self.rotation == "weekly":
            mtime = datetime.fromtimestamp(self.log_path.stat().st_mtime)
            if (datetime.now() - mtime).days >= 7:
                should_rotate = True

        if should_rotate:
            self._rotate_log()

    def _rotate_log(self) -> None:
        """Rotate the current log file."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        rotated_name = f"{self.log_path.stem}_{timestamp}{self.log_path.suffix}"
        rotated_path = self.log_path.parent / rotated_name

        self.log_path.rename(rotated_path)
        logger.info(f"Rotated message log to {rotated_path.name}")

        if self.compress_old:
            self._compress_log(rotated_path)

        self._clean_old_logs()

    def _compress_log(self, log_path: Path) -> None:
        """Compress a log file with gzip."""
        compressed_path = log_path.with_suffix(log_path.suffix + ".gz")

        with log_path.open("rb") as f_in, gzip.open(compressed_path, "wb") as f_out:
            f_out.write(f_in.read())

        log_path.unlink()

    def _clean_old_logs(self) -> None:
        """Remove logs older than retention period."""
        cutoff = datetime.now() - timedelta(days=self.retention_days)

        pattern = f"{self.log_path.stem}_*{self.log_path.suffix}*"
        for old_log in self.log_path.parent.glob(pattern):
            mtime = datetime.fromtimestamp(old_log.stat().st_mtime)
            if mtime < cutoff:
                old_log.unlink()

    def close(self) -> None:
        """Close the message log and flush remaining records."""
        self.flush()


# Singleton instance
_message_log: MessageLog | None = None


def get_message_log(config: Any | None = None) -> MessageLog:
    """
    Get or create the global message log instance.

    Args:
        config: Optional MessageLogConfig for initialization

    Returns:
        MessageLog instance
    """
    global _message_log

    if _message_log is None:
        if config is None:
            from relaydesk.config.loader import get_config

            config = get_config().message_log

        _message_log = MessageLog.from_config(config)

    return _message_log


def reset_message_log() -> None:
    """Reset the global message log instance."""
    global _message_log
    _message_log = None
