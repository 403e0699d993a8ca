"""
Audit log for applied alt text changes.

Append-only text file, one line per change:

    [2026-10-19 14:03:11] scan: Asset 42 alt set to: My Cat
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)

LOG_FILENAME = 'alt-text.log'
TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'


@dataclass(frozen=True)
class LogEntry:
    """One applied alt text change."""
    asset_id: int
    alt_text: str
    context: str
    timestamp: datetime = field(default_factory=datetime.now)

    def format_line(self) -> str:
        message = f"{self.context}: Asset {self.asset_id} alt set to: {self.alt_text}"
        # Keep one entry per line
        message = ' '.join(message.splitlines())
        return f"[{self.timestamp.strftime(TIMESTAMP_FORMAT)}] {message}"


class AuditLog:
    """Appends LogEntry lines to a log file; never raises on write failure."""

    def __init__(self, log_dir: Path):
        """
        Initialize the audit log.

        Args:
            log_dir: Directory holding the log file (created on first write)
        """
        self.log_dir = Path(log_dir)
        self.log_path = self.log_dir / LOG_FILENAME

    def append(self, entry: LogEntry, enabled: bool = True) -> bool:
        """
        Append an entry when logging is enabled.

        Args:
            entry: The change to record
            enabled: The enable_logging setting

        Returns:
            True if the entry was written
        """
        if not enabled:
            return False

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, 'a', encoding='utf-8') as f:
                f.write(entry.format_line() + '\n')
        except (OSError, ValueError) as e:
            logger.warning("Could not write audit log entry for asset %s: %s", entry.asset_id, e)
            return False

        return True

    def read_lines(self) -> List[str]:
        """Return all logged lines (empty if nothing has been logged)."""
        if not self.log_path.exists():
            return []

        with open(self.log_path, 'r', encoding='utf-8') as f:
            return [line.rstrip('\n') for line in f if line.strip()]
