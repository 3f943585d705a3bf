"""
Error types and error logging for ghsum.

Logs full stack traces for debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class GhsumError(Exception):
    """Base class for ghsum errors."""


class QuotaExceededError(GhsumError):
    """The key-value store rejected a write because its quota is full."""

    def __init__(self, key: str, required: int, available: int):
        self.key = key
        self.required = required
        self.available = available
        super().__init__(
            f"Quota exceeded writing {key!r}: need {required} bytes, {available} available"
        )


class StoreWriteError(GhsumError):
    """The key-value store failed a write for a reason other than quota."""


class BulkStoreError(GhsumError):
    """The record store could not be cleared."""


class MalformedEntryError(GhsumError):
    """A stored value expected to hold JSON could not be parsed."""

    def __init__(self, key: str, reason: str):
        self.key = key
        super().__init__(f"Malformed entry at {key!r}: {reason}")


def _error_log_path() -> Path:
    """Resolve error log path, respecting GHSUM_STORE_PATH."""
    store = os.environ.get("GHSUM_STORE_PATH")
    if store:
        return Path(store) / "ghsum-errors.log"
    return Path.home() / ".ghsum" / "ghsum-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log, don't crash over it
    return log_path
