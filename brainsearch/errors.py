"""
Error types for brainsearch, plus error logging for the CLI.

ValidationError is the caller's fault and is always raised. ProviderError
and StoreError describe collaborator failures; the retrieval engine logs
them and falls back to the next strategy.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class BrainSearchError(Exception):
    """Base class for all brainsearch errors."""


class ValidationError(BrainSearchError, ValueError):
    """Malformed input the caller controls (blank id, mismatched vectors)."""


class ProviderError(BrainSearchError):
    """The embedding backend failed or returned an unusable vector."""


class StoreError(BrainSearchError):
    """The item store failed with a genuine I/O error (not "not found")."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting BRAINSEARCH_STORE_PATH."""
    store = os.environ.get("BRAINSEARCH_STORE_PATH")
    if store:
        return Path(store) / "brainsearch-errors.log"
    return Path.home() / ".brainsearch" / "brainsearch-errors.log"


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
            f.write(f"[{timestamp}] {type(exc).__name__}")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log; the caller still reports the error
    return log_path
