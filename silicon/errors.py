"""
Exceptions and error logging for silicon.

Logs full stack traces for debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class SiliconError(Exception):
    """Base exception for all silicon errors."""


class EmbeddingProviderError(SiliconError):
    """
    The embedding provider could not produce vectors.

    Raised on network failure, authentication failure, or a malformed
    response. Recovered locally by the indexer: the document keeps its
    previous record and the pass continues.
    """

    def __init__(self, message: str, provider: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class StorageError(SiliconError):
    """Reading or writing the persistent record store failed."""


class NoActiveDocument(SiliconError):
    """The query target does not exist in the document source."""

    def __init__(self, identity: str | None):
        super().__init__(f"No active document: {identity!r}")
        self.identity = identity


ERROR_LOG_FILENAME = "silicon-errors.log"


def _error_log_path(store_path: Path | None = None) -> Path:
    """Error log inside the store: explicit path, else SILICON_STORE_PATH, else ~/.silicon."""
    if store_path is None:
        env = os.environ.get("SILICON_STORE_PATH")
        store_path = Path(env).expanduser() if env else Path.home() / ".silicon"
    return Path(store_path) / ERROR_LOG_FILENAME


def format_error_entry(exc: BaseException, context: str = "") -> str:
    """One log entry: separator, UTC timestamp with context, exception type, traceback."""
    header = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    if context:
        header += f" {context}"
    trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return f"\n{'-' * 72}\n{header}: {type(exc).__name__}\n{trace}"


def log_exception(exc: BaseException, context: str = "", store_path: Path | None = None) -> Path:
    """
    Append an exception and its traceback to the store's error log.

    The file is created owner-only, since tracebacks can carry note paths.
    Failing to write the log never raises.

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path(store_path)
    entry = format_error_entry(exc, context)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a", encoding="utf-8") as f:
            f.write(entry)
    except OSError:
        pass
    return log_path
