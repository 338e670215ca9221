"""Utility functions for bucketsync."""

import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import psutil

# =============================================================================
# Timestamp utilities
# =============================================================================


def now_ts() -> int:
    """Current time as a Unix timestamp in seconds."""
    return int(time.time())


def datetime_to_millis(dt: Optional[datetime]) -> Optional[int]:
    """Convert a datetime to Unix milliseconds.

    Naive datetimes are taken to be UTC, which is what object-storage
    listings report.

    Examples:
        >>> datetime_to_millis(datetime(2025, 1, 1, tzinfo=timezone.utc))
        1735689600000
        >>> datetime_to_millis(None) is None
        True
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def file_mtime_millis(path: Path) -> int:
    """Modification time of a local file in Unix milliseconds."""
    return path.stat().st_mtime_ns // 1_000_000


def format_timestamp(timestamp: Optional[int]) -> str:
    """Format a Unix timestamp (seconds) for display.

    Examples:
        >>> format_timestamp(None)
        '-'
    """
    if timestamp is None:
        return "-"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


# =============================================================================
# Path utilities
# =============================================================================


def normalize_prefix(prefix: Optional[str]) -> str:
    """Normalize a remote prefix: no leading or trailing slashes.

    Examples:
        >>> normalize_prefix("/backups/photos/")
        'backups/photos'
        >>> normalize_prefix(None)
        ''
    """
    if not prefix:
        return ""
    return prefix.strip("/")


def build_remote_key(prefix: str, relative_path: str) -> str:
    """Join a remote prefix and a relative path into an object key.

    Examples:
        >>> build_remote_key("backups", "docs/a.txt")
        'backups/docs/a.txt'
        >>> build_remote_key("", "/a.txt")
        'a.txt'
    """
    relative = relative_path.lstrip("/")
    if not prefix:
        return relative
    return f"{prefix}/{relative}"


def is_safe_relative_path(relative_path: str) -> bool:
    """Check that a relative path stays inside the directory it is joined to.

    Examples:
        >>> is_safe_relative_path("docs/readme.md")
        True
        >>> is_safe_relative_path("../etc/passwd")
        False
        >>> is_safe_relative_path("")
        False
    """
    if not relative_path:
        return False
    parts = relative_path.replace("\\", "/").split("/")
    return ".." not in parts


# =============================================================================
# Process ownership utilities
# =============================================================================


def current_owner() -> str:
    """Identify the running process as ``"<pid>:<start time>"``.

    The start time tells a live owner apart from a later process that
    reused the same pid.
    """
    process = psutil.Process()
    return f"{process.pid}:{process.create_time():.3f}"


def is_owner_alive(owner: Optional[str]) -> bool:
    """Check whether the process named by :func:`current_owner` still runs.

    Unparseable or missing owners count as dead. A process whose details
    cannot be read counts as alive.
    """
    if not owner:
        return False
    try:
        pid_text, started_text = owner.split(":", 1)
        pid = int(pid_text)
        started = float(started_text)
    except ValueError:
        return False

    try:
        process = psutil.Process(pid)
        if process.status() == psutil.STATUS_ZOMBIE:
            return False
        return abs(process.create_time() - started) < 1.0
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        return True


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"
