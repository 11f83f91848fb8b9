"""
Archive: on-disk layout, post snapshots and the archive writer.
"""

from .paths import (
    SNAPSHOT_FILE_NAME,
    ArchiveStats,
    content_directory,
    format_bytes,
    get_archive_stats,
    is_archive_writable,
    relative_archive_path,
    resolve_archive_root,
    sanitize_file_name,
)
from .writer import ArchiveOutcome, ArchiveWriter

__all__ = [
    "SNAPSHOT_FILE_NAME",
    "ArchiveOutcome",
    "ArchiveStats",
    "ArchiveWriter",
    "content_directory",
    "format_bytes",
    "get_archive_stats",
    "is_archive_writable",
    "relative_archive_path",
    "resolve_archive_root",
    "sanitize_file_name",
]
