"""
On-disk archive layout.

Every content item lives in its own directory:

    {archive_root}/{platform}/{creator_slug}/{yyyy-MM}/{sanitized_title}/

with a ``post.html`` snapshot and the downloaded assets as siblings. Other
tooling reads this layout, so it must stay stable.
"""

import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

MAX_FILE_NAME_LENGTH = 100
SNAPSHOT_FILE_NAME = "post.html"

_INVALID_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')

_EXTENSION_TYPES = {
    "video": ("mp4", "webm", "mkv", "avi", "mov", "m4v"),
    "image": ("jpg", "jpeg", "png", "gif", "webp", "bmp", "svg"),
    "audio": ("mp3", "wav", "flac", "aac", "m4a", "ogg"),
    "pdf": ("pdf",),
    "article": ("html", "htm", "md", "txt"),
}

_FALLBACK_EXTENSIONS = {
    "pdf": "pdf",
    "video": "mp4",
    "audio": "mp3",
    "image": "jpg",
    "article": "html",
}


@dataclass
class ArchiveStats:
    total_size: int = 0
    file_count: int = 0
    directory_count: int = 0


def sanitize_file_name(name: str | None) -> str:
    """
    Make a string safe to use as a file or directory name.

    Invalid characters become underscores, whitespace runs become a single
    underscore, trailing dots are dropped and the result is capped at 100
    characters. Returns "untitled" when nothing usable remains.
    """
    sanitized = _INVALID_CHARS.sub("_", name or "")
    sanitized = sanitized.rstrip(".").strip()
    sanitized = re.sub(r"\s+", "_", sanitized)
    sanitized = re.sub(r"_+", "_", sanitized)
    sanitized = sanitized[:MAX_FILE_NAME_LENGTH].rstrip(".")
    # "." and ".." name the directory itself or its parent
    if not sanitized.strip("._"):
        return "untitled"
    return sanitized


def extension_of(value: str) -> str:
    """Lowercase extension of a file name or URL path, without the dot."""
    path = urlsplit(value).path if "://" in value else value
    return Path(path).suffix.lower().lstrip(".")


def content_type_from_extension(file_name: str) -> str:
    """Map a file name or URL to a content type, defaulting to attachment."""
    ext = extension_of(file_name)
    for content_type, extensions in _EXTENSION_TYPES.items():
        if ext in extensions:
            return content_type
    return "attachment"


def fallback_extension(content_type: str) -> str:
    return _FALLBACK_EXTENSIONS.get(content_type, "bin")


def resolve_archive_root(configured: str | None) -> Path:
    """The archive root, defaulting to ./archive under the working directory."""
    if configured:
        return Path(configured).expanduser()
    return Path.cwd() / "archive"


def content_directory(
    archive_root: Path,
    platform: str,
    creator_slug: str,
    published_at: datetime,
    title: str,
) -> Path:
    """Directory that holds one content item's snapshot and assets."""
    return (
        archive_root
        / platform
        / creator_slug
        / published_at.strftime("%Y-%m")
        / sanitize_file_name(title)
    )


def relative_archive_path(path: Path, archive_root: Path) -> str:
    """Path relative to the archive root, as stored in download records."""
    try:
        return path.resolve().relative_to(archive_root.resolve()).as_posix()
    except ValueError:
        return path.as_posix()


def is_archive_writable(archive_root: Path) -> bool:
    """Check the archive root exists (creating it) and accepts writes."""
    try:
        archive_root.mkdir(parents=True, exist_ok=True)
        marker = archive_root / ".write-test"
        marker.write_text("test")
        marker.unlink()
        return True
    except OSError as e:
        logger.warning(f"Archive root {archive_root} is not writable: {e}")
        return False


def get_archive_stats(archive_root: Path) -> ArchiveStats:
    """Walk the archive and total up files, directories and bytes."""
    stats = ArchiveStats()
    if not archive_root.exists():
        return stats

    for dirpath, dirnames, filenames in os.walk(archive_root):
        stats.directory_count += len(dirnames)
        for filename in filenames:
            stats.file_count += 1
            try:
                stats.total_size += os.path.getsize(os.path.join(dirpath, filename))
            except OSError:
                continue
    return stats


def format_bytes(size: int) -> str:
    """Human-readable byte count."""
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size)
    for unit in units:
        if value < 1024 or unit == units[-1]:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TB"
