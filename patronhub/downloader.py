"""
Download Executor - fetch remote assets onto disk.

Handles:
- Manual redirect following, re-deciding per hop whether the session cookie
  may be sent (only to the trusted platform's own hosts)
- HLS manifests, handed to an external muxer instead of saved as text
- Login pages served in place of files, detected and raised as auth failures
- Safe file naming with an extension inferred from the MIME type
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Protocol
from urllib.parse import unquote, urljoin, urlsplit

import aiohttp

from .adapters.patreon.client import USER_AGENT, is_patreon_host
from .archive.paths import sanitize_file_name
from .exceptions import AuthenticationExpiredError, DownloadError

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 10
CHUNK_SIZE = 64 * 1024
SNIPPET_LENGTH = 300

MIME_EXTENSIONS = {
    "video/mp4": "mp4",
    "video/webm": "webm",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
    "audio/wav": "wav",
    "audio/flac": "flac",
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "application/pdf": "pdf",
    "text/plain": "txt",
    "application/json": "json",
}

_HLS_PATTERN = re.compile(r"\.m3u8(?:\?|$)", re.IGNORECASE)
_VIDEO_SUFFIXES = (".mp4", ".mkv", ".mov")


@dataclass
class DownloadResult:
    absolute_path: Path
    file_name: str
    size_bytes: int
    mime_type: str | None


@dataclass
class _Request:
    url: str
    output_dir: Path
    file_name_hint: str | None
    cookie: str | None
    referer: str | None
    reserved: set[str] | None
    trusted_host: Callable[[str | None], bool]


class MediaMuxer(Protocol):
    """Copies a streaming manifest into a single local media file."""

    async def remux(self, source_url: str, output_path: Path, headers: dict[str, str]) -> None:
        ...


class FfmpegMuxer:
    """MediaMuxer backed by the ffmpeg binary (stream copy, no re-encode)."""

    def __init__(self, binary: str = "ffmpeg"):
        self.binary = binary

    def build_args(self, source_url: str, output_path: Path, headers: dict[str, str]) -> list[str]:
        args = [self.binary, "-nostdin", "-hide_banner", "-loglevel", "error", "-y"]
        if headers:
            args += ["-headers", "".join(f"{k}: {v}\r\n" for k, v in headers.items())]
        args += ["-i", source_url, "-c", "copy", str(output_path)]
        return args

    async def remux(self, source_url: str, output_path: Path, headers: dict[str, str]) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                *self.build_args(source_url, output_path, headers),
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise DownloadError(
                f"HLS download failed via ffmpeg. Ensure ffmpeg is installed and on PATH. {e}"
            ) from e

        _, stderr = await process.communicate()
        if process.returncode != 0:
            message = stderr.decode(errors="replace").strip()[:SNIPPET_LENGTH]
            raise DownloadError(
                "HLS download failed via ffmpeg. Ensure ffmpeg is installed and the URL is "
                f"accessible. {message}"
            )


def is_hls_url(url: str) -> bool:
    return bool(_HLS_PATTERN.search(url))


def extension_from_mime(content_type: str | None) -> str | None:
    if not content_type:
        return None
    mime = content_type.split(";")[0].strip().lower()
    return MIME_EXTENSIONS.get(mime)


def file_name_from_url(url: str) -> str | None:
    name = unquote(PurePosixPath(urlsplit(url).path).name)
    return name or None


def choose_file_name(url: str, file_name_hint: str | None) -> str:
    """Sanitized hint, else the URL's last path segment, else "download"."""
    if file_name_hint and file_name_hint.strip():
        return sanitize_file_name(file_name_hint)
    from_url = file_name_from_url(url)
    if from_url:
        return sanitize_file_name(from_url)
    return "download"


def ensure_extension(file_name: str, extension: str | None) -> str:
    if not extension or Path(file_name).suffix:
        return file_name
    return f"{file_name}.{extension}"


def ensure_video_extension(file_name: str) -> str:
    path = Path(file_name)
    if path.suffix.lower() in _VIDEO_SUFFIXES:
        return file_name
    if path.suffix.lower() == ".m3u8":
        file_name = path.stem or "download"
    return f"{file_name}.mp4"


def unique_file_name(file_name: str, reserved: set[str] | None) -> str:
    """file_name, or file_name_2, file_name_3... when the name is already reserved."""
    if not reserved:
        return file_name
    taken = {name.lower() for name in reserved}
    if file_name.lower() not in taken:
        return file_name
    path = Path(file_name)
    stem, suffix = (path.stem, path.suffix) if path.stem else (file_name, "")
    n = 2
    while f"{stem}_{n}{suffix}".lower() in taken:
        n += 1
    return f"{stem}_{n}{suffix}"


class Downloader:
    """Downloads one URL into a directory and reports what landed on disk."""

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        muxer: MediaMuxer | None = None,
        trusted_host: Callable[[str | None], bool] = is_patreon_host,
        timeout: int = 600,
    ):
        self._session = session
        self.muxer = muxer or FfmpegMuxer()
        self.trusted_host = trusted_host
        self.timeout = timeout

    async def download_to_file(
        self,
        url: str,
        output_dir: Path,
        file_name_hint: str | None = None,
        cookie: str | None = None,
        referer: str | None = None,
        reserved: set[str] | None = None,
        trusted_host: Callable[[str | None], bool] | None = None,
    ) -> DownloadResult:
        """
        Download a URL into output_dir.

        reserved holds file names already in use in output_dir; a clashing name
        gets a numeric suffix. trusted_host overrides the downloader's own
        policy for which hosts may receive the cookie.

        Raises:
            AuthenticationExpiredError: If a trusted host served an HTML page
            DownloadError: On HTTP errors, redirect loops, I/O or muxer failures
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        request = _Request(
            url, output_dir, file_name_hint, cookie, referer, reserved, trusted_host or self.trusted_host
        )

        if is_hls_url(url):
            return await self._download_hls(request)

        try:
            if self._session is not None:
                return await self._download(self._session, request)
            async with aiohttp.ClientSession() as session:
                return await self._download(session, request)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DownloadError(f"Download failed for {url}: {e}") from e

    @staticmethod
    def _headers(url: str, request: _Request) -> dict[str, str]:
        headers = {"User-Agent": USER_AGENT}
        if request.referer:
            headers["Referer"] = request.referer
        if request.cookie and request.trusted_host(urlsplit(url).hostname):
            headers["Cookie"] = request.cookie
        return headers

    async def _download(self, session: aiohttp.ClientSession, request: _Request) -> DownloadResult:
        url = request.url
        current = url
        for _ in range(MAX_REDIRECTS + 1):
            async with session.get(
                current,
                headers=self._headers(current, request),
                allow_redirects=False,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                if 300 <= resp.status < 400:
                    location = resp.headers.get("Location")
                    if not location:
                        raise DownloadError(f"Redirect with no Location header for {current}")
                    current = urljoin(current, location)
                    continue

                if not 200 <= resp.status < 300:
                    raise DownloadError(f"Download failed ({resp.status}) for {url}")

                mime_type = resp.headers.get("Content-Type")
                host = urlsplit(current).hostname
                if self._is_login_page(mime_type) and request.trusted_host(host):
                    raw = await resp.content.read(SNIPPET_LENGTH)
                    snippet = raw.decode(errors="replace")
                    raise AuthenticationExpiredError(
                        f"Expected a file from {host} but received an HTML page; the session "
                        f"cookie is likely expired or missing. Response began: {snippet!r}",
                        status=resp.status,
                        snippet=snippet,
                    )

                file_name = unique_file_name(
                    ensure_extension(choose_file_name(url, request.file_name_hint), extension_from_mime(mime_type)),
                    request.reserved,
                )
                absolute_path = request.output_dir / file_name
                size = await self._stream_to_disk(resp, absolute_path)
                logger.info(f"Downloaded {url} -> {absolute_path} ({size} bytes)")
                return DownloadResult(absolute_path, file_name, size, mime_type)

        raise DownloadError(f"Too many redirects downloading {url}")

    @staticmethod
    def _is_login_page(mime_type: str | None) -> bool:
        return bool(mime_type) and mime_type.split(";")[0].strip().lower() == "text/html"

    async def _stream_to_disk(self, resp, absolute_path: Path) -> int:
        """Write the body to a .part file, renaming it into place once complete."""
        partial = absolute_path.with_name(absolute_path.name + ".part")
        size = 0
        try:
            with open(partial, "wb") as f:
                async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                    f.write(chunk)
                    size += len(chunk)
            partial.replace(absolute_path)
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise DownloadError(f"Could not write {absolute_path}: {e}") from e
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
        return size

    async def _download_hls(self, request: _Request) -> DownloadResult:
        url = request.url
        file_name = unique_file_name(
            ensure_video_extension(choose_file_name(url, request.file_name_hint)), request.reserved
        )
        absolute_path = request.output_dir / file_name
        headers = self._headers(url, request)
        headers.pop("User-Agent", None)

        await self.muxer.remux(url, absolute_path, headers)
        if not absolute_path.exists():
            raise DownloadError(f"Muxer reported success but wrote no file for {url}")

        size = absolute_path.stat().st_size
        logger.info(f"Remuxed HLS stream {url} -> {absolute_path} ({size} bytes)")
        return DownloadResult(absolute_path, file_name, size, "video/mp4")

