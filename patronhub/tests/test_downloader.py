"""
Tests for the download executor.
"""

from pathlib import Path

import aiohttp
import pytest

from patronhub.downloader import (
    Downloader,
    FfmpegMuxer,
    choose_file_name,
    ensure_extension,
    ensure_video_extension,
    extension_from_mime,
    file_name_from_url,
    is_hls_url,
    unique_file_name,
)
from patronhub.exceptions import AuthenticationExpiredError, DownloadError

from .fakes import FakeMuxer, FakeSession

COOKIE = "session_id=secret"
REFERER = "https://www.patreon.com/home"


class FailingSession(FakeSession):
    def get(self, url, headers=None, allow_redirects=True, timeout=None):
        raise aiohttp.ClientConnectionError("connection reset")


class TestFileNaming:
    """Tests for output file naming helpers."""

    def test_hint_preferred_and_sanitized(self):
        assert choose_file_name("https://x.com/a.mp4", "My: Episode?") == "My_Episode_"

    def test_url_segment_percent_decoded(self):
        assert file_name_from_url("https://x.com/files/a%20b.pdf?x=1") == "a b.pdf"
        assert choose_file_name("https://x.com/files/a%20b.pdf", None) == "a_b.pdf"

    def test_fallback_name(self):
        assert choose_file_name("https://x.com/", None) == "download"
        assert choose_file_name("https://x.com/", "   ") == "download"

    def test_extension_from_mime(self):
        assert extension_from_mime("audio/mpeg; charset=binary") == "mp3"
        assert extension_from_mime("VIDEO/MP4") == "mp4"
        assert extension_from_mime("application/octet-stream") is None
        assert extension_from_mime(None) is None

    def test_ensure_extension_keeps_existing(self):
        assert ensure_extension("a.pdf", "mp4") == "a.pdf"
        assert ensure_extension("a", "mp4") == "a.mp4"
        assert ensure_extension("a", None) == "a"

    def test_ensure_video_extension(self):
        """HLS outputs should always end up as a video container."""
        assert ensure_video_extension("clip.m3u8") == "clip.mp4"
        assert ensure_video_extension("clip.mkv") == "clip.mkv"
        assert ensure_video_extension("clip") == "clip.mp4"

    def test_is_hls_url(self):
        assert is_hls_url("https://x.com/v/index.m3u8")
        assert is_hls_url("https://x.com/v/index.M3U8?token=1")
        assert not is_hls_url("https://x.com/v/index.m3u8.txt")
        assert not is_hls_url("https://x.com/v/clip.mp4")

    def test_unique_file_name_suffixes_reserved_names(self):
        assert unique_file_name("1.jpg", None) == "1.jpg"
        assert unique_file_name("1.jpg", {"post.html"}) == "1.jpg"
        assert unique_file_name("1.jpg", {"1.JPG"}) == "1_2.jpg"
        assert unique_file_name("1.jpg", {"1.jpg", "1_2.jpg"}) == "1_3.jpg"
        assert unique_file_name("download", {"download"}) == "download_2"


class TestFfmpegMuxer:
    """Tests for ffmpeg argument construction."""

    def test_build_args_with_headers(self):
        args = FfmpegMuxer().build_args(
            "https://x.com/v.m3u8", Path("/tmp/out.mp4"), {"Cookie": "a=b", "Referer": REFERER}
        )

        assert args[0] == "ffmpeg"
        assert "-nostdin" in args
        headers = args[args.index("-headers") + 1]
        assert headers == f"Cookie: a=b\r\nReferer: {REFERER}\r\n"
        assert args[-5:] == ["-i", "https://x.com/v.m3u8", "-c", "copy", "/tmp/out.mp4"]

    def test_build_args_without_headers(self):
        args = FfmpegMuxer("/usr/bin/ffmpeg").build_args("https://x.com/v.m3u8", Path("out.mp4"), {})
        assert args[0] == "/usr/bin/ffmpeg"
        assert "-headers" not in args


class TestDownloader:
    """Tests for Downloader.download_to_file."""

    @pytest.mark.asyncio
    async def test_streams_file_to_disk(self, tmp_path):
        url = "https://c10.patreonusercontent.com/f/ep1.mp4"
        session = FakeSession({url: (200, {"Content-Type": "video/mp4"}, b"0123456789" * 10_000)})
        downloader = Downloader(session=session, muxer=FakeMuxer())

        result = await downloader.download_to_file(url, tmp_path / "item", cookie=COOKIE, referer=REFERER)

        assert result.file_name == "ep1.mp4"
        assert result.size_bytes == 100_000
        assert result.mime_type == "video/mp4"
        assert result.absolute_path.read_bytes() == b"0123456789" * 10_000
        assert list((tmp_path / "item").iterdir()) == [result.absolute_path]

    @pytest.mark.asyncio
    async def test_cookie_only_sent_to_trusted_hosts(self, tmp_path):
        """The cookie should be dropped on the hop that leaves patreon.com."""
        start = "https://www.patreon.com/file?h=1"
        cdn = "https://cdn.example.com/ep.mp3"
        session = FakeSession({
            start: (302, {"Location": cdn}, b""),
            cdn: (200, {"Content-Type": "audio/mpeg"}, b"ID3audio"),
        })
        downloader = Downloader(session=session, muxer=FakeMuxer())

        result = await downloader.download_to_file(start, tmp_path, cookie=COOKIE, referer=REFERER)

        (first_url, first_headers), (second_url, second_headers) = session.calls
        assert first_url == start
        assert first_headers["Cookie"] == COOKIE
        assert second_url == cdn
        assert "Cookie" not in second_headers
        assert second_headers["Referer"] == REFERER
        # Named from the requested URL, with the extension from the final MIME type
        assert result.file_name == "file.mp3"

    @pytest.mark.asyncio
    async def test_cookie_not_sent_to_lookalike_host(self, tmp_path):
        url = "https://patreon.com.evil.example/f.pdf"
        session = FakeSession({url: (200, {"Content-Type": "application/pdf"}, b"%PDF")})

        await Downloader(session=session, muxer=FakeMuxer()).download_to_file(url, tmp_path, cookie=COOKIE)

        assert "Cookie" not in session.calls[0][1]

    @pytest.mark.asyncio
    async def test_relative_redirect(self, tmp_path):
        start = "https://www.patreon.com/file?h=1"
        session = FakeSession({
            start: (301, {"Location": "/media/real.pdf"}, b""),
            "https://www.patreon.com/media/real.pdf": (200, {"Content-Type": "application/pdf"}, b"%PDF"),
        })

        result = await Downloader(session=session, muxer=FakeMuxer()).download_to_file(
            start, tmp_path, file_name_hint="Notes.pdf", cookie=COOKIE
        )

        assert result.file_name == "Notes.pdf"
        assert session.calls[1][1]["Cookie"] == COOKIE

    @pytest.mark.asyncio
    async def test_login_page_from_patreon_is_auth_error(self, tmp_path):
        """An HTML page served by Patreon in place of a file means the cookie expired."""
        url = "https://www.patreon.com/file?h=2"
        session = FakeSession({url: (200, {"Content-Type": "text/html; charset=utf-8"}, b"<html>Log in</html>")})

        with pytest.raises(AuthenticationExpiredError) as exc_info:
            await Downloader(session=session, muxer=FakeMuxer()).download_to_file(url, tmp_path, cookie=COOKIE)

        assert exc_info.value.snippet.startswith("<html>Log in")
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_html_from_other_host_is_saved(self, tmp_path):
        url = "https://blog.example.com/article"
        session = FakeSession({url: (200, {"Content-Type": "text/html"}, b"<html>post</html>")})

        result = await Downloader(session=session, muxer=FakeMuxer()).download_to_file(url, tmp_path)

        assert result.file_name == "article"
        assert result.absolute_path.read_bytes() == b"<html>post</html>"

    @pytest.mark.asyncio
    async def test_http_error(self, tmp_path):
        url = "https://c10.patreonusercontent.com/missing.mp4"
        session = FakeSession({})

        with pytest.raises(DownloadError, match="404"):
            await Downloader(session=session, muxer=FakeMuxer()).download_to_file(url, tmp_path)

    @pytest.mark.asyncio
    async def test_redirect_loop(self, tmp_path):
        url = "https://www.patreon.com/loop"
        session = FakeSession({url: (302, {"Location": url}, b"")})

        with pytest.raises(DownloadError, match="Too many redirects"):
            await Downloader(session=session, muxer=FakeMuxer()).download_to_file(url, tmp_path)

    @pytest.mark.asyncio
    async def test_redirect_without_location(self, tmp_path):
        url = "https://www.patreon.com/broken"
        session = FakeSession({url: (302, {}, b"")})

        with pytest.raises(DownloadError, match="no Location"):
            await Downloader(session=session, muxer=FakeMuxer()).download_to_file(url, tmp_path)

    @pytest.mark.asyncio
    async def test_network_error_wrapped(self, tmp_path):
        with pytest.raises(DownloadError, match="connection reset"):
            await Downloader(session=FailingSession({}), muxer=FakeMuxer()).download_to_file(
                "https://x.com/a.mp4", tmp_path
            )

    @pytest.mark.asyncio
    async def test_hls_goes_through_muxer(self, tmp_path):
        """HLS manifests should be remuxed, with credentials but no User-Agent header."""
        url = "https://stream.patreon.com/v/abc.m3u8?token=1"
        session = FakeSession({})
        muxer = FakeMuxer(payload=b"mp4-bytes")

        result = await Downloader(session=session, muxer=muxer).download_to_file(
            url, tmp_path, cookie=COOKIE, referer=REFERER
        )

        assert session.calls == []
        [(source, output, headers)] = muxer.calls
        assert source == url
        assert output == tmp_path / "abc.mp4"
        assert headers == {"Cookie": COOKIE, "Referer": REFERER}
        assert result.file_name == "abc.mp4"
        assert result.mime_type == "video/mp4"
        assert result.size_bytes == len(b"mp4-bytes")

    @pytest.mark.asyncio
    async def test_hls_muxer_failure(self, tmp_path):
        muxer = FakeMuxer(error=DownloadError("HLS download failed via ffmpeg"))

        with pytest.raises(DownloadError, match="ffmpeg"):
            await Downloader(session=FakeSession({}), muxer=muxer).download_to_file(
                "https://x.com/v.m3u8", tmp_path
            )

    @pytest.mark.asyncio
    async def test_hls_muxer_wrote_nothing(self, tmp_path):
        class SilentMuxer:
            async def remux(self, source_url, output_path, headers):
                return None

        with pytest.raises(DownloadError, match="wrote no file"):
            await Downloader(session=FakeSession({}), muxer=SilentMuxer()).download_to_file(
                "https://x.com/v.m3u8", tmp_path
            )
