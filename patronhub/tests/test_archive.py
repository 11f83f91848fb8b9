"""
Tests for the archive layout, post snapshots and the archive writer.
"""

from datetime import datetime, timezone

import pytest

from patronhub.archive import ArchiveWriter, content_directory, format_bytes, get_archive_stats, sanitize_file_name
from patronhub.archive.paths import content_type_from_extension, relative_archive_path
from patronhub.archive.snapshot import (
    MAX_CAPTURE_CHARS,
    PLACEHOLDER_BODY,
    capture_body,
    render_snapshot,
    sanitize_post_html,
)
from patronhub.downloader import Downloader
from patronhub.exceptions import ContentNotFoundError, UpstreamError
from patronhub.services.settings_service import SettingsService

from .fakes import FakeAdapter, FakeMuxer, FakeSession

VIDEO_URL = "https://c10.patreonusercontent.com/f/ep.mp4"
PDF_URL = "https://c10.patreonusercontent.com/f/notes.pdf"
POST_URL = "https://www.patreon.com/posts/my-post-55"


# ─────────────────────────────────────────────────────────────
# Layout
# ─────────────────────────────────────────────────────────────

class TestSanitizeFileName:
    """Tests for file and directory name sanitization."""

    def test_strips_reserved_characters(self):
        result = sanitize_file_name("My: Title/With*Bad?Chars")
        assert not any(ch in result for ch in '<>:"/\\|?*')
        assert result == "My_Title_With_Bad_Chars"

    def test_control_characters_removed(self):
        assert "\x07" not in sanitize_file_name("bell\x07name")

    def test_length_capped(self):
        assert len(sanitize_file_name("x" * 500)) == 100

    @pytest.mark.parametrize("value", ["", "   ", "...", None, "/", ". .", " . ", "._.", "_"])
    def test_empty_becomes_untitled(self, value):
        assert sanitize_file_name(value) == "untitled"

    def test_trailing_dots_dropped(self):
        assert sanitize_file_name("Chapter 1...") == "Chapter_1"

    def test_dot_names_cannot_escape_the_directory(self, tmp_path):
        published = datetime(2024, 3, 1, tzinfo=timezone.utc)
        path = content_directory(tmp_path, "patreon", "ada-1001", published, ". .")
        assert path == tmp_path / "patreon" / "ada-1001" / "2024-03" / "untitled"

    def test_cap_does_not_leave_trailing_dot(self):
        assert sanitize_file_name("x" * 99 + ".y") == "x" * 99


class TestArchiveLayout:
    """Tests for archive directory helpers."""

    def test_content_directory(self, tmp_path):
        published = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        path = content_directory(tmp_path, "patreon", "ada-1001", published, "Episode: One")
        assert path == tmp_path / "patreon" / "ada-1001" / "2024-03" / "Episode_One"

    def test_relative_archive_path(self, tmp_path):
        path = tmp_path / "patreon" / "a" / "post.html"
        assert relative_archive_path(path, tmp_path) == "patreon/a/post.html"

    @pytest.mark.parametrize("name,expected", [
        ("a.MP4", "video"),
        ("https://x.com/a.flac?x=1", "audio"),
        ("a.pdf", "pdf"),
        ("a.webp", "image"),
        ("a.zip", "attachment"),
        ("noext", "attachment"),
    ])
    def test_content_type_from_extension(self, name, expected):
        assert content_type_from_extension(name) == expected

    def test_format_bytes(self):
        assert format_bytes(0) == "0 B"
        assert format_bytes(512) == "512.0 B"
        assert format_bytes(1536) == "1.5 KB"

    def test_archive_stats(self, tmp_path):
        (tmp_path / "a" / "b").mkdir(parents=True)
        (tmp_path / "a" / "b" / "f.bin").write_bytes(b"x" * 10)
        (tmp_path / "g.bin").write_bytes(b"y" * 5)

        stats = get_archive_stats(tmp_path)

        assert stats.file_count == 2
        assert stats.total_size == 15
        assert stats.directory_count == 2

    def test_archive_stats_missing_root(self, tmp_path):
        assert get_archive_stats(tmp_path / "nope").file_count == 0


# ─────────────────────────────────────────────────────────────
# Snapshot
# ─────────────────────────────────────────────────────────────

class TestSnapshot:
    """Tests for post snapshot rendering."""

    def test_sanitize_removes_executable_content(self):
        raw = (
            '<p onclick="steal()">Hi <a href="javascript:alert(1)">bad</a>'
            '<a href="https://example.com">ok</a></p>'
            '<script>alert(1)</script><iframe src="https://x.com"></iframe>'
            '<style>p { color: red }</style><img src="https://x.com/i.png" onerror="x()">'
        )

        cleaned = sanitize_post_html(raw)

        assert "onclick" not in cleaned
        assert "onerror" not in cleaned
        assert "javascript:" not in cleaned
        assert "<script" not in cleaned
        assert "<iframe" not in cleaned
        assert "<style" not in cleaned
        assert 'href="https://example.com"' in cleaned
        assert 'src="https://x.com/i.png"' in cleaned

    def test_capture_body_escapes_and_caps(self):
        body = capture_body("<script>x</script>" + "a" * (MAX_CAPTURE_CHARS + 10))
        assert "<script>" not in body
        assert "&lt;script&gt;" in body
        assert body.count("a") <= MAX_CAPTURE_CHARS + 100

    def test_render_escapes_title_and_source(self):
        page = render_snapshot(
            '<b>Title</b> & "quotes"',
            datetime(2024, 3, 1, tzinfo=timezone.utc),
            'https://www.patreon.com/posts/x?a=1&b="2"',
            "<p>Body</p>",
        )

        assert "&lt;b&gt;Title&lt;/b&gt; &amp;" in page
        assert "<p>Body</p>" in page
        assert "2024-03-01T00:00:00+00:00" in page
        assert 'href="https://www.patreon.com/posts/x?a=1&amp;b=&quot;2&quot;"' in page

    def test_render_without_source(self):
        page = render_snapshot("T", datetime(2024, 3, 1, tzinfo=timezone.utc), None, PLACEHOLDER_BODY)
        assert "Source:" not in page
        assert PLACEHOLDER_BODY in page


# ─────────────────────────────────────────────────────────────
# Writer
# ─────────────────────────────────────────────────────────────

class CaptureFailingAdapter(FakeAdapter):
    async def fetch_page(self, url: str) -> str:
        raise UpstreamError("Patreon HTML request failed (403)", status=403)


@pytest.fixture
def session():
    return FakeSession({
        VIDEO_URL: (200, {"Content-Type": "video/mp4"}, b"video-bytes"),
    })


@pytest.fixture
def writer(test_db, test_config, session):
    return ArchiveWriter(
        test_db,
        SettingsService(test_db, test_config),
        Downloader(session=session, muxer=FakeMuxer()),
        adapters={"patreon": FakeAdapter()},
    )


@pytest.fixture
def item_id(test_db, subscription):
    """A post with one downloadable asset and one that 404s."""
    item_id, _ = test_db.content.upsert_post(
        subscription_id=subscription,
        external_id="55",
        title="My: Post",
        description='<p>Hello</p><script>alert(1)</script>',
        content_type="video",
        external_url=POST_URL,
        download_url=VIDEO_URL,
        file_name_hint="ep.mp4",
        published_at="2024-03-01T12:00:00.000000+00:00",
    )
    test_db.assets.add(item_id, VIDEO_URL, "ep.mp4", "video")
    test_db.assets.add(item_id, PDF_URL, "notes.pdf", "pdf")
    return item_id


class TestArchiveWriter:
    """Tests for ArchiveWriter.archive_content_item."""

    @pytest.mark.asyncio
    async def test_writes_snapshot_and_assets(self, writer, test_db, test_config, item_id):
        """Successful assets land beside the snapshot; failures are recorded per asset."""
        outcome = await writer.archive_content_item(item_id)

        item_dir = test_config.ARCHIVE_DIR + "/patreon/test-creator-100/2024-03/My_Post"
        assert outcome.local_path == "patreon/test-creator-100/2024-03/My_Post/post.html"
        assert outcome.downloaded is True
        assert len(outcome.errors) == 1
        assert "404" in outcome.errors[0]

        snapshot = open(f"{item_dir}/post.html", encoding="utf-8").read()
        assert "<p>Hello</p>" in snapshot
        assert "alert(1)" not in snapshot
        assert open(f"{item_dir}/ep.mp4", "rb").read() == b"video-bytes"

        item = test_db.get_content_item(item_id)
        assert item.is_archived is True
        assert item.is_seen is True
        assert "404" in item.archive_error

        statuses = {a.url: a.status for a in test_db.get_assets(item_id)}
        assert statuses == {VIDEO_URL: "downloaded", PDF_URL: "failed"}

        downloads = {d.file_name: d for d in test_db.get_downloads(item_id)}
        assert set(downloads) == {"post.html", "ep.mp4"}
        assert downloads["post.html"].file_type == "snapshot"
        assert downloads["ep.mp4"].file_type == "video"
        assert downloads["ep.mp4"].size_bytes == len(b"video-bytes")
        assert downloads["ep.mp4"].local_path == "patreon/test-creator-100/2024-03/My_Post/ep.mp4"

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, writer, test_db, session, item_id):
        """A second run must not duplicate downloads or refetch downloaded assets."""
        await writer.archive_content_item(item_id)
        first_downloads = test_db.get_downloads(item_id)

        await writer.archive_content_item(item_id)

        second_downloads = test_db.get_downloads(item_id)
        assert len(second_downloads) == len(first_downloads) == 2
        assert {d.local_path for d in second_downloads} == {d.local_path for d in first_downloads}
        assert [url for url, _ in session.calls].count(VIDEO_URL) == 1
        assert [url for url, _ in session.calls].count(PDF_URL) == 2

        video = next(a for a in test_db.get_assets(item_id) if a.url == VIDEO_URL)
        assert video.status == "downloaded"

    @pytest.mark.asyncio
    async def test_error_summary_truncated(self, writer, test_db, subscription):
        """Only the first three asset errors are kept on the item."""
        item_id, _ = test_db.content.upsert_post(subscription, "60", "Many", "<p>x</p>", "attachment")
        for n in range(5):
            test_db.assets.add(item_id, f"https://c10.patreonusercontent.com/missing{n}.zip")

        outcome = await writer.archive_content_item(item_id)

        assert outcome.downloaded is False
        assert len(outcome.errors) == 5
        assert test_db.get_content_item(item_id).archive_error.count(" | ") == 2

    @pytest.mark.asyncio
    async def test_captures_page_when_no_description(self, writer, test_db, test_config, subscription):
        item_id, _ = test_db.content.upsert_post(
            subscription, "61", "Bare", None, "article",
            external_url=POST_URL, published_at="2024-05-02T00:00:00.000000+00:00",
        )

        outcome = await writer.archive_content_item(item_id)

        snapshot = open(f"{test_config.ARCHIVE_DIR}/{outcome.local_path}", encoding="utf-8").read()
        assert "&lt;html&gt;&lt;body&gt;captured" in snapshot
        assert outcome.errors == []

    @pytest.mark.asyncio
    async def test_capture_failure_uses_placeholder(self, test_db, test_config, session, subscription):
        """A failed page capture still writes a snapshot and marks the item archived."""
        writer = ArchiveWriter(
            test_db,
            SettingsService(test_db, test_config),
            Downloader(session=session, muxer=FakeMuxer()),
            adapters={"patreon": CaptureFailingAdapter()},
        )
        item_id, _ = test_db.content.upsert_post(
            subscription, "62", "Locked", None, "article",
            external_url=POST_URL, published_at="2024-05-02T00:00:00.000000+00:00",
        )

        outcome = await writer.archive_content_item(item_id)

        snapshot = open(f"{test_config.ARCHIVE_DIR}/{outcome.local_path}", encoding="utf-8").read()
        assert PLACEHOLDER_BODY in snapshot
        assert outcome.errors[0].startswith("Snapshot capture failed")
        item = test_db.get_content_item(item_id)
        assert item.is_archived is True
        assert item.archive_error.startswith("Snapshot capture failed")

    @pytest.mark.asyncio
    async def test_cookie_sent_for_patreon_assets(self, writer, test_db, session, subscription):
        url = "https://www.patreon.com/file?h=9"
        session.routes[url] = (200, {"Content-Type": "application/pdf"}, b"%PDF")
        item_id, _ = test_db.content.upsert_post(subscription, "63", "Attachment", "<p>x</p>", "pdf")
        test_db.assets.add(item_id, url, "doc.pdf", "pdf")

        await writer.archive_content_item(item_id)

        headers = next(h for u, h in session.calls if u == url)
        assert headers["Cookie"] == "session_id=test"
        assert headers["Referer"] == "https://www.patreon.com/home"

    @pytest.mark.asyncio
    async def test_same_file_name_assets_kept_apart(self, writer, test_db, test_config, session, subscription):
        """Two assets that both end in 1.jpg must land in separate files."""
        first = "https://c10.patreonusercontent.com/aaa/1.jpg"
        second = "https://c10.patreonusercontent.com/bbb/1.jpg"
        session.routes[first] = (200, {"Content-Type": "image/jpeg"}, b"first")
        session.routes[second] = (200, {"Content-Type": "image/jpeg"}, b"second")
        item_id, _ = test_db.content.upsert_post(
            subscription, "64", "Gallery", "<p>x</p>", "image",
            published_at="2024-03-01T12:00:00.000000+00:00",
        )
        test_db.assets.add(item_id, first, None, "image")
        test_db.assets.add(item_id, second, None, "image")

        await writer.archive_content_item(item_id)
        await writer.archive_content_item(item_id)

        item_dir = f"{test_config.ARCHIVE_DIR}/patreon/test-creator-100/2024-03/Gallery"
        downloads = {d.file_name: d for d in test_db.get_downloads(item_id)}
        assert set(downloads) == {"post.html", "1.jpg", "1_2.jpg"}
        assert open(f"{item_dir}/1.jpg", "rb").read() == b"first"
        assert open(f"{item_dir}/1_2.jpg", "rb").read() == b"second"
        assert {a.status for a in test_db.get_assets(item_id)} == {"downloaded"}

    @pytest.mark.asyncio
    async def test_asset_named_like_snapshot_does_not_replace_it(self, writer, test_db, test_config, session, subscription):
        url = "https://c10.patreonusercontent.com/f/post.html"
        session.routes[url] = (200, {"Content-Type": "text/plain"}, b"attached page")
        item_id, _ = test_db.content.upsert_post(
            subscription, "65", "Page", "<p>mine</p>", "attachment",
            published_at="2024-03-01T12:00:00.000000+00:00",
        )
        test_db.assets.add(item_id, url)

        await writer.archive_content_item(item_id)

        item_dir = f"{test_config.ARCHIVE_DIR}/patreon/test-creator-100/2024-03/Page"
        assert "<p>mine</p>" in open(f"{item_dir}/post.html", encoding="utf-8").read()
        assert open(f"{item_dir}/post_2.html", "rb").read() == b"attached page"

    @pytest.mark.asyncio
    async def test_adapter_decides_which_hosts_get_the_cookie(self, test_db, test_config, session, subscription):
        """The platform adapter's host policy governs cookie forwarding."""

        class MirrorTrustingAdapter(FakeAdapter):
            def trusted_host(self, hostname):
                return hostname == "files.example.com"

        writer = ArchiveWriter(
            test_db,
            SettingsService(test_db, test_config),
            Downloader(session=session, muxer=FakeMuxer()),
            adapters={"patreon": MirrorTrustingAdapter()},
        )
        mirror = "https://files.example.com/a.zip"
        patreon = "https://www.patreon.com/file?h=10"
        session.routes[mirror] = (200, {"Content-Type": "application/zip"}, b"PK")
        session.routes[patreon] = (200, {"Content-Type": "application/pdf"}, b"%PDF")
        item_id, _ = test_db.content.upsert_post(subscription, "66", "Mirror", "<p>x</p>", "attachment")
        test_db.assets.add(item_id, mirror, "a.zip")
        test_db.assets.add(item_id, patreon, "b.pdf")

        await writer.archive_content_item(item_id)

        headers = dict(session.calls)
        assert headers[mirror]["Cookie"] == "session_id=test"
        assert "Cookie" not in headers[patreon]

    @pytest.mark.asyncio
    async def test_missing_item(self, writer):
        with pytest.raises(ContentNotFoundError):
            await writer.archive_content_item(9999)
