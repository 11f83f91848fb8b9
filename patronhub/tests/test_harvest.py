"""
Tests for the harvest job queue and the in-process backlog pass.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from patronhub.adapters.base import ResolvedMedia
from patronhub.archive import ArchiveWriter
from patronhub.database.converters import to_db_time, utc_now
from patronhub.downloader import Downloader
from patronhub.exceptions import UpstreamError
from patronhub.harvest import (
    DOWNLOAD_URL_RESOLVE,
    HEADLESS_ASSET_DISCOVER,
    NO_MEDIA_ERROR,
    HarvestProcessor,
    retry_delay_minutes,
)
from patronhub.services.settings_service import SettingsService

from .fakes import FakeAdapter, FakeMuxer, FakeSession

MEDIA_URL = "https://c10.patreonusercontent.com/f/ep.mp3"


def make_due(db, job_id: int):
    """Pull a job's next attempt into the past."""
    with db._connection.conn() as conn:
        conn.execute(
            "UPDATE harvest_jobs SET next_attempt_at = ? WHERE id = ?",
            (to_db_time(utc_now() - timedelta(minutes=1)), job_id),
        )


@pytest.fixture
def item_id(test_db, subscription):
    item_id, _ = test_db.content.upsert_post(
        subscription, "55", "Episode", None, "audio",
        external_url="https://www.patreon.com/posts/episode-55",
    )
    return item_id


class TestRetryDelay:
    """Tests for harvest backoff."""

    @pytest.mark.parametrize("attempt,minutes", [
        (0, 5),
        (1, 5),
        (2, 10),
        (3, 20),
        (4, 40),
        (8, 640),
        (9, 720),
        (50, 720),
    ])
    def test_backoff(self, attempt, minutes):
        assert retry_delay_minutes(attempt) == minutes


class TestHarvestQueue:
    """Tests for HarvestRepository claim/complete semantics."""

    def test_claim_joins_item_fields(self, test_db, item_id):
        test_db.harvest.enqueue(item_id, HEADLESS_ASSET_DISCOVER)

        job = test_db.harvest.claim(HEADLESS_ASSET_DISCOVER, 6, 30)

        assert job.status == "running"
        assert job.attempt_count == 1
        assert job.external_url == "https://www.patreon.com/posts/episode-55"
        assert job.external_id == "55"
        assert job.title == "Episode"
        assert job.next_attempt_at > utc_now() + timedelta(minutes=29)

    def test_claim_filters_by_kind(self, test_db, item_id):
        test_db.harvest.enqueue(item_id, DOWNLOAD_URL_RESOLVE)
        assert test_db.harvest.claim(HEADLESS_ASSET_DISCOVER, 6, 30) is None
        assert test_db.harvest.claim(DOWNLOAD_URL_RESOLVE, 6, 30) is not None

    def test_claimed_job_hidden_until_lease_expires(self, test_db, item_id):
        job_id = test_db.harvest.enqueue(item_id, DOWNLOAD_URL_RESOLVE)
        test_db.harvest.claim(DOWNLOAD_URL_RESOLVE, 6, 30)

        assert test_db.harvest.claim(DOWNLOAD_URL_RESOLVE, 6, 30) is None

        make_due(test_db, job_id)
        reclaimed = test_db.harvest.claim(DOWNLOAD_URL_RESOLVE, 6, 30)
        assert reclaimed.id == job_id
        assert reclaimed.attempt_count == 2

    def test_failure_backs_off(self, test_db, item_id):
        job_id = test_db.harvest.enqueue(item_id, DOWNLOAD_URL_RESOLVE)
        test_db.harvest.claim(DOWNLOAD_URL_RESOLVE, 6, 30)

        job = test_db.harvest.complete(job_id, False, "nothing found")

        assert job.status == "pending"
        assert job.last_error == "nothing found"
        delay = job.next_attempt_at - utc_now()
        assert timedelta(minutes=4) < delay <= timedelta(minutes=5)
        assert test_db.harvest.claim(DOWNLOAD_URL_RESOLVE, 6, 30) is None

    def test_exhausted_job_fails_for_good(self, test_db, item_id):
        job_id = test_db.harvest.enqueue(item_id, DOWNLOAD_URL_RESOLVE)
        for _ in range(2):
            make_due(test_db, job_id)
            test_db.harvest.claim(DOWNLOAD_URL_RESOLVE, 2, 30)
            job = test_db.harvest.complete(job_id, False, "nope", max_attempts=2)

        assert job.status == "failed"
        assert job.attempt_count == 2
        assert job.next_attempt_at is None
        make_due(test_db, job_id)
        assert test_db.harvest.claim(DOWNLOAD_URL_RESOLVE, 2, 30) is None

    def test_success_marks_done(self, test_db, item_id):
        job_id = test_db.harvest.enqueue(item_id, DOWNLOAD_URL_RESOLVE)
        test_db.harvest.claim(DOWNLOAD_URL_RESOLVE, 6, 30)

        job = test_db.harvest.complete(job_id, True)

        assert job.status == "done"
        assert job.last_error is None
        assert test_db.harvest.get_status_counts() == {"pending": 0, "running": 0, "done": 1, "failed": 0}

    def test_complete_missing_job(self, test_db):
        assert test_db.harvest.complete(9999, True) is None

    def test_ensure_keeps_schedule_and_enqueue_resets(self, test_db, item_id):
        job_id, created = test_db.harvest.ensure(item_id, DOWNLOAD_URL_RESOLVE)
        assert created is True
        test_db.harvest.claim(DOWNLOAD_URL_RESOLVE, 6, 30)
        test_db.harvest.complete(job_id, False, "later")

        same_id, created = test_db.harvest.ensure(item_id, DOWNLOAD_URL_RESOLVE)
        assert (same_id, created) == (job_id, False)
        assert test_db.get_harvest_job(job_id).attempt_count == 1

        assert test_db.harvest.enqueue(item_id, DOWNLOAD_URL_RESOLVE) == job_id
        reset = test_db.get_harvest_job(job_id)
        assert reset.attempt_count == 0
        assert reset.status == "pending"
        assert reset.last_error is None

    def test_fail_is_terminal(self, test_db, item_id):
        job_id = test_db.harvest.enqueue(item_id, HEADLESS_ASSET_DISCOVER)
        test_db.harvest.fail(job_id, "Missing external URL")
        job = test_db.get_harvest_job(job_id)
        assert job.status == "failed"
        assert job.attempt_count == 0

    def test_concurrent_claims_have_one_winner(self, test_db, item_id):
        """Racing workers must never both receive the same job."""
        test_db.harvest.enqueue(item_id, HEADLESS_ASSET_DISCOVER)
        workers = 8
        barrier = threading.Barrier(workers)

        def claim():
            barrier.wait()
            return test_db.harvest.claim(HEADLESS_ASSET_DISCOVER, 6, 30)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda _: claim(), range(workers)))

        winners = [job for job in results if job is not None]
        assert len(winners) == 1
        assert test_db.get_harvest_job(winners[0].id).attempt_count == 1


# ─────────────────────────────────────────────────────────────
# Backlog processing
# ─────────────────────────────────────────────────────────────

class RaisingAdapter(FakeAdapter):
    async def resolve_media(self, post_id=None, post_url=None):
        raise UpstreamError("Patreon request failed (429)", status=429)


def make_processor(db, cfg, adapter, session=None):
    settings = SettingsService(db, cfg)
    writer = ArchiveWriter(
        db,
        settings,
        Downloader(session=session or FakeSession({}), muxer=FakeMuxer()),
        adapters={"patreon": adapter},
    )
    return HarvestProcessor(db, adapter, writer, settings, cfg)


class TestHarvestProcessor:
    """Tests for the backlog pass."""

    @pytest.mark.asyncio
    async def test_resolves_and_archives(self, test_db, test_config, item_id):
        job_id = test_db.harvest.enqueue(item_id, DOWNLOAD_URL_RESOLVE)
        adapter = FakeAdapter(media={"55": ResolvedMedia(MEDIA_URL, "ep.mp3", "post-html")})
        session = FakeSession({MEDIA_URL: (200, {"Content-Type": "audio/mpeg"}, b"ID3")})

        report = await make_processor(test_db, test_config, adapter, session).process_backlog()

        assert (report.claimed, report.resolved, report.archived, report.failed) == (1, 1, 1, 0)
        assert test_db.get_harvest_job(job_id).status == "done"
        item = test_db.get_content_item(item_id)
        assert item.download_url == MEDIA_URL
        assert item.file_name_hint == "ep.mp3"
        assert item.is_archived is True
        [asset] = test_db.get_assets(item_id)
        assert asset.url == MEDIA_URL
        assert asset.status == "downloaded"

    @pytest.mark.asyncio
    async def test_no_archive_when_auto_download_off(self, test_db, test_config, item_id):
        test_config.AUTO_DOWNLOAD = False
        test_db.harvest.enqueue(item_id, DOWNLOAD_URL_RESOLVE)
        adapter = FakeAdapter(media={"55": ResolvedMedia(MEDIA_URL, None, "api-post")})

        report = await make_processor(test_db, test_config, adapter).process_backlog()

        assert report.resolved == 1
        assert report.archived == 0
        assert test_db.get_content_item(item_id).is_archived is False

    @pytest.mark.asyncio
    async def test_not_found_backs_off(self, test_db, test_config, item_id):
        job_id = test_db.harvest.enqueue(item_id, DOWNLOAD_URL_RESOLVE)

        report = await make_processor(test_db, test_config, FakeAdapter()).process_backlog()

        assert report.failed == 1
        assert report.escalated == 0
        job = test_db.get_harvest_job(job_id)
        assert job.status == "pending"
        assert job.last_error == NO_MEDIA_ERROR
        assert test_db.harvest.get_for_item(item_id, HEADLESS_ASSET_DISCOVER) is None

    @pytest.mark.asyncio
    async def test_not_found_escalates_to_headless_worker(self, test_db, test_config, item_id):
        """With the internal API on, unresolved posts are queued for the headless worker."""
        test_config.INTERNAL_TOKEN = "secret"
        test_db.harvest.enqueue(item_id, DOWNLOAD_URL_RESOLVE)

        report = await make_processor(test_db, test_config, FakeAdapter()).process_backlog()

        assert report.escalated == 1
        headless = test_db.harvest.get_for_item(item_id, HEADLESS_ASSET_DISCOVER)
        assert headless.status == "pending"

    @pytest.mark.asyncio
    async def test_resolution_error_completes_job_as_failed(self, test_db, test_config, item_id):
        job_id = test_db.harvest.enqueue(item_id, DOWNLOAD_URL_RESOLVE)

        report = await make_processor(test_db, test_config, RaisingAdapter()).process_backlog()

        assert report.failed == 1
        assert "429" in test_db.get_harvest_job(job_id).last_error

    @pytest.mark.asyncio
    async def test_archive_failure_recorded_on_item(self, test_db, test_config, item_id):
        """A download failure after resolution marks the job done and the item errored."""
        job_id = test_db.harvest.enqueue(item_id, DOWNLOAD_URL_RESOLVE)
        adapter = FakeAdapter(media={"55": ResolvedMedia(MEDIA_URL, None, "api-post")})

        report = await make_processor(test_db, test_config, adapter).process_backlog()

        assert report.resolved == 1
        assert report.archived == 0
        assert test_db.get_harvest_job(job_id).status == "done"
        assert "404" in test_db.get_content_item(item_id).archive_error

    @pytest.mark.asyncio
    async def test_respects_limit(self, test_db, test_config, subscription):
        for n in range(3):
            item_id, _ = test_db.content.upsert_post(subscription, str(n), f"P{n}", None, "article")
            test_db.harvest.enqueue(item_id, DOWNLOAD_URL_RESOLVE)

        report = await make_processor(test_db, test_config, FakeAdapter()).process_backlog(limit=2)

        assert report.claimed == 2
        assert test_db.harvest.get_status_counts()["pending"] == 3

    @pytest.mark.asyncio
    async def test_filesystem_error_does_not_stop_the_pass(self, test_db, test_config, subscription):
        """An unwritable archive directory is recorded per item and the loop moves on."""
        ids = []
        for n in ("70", "71"):
            item_id, _ = test_db.content.upsert_post(subscription, n, f"Post {n}", None, "audio")
            test_db.harvest.enqueue(item_id, DOWNLOAD_URL_RESOLVE)
            ids.append(item_id)
        adapter = FakeAdapter(media={n: ResolvedMedia(f"{MEDIA_URL}?p={n}", None, "api-post") for n in ("70", "71")})
        processor = make_processor(test_db, test_config, adapter)

        async def unwritable(content_item_id):
            raise PermissionError(13, "Permission denied", test_config.ARCHIVE_DIR)

        processor.writer.archive_content_item = unwritable

        report = await processor.process_backlog()

        assert (report.claimed, report.resolved, report.archived) == (2, 2, 0)
        assert test_db.harvest.get_status_counts()["done"] == 2
        for item_id in ids:
            assert "Permission denied" in test_db.get_content_item(item_id).archive_error
