"""
Post listing and per-post media resolution.
"""

import logging
from urllib.parse import quote

from ...exceptions import UpstreamError
from ..base import Post, ResolvedMedia
from .client import PatreonClient
from .parsers import (
    dedupe_posts,
    extract_download_candidates_from_html,
    file_name_hint_from_url,
    parse_post_id_from_url,
    parse_posts,
    pick_best_download_url,
)

logger = logging.getLogger(__name__)

POST_INCLUDE = "attachments_media,media,images,audio,file,user"


class PostResolver:
    """Walks a campaign's post history page by page."""

    def __init__(self, client: PatreonClient, max_pages: int = 40, page_size: int = 30):
        self.client = client
        self.max_pages = max(1, max_pages)
        self.page_size = page_size

    def _first_page_candidates(self, campaign_id: str) -> list[str]:
        cid = quote(campaign_id, safe="")
        return [
            f"/api/posts?filter[campaign_id]={cid}&filter[contains_exclusive_posts]=true"
            f"&include={POST_INCLUDE}&sort=-published_at&page[count]={self.page_size}"
            "&json-api-version=1.0",
            f"/api/posts?filter[campaign_id]={cid}&sort=-published_at"
            f"&page[count]={self.page_size}&json-api-version=1.0",
        ]

    async def list_posts(self, campaign_id: str) -> list[Post]:
        """
        List a campaign's posts newest first, following ``links.next``.

        Stops after max_pages pages. Posts repeated across pages keep their
        first occurrence.

        Raises:
            UpstreamError: If any page fails to load
        """
        graph = await self.client.fetch_json_candidates(self._first_page_candidates(campaign_id))
        posts: list[Post] = []
        pages = 0

        while True:
            posts.extend(parse_posts(graph))
            pages += 1
            if pages >= self.max_pages:
                logger.info(f"Campaign {campaign_id}: stopped at page limit ({self.max_pages})")
                break
            next_link = graph.next_link()
            if not next_link:
                break
            graph = await self.client.fetch_json(next_link)

        unique = dedupe_posts(posts)
        logger.info(f"Campaign {campaign_id}: {len(unique)} posts across {pages} pages")
        return unique


class MediaResolver:
    """
    Finds a downloadable file for a post the listing gave no URL for.

    Tries the single-post API with a richer include first, then scrapes the
    rendered post page. Both steps are best-effort.
    """

    def __init__(self, client: PatreonClient):
        self.client = client

    async def resolve(self, post_id: str | None = None, post_url: str | None = None) -> ResolvedMedia:
        post_id = post_id or (parse_post_id_from_url(post_url) if post_url else None)

        if post_id:
            try:
                detailed = await self._fetch_post_detail(post_id)
            except UpstreamError as e:
                logger.info(f"Post {post_id} detail lookup failed: {e}")
            else:
                if detailed and detailed.download_url:
                    return ResolvedMedia(detailed.download_url, detailed.file_name_hint, "api-post")

        if post_url:
            try:
                html = await self.client.fetch_html(post_url)
            except UpstreamError as e:
                logger.info(f"Post page {post_url} fetch failed: {e}")
            else:
                best = pick_best_download_url(extract_download_candidates_from_html(html))
                if best:
                    return ResolvedMedia(best, file_name_hint_from_url(best), "post-html")

        return ResolvedMedia(None, None, "none")

    async def _fetch_post_detail(self, post_id: str) -> Post | None:
        pid = quote(post_id, safe="")
        graph = await self.client.fetch_json_candidates([
            f"/api/posts/{pid}?include={POST_INCLUDE}&json-api-version=1.0",
            f"/api/posts/{pid}?json-api-version=1.0",
        ])
        posts = parse_posts(graph)
        return posts[0] if posts else None
