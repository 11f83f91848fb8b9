"""
Patreon platform adapter.
"""

from ..base import Membership, Platform, PlatformAdapter, Post, ResolvedMedia
from .client import REFERER, PatreonClient, is_patreon_host
from .memberships import MembershipResolution, MembershipResolver
from .posts import MediaResolver, PostResolver


class PatreonAdapter(PlatformAdapter):
    """Composes the Patreon client with the membership, post and media resolvers."""

    def __init__(self, client: PatreonClient, max_pages: int = 40):
        self.client = client
        self.memberships = MembershipResolver(client)
        self.posts = PostResolver(client, max_pages=max_pages)
        self.media = MediaResolver(client)
        self.last_resolution: MembershipResolution | None = None

    @classmethod
    def from_cookie(cls, cookie: str, max_pages: int = 40, timeout: int = 60) -> "PatreonAdapter":
        return cls(PatreonClient(cookie, timeout=timeout), max_pages=max_pages)

    @property
    def platform(self) -> Platform:
        return Platform.PATREON

    async def list_memberships(self) -> list[Membership]:
        self.last_resolution = await self.memberships.resolve()
        return self.last_resolution.memberships

    async def list_posts(self, campaign_id: str) -> list[Post]:
        return await self.posts.list_posts(campaign_id)

    async def resolve_media(
        self,
        post_id: str | None = None,
        post_url: str | None = None,
    ) -> ResolvedMedia:
        return await self.media.resolve(post_id=post_id, post_url=post_url)

    async def fetch_page(self, url: str) -> str:
        return await self.client.fetch_html(url)

    def trusted_host(self, hostname: str | None) -> bool:
        return is_patreon_host(hostname)

    @property
    def cookie_header(self) -> str | None:
        return self.client.cookie_header

    @property
    def referer(self) -> str | None:
        return REFERER
