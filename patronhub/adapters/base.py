"""
Base platform adapter interface.

Defines the records every platform adapter produces and the abstract
interface the sync pipeline drives.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum


class Platform(str, Enum):
    """Platforms a subscription can belong to."""
    PATREON = "patreon"
    SUBSTACK = "substack"
    GUMROAD = "gumroad"
    DISCORD = "discord"


CONTENT_TYPES = ("video", "image", "pdf", "audio", "article", "attachment")


@dataclass
class Membership:
    """A user's paid relationship to one creator campaign."""
    campaign_id: str
    creator_name: str
    campaign_name: str
    creator_avatar_url: str | None = None
    profile_url: str | None = None
    tier_name: str | None = None
    cost_cents: int = 0
    currency: str = "USD"
    status: str = "active"  # active, paused, cancelled
    member_since: str | None = None


@dataclass
class DiscoveredAsset:
    """A downloadable file candidate found while parsing a post."""
    url: str
    file_name_hint: str | None = None
    asset_type: str = "attachment"


@dataclass
class Post:
    """One upstream post, normalized."""
    external_id: str
    title: str
    description: str | None = None
    external_url: str | None = None
    content_type: str = "article"
    published_at: str | None = None
    tags: list[str] = field(default_factory=list)
    download_url: str | None = None
    file_name_hint: str | None = None
    assets: list[DiscoveredAsset] = field(default_factory=list)


@dataclass
class ResolvedMedia:
    """Result of resolving a post's primary downloadable file."""
    download_url: str | None = None
    file_name_hint: str | None = None
    source: str = "none"  # api-post, post-html, none

    @property
    def found(self) -> bool:
        return self.download_url is not None


class PlatformAdapter(ABC):
    """
    Abstract base class for subscription platform adapters.

    An adapter owns all upstream I/O for one platform: membership discovery,
    post listing, media resolution and raw page capture.
    """

    @property
    @abstractmethod
    def platform(self) -> Platform:
        """Return the platform this adapter talks to."""
        pass

    @abstractmethod
    async def list_memberships(self) -> list[Membership]:
        """Discover the user's current memberships."""
        pass

    @abstractmethod
    async def list_posts(self, campaign_id: str) -> list[Post]:
        """List every reachable post for one membership, deduplicated."""
        pass

    @abstractmethod
    async def resolve_media(
        self,
        post_id: str | None = None,
        post_url: str | None = None,
    ) -> ResolvedMedia:
        """Find a downloadable file URL for a post the listing left without one."""
        pass

    @abstractmethod
    async def fetch_page(self, url: str) -> str:
        """Fetch a post page's raw HTML with the user's credentials."""
        pass

    def trusted_host(self, hostname: str | None) -> bool:
        """Whether credentials may be sent to this host."""
        return False

    @property
    def cookie_header(self) -> str | None:
        """Credential header value for asset downloads, if the platform uses one."""
        return None

    @property
    def referer(self) -> str | None:
        return None


class UnsupportedAdapter(PlatformAdapter):
    """Placeholder for platforms without an archive pipeline yet."""

    def __init__(self, platform: Platform):
        self._platform = platform

    @property
    def platform(self) -> Platform:
        return self._platform

    async def list_memberships(self) -> list[Membership]:
        raise NotImplementedError(f"{self._platform.value} sync is not supported")

    async def list_posts(self, campaign_id: str) -> list[Post]:
        raise NotImplementedError(f"{self._platform.value} sync is not supported")

    async def resolve_media(
        self,
        post_id: str | None = None,
        post_url: str | None = None,
    ) -> ResolvedMedia:
        raise NotImplementedError(f"{self._platform.value} media resolution is not supported")

    async def fetch_page(self, url: str) -> str:
        raise NotImplementedError(f"{self._platform.value} page capture is not supported")
