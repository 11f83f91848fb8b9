"""
Platform adapters.

Patreon is the only platform with a working pipeline; the others are
registered so subscriptions on them can exist, but they cannot sync.
"""

from .base import (
    DiscoveredAsset,
    Membership,
    Platform,
    PlatformAdapter,
    Post,
    ResolvedMedia,
    UnsupportedAdapter,
)
from .patreon import PatreonAdapter


def create_adapter(platform: Platform | str, cookie: str | None = None, **kwargs) -> PlatformAdapter:
    """
    Create the adapter for a platform.

    Raises:
        ValueError: If the platform is unknown, or Patreon is requested without a cookie
    """
    if isinstance(platform, str):
        try:
            platform = Platform(platform.lower())
        except ValueError:
            raise ValueError(
                f"Unknown platform: {platform}. Available: {[p.value for p in Platform]}"
            )

    if platform == Platform.PATREON:
        if not cookie:
            raise ValueError("A Patreon session cookie is required")
        return PatreonAdapter.from_cookie(cookie, **kwargs)
    return UnsupportedAdapter(platform)


__all__ = [
    "DiscoveredAsset",
    "Membership",
    "Platform",
    "PlatformAdapter",
    "Post",
    "ResolvedMedia",
    "UnsupportedAdapter",
    "PatreonAdapter",
    "create_adapter",
]
