"""
Patreon adapter: cookie-authenticated JSON:API client, parsers and resolvers.
"""

from .adapter import PatreonAdapter
from .client import PatreonClient, is_patreon_host, normalize_cookie
from .memberships import MembershipResolution, MembershipResolver, StageOutcome, StageResult
from .posts import MediaResolver, PostResolver

__all__ = [
    "PatreonAdapter",
    "PatreonClient",
    "MembershipResolution",
    "MembershipResolver",
    "MediaResolver",
    "PostResolver",
    "StageOutcome",
    "StageResult",
    "is_patreon_host",
    "normalize_cookie",
]
