"""
Parsers that turn Patreon JSON:API documents and pages into adapter records.

Everything here is pure: no I/O, so each shape the upstream has been seen
to return can be exercised directly in tests.
"""

import re
from urllib.parse import parse_qs, quote, urlsplit

from ...archive.paths import content_type_from_extension, extension_of
from ...jsonapi import Resource, ResourceGraph, ResourceRef, pick_string
from ..base import DiscoveredAsset, Membership, Post

MEMBERSHIP_INCLUDE = "campaign.creator,currently_entitled_tiers"
MAX_HTML_CAMPAIGN_IDS = 200
OVERRIDE_WINDOW = 1200

# Ordered best-first; the index drives both ranking and tie-breaks
DOWNLOAD_EXT_PRIORITY = (
    "m3u8", "mp4", "mkv", "mov", "webm", "m4v",
    "mp3", "m4a", "wav", "flac", "aac",
    "pdf", "zip", "rar", "7z",
    "jpg", "jpeg", "png", "webp", "gif",
)

# Relationships that point at a post's files. `user` and `campaign` are side-loaded
# too and carry profile URLs.
MEDIA_RELATIONSHIPS = ("attachments_media", "attachments", "media", "images", "audio", "file")

_URL_PATTERN = re.compile(r"""https?://[^\s"'<>\\)]+""")
_POST_ID_PATTERN = re.compile(r"-(\d+)(?:[/?#]|$)")
_CAMPAIGN_ID_PATTERNS = (
    re.compile(r"/api/campaigns/(\d+)"),
    re.compile(r'"campaign_id"\s*:\s*(\d+)'),
    re.compile(r"campaign_id=(\d+)"),
    re.compile(r'"campaign"\s*:\s*\{\s*"data"\s*:\s*\{\s*"id"\s*:\s*"(\d+)"'),
)


# ─────────────────────────────────────────────────────────────
# Memberships
# ─────────────────────────────────────────────────────────────

def infer_status(raw: str | None) -> str:
    """Map Patreon's patron_status onto active/paused/cancelled."""
    if not raw:
        return "active"
    if raw in ("active_patron", "former_patron"):
        return "active"
    if "declined" in raw or "pending" in raw:
        return "paused"
    if "cancel" in raw:
        return "cancelled"
    return "active"


def is_membership_resource(resource: Resource) -> bool:
    return "member" in resource.type.lower()


def _has_campaign(resource: Resource) -> bool:
    return resource.first_ref("campaign") is not None


def membership_from_resource(member: Resource, graph: ResourceGraph) -> Membership | None:
    """Build a membership from a member resource; None if its campaign is unknown."""
    campaign_ref = member.first_ref("campaign")
    campaign = graph.get(campaign_ref)
    if campaign is None or campaign_ref is None:
        return None

    creator = graph.related(campaign, "creator")
    tier = graph.related(member, "currently_entitled_tiers")

    creator_name = (
        (creator.attr_str("full_name") if creator else None)
        or campaign.attr_str("creator_name", "name")
        or "Patreon Creator"
    )

    amount = member.attr("currently_entitled_amount_cents")
    if not isinstance(amount, int) or isinstance(amount, bool):
        tier_amount = tier.attr("amount_cents") if tier else None
        amount = tier_amount if isinstance(tier_amount, int) and not isinstance(tier_amount, bool) else 0

    return Membership(
        campaign_id=campaign_ref.id,
        creator_name=creator_name,
        campaign_name=campaign.attr_str("creation_name", "name") or creator_name,
        creator_avatar_url=(
            (creator.attr_str("image_url") if creator else None) or campaign.attr_str("image_url")
        ),
        profile_url=campaign.attr_str("url") or (creator.attr_str("url") if creator else None),
        tier_name=tier.attr_str("title") if tier else None,
        cost_cents=amount,
        currency=member.attr_str("currency") or campaign.attr_str("currency") or "USD",
        status=infer_status(member.attr_str("patron_status")),
        member_since=member.attr_str("pledge_relationship_start"),
    )


def _to_memberships(resources: list[Resource], graph: ResourceGraph) -> list[Membership]:
    found = []
    for resource in resources:
        membership = membership_from_resource(resource, graph)
        if membership:
            found.append(membership)
    return found


def parse_memberships(graph: ResourceGraph) -> list[Membership]:
    """
    Extract memberships from a current_user or member document.

    Recognizes, in order: membership bodies embedded in the user's
    ``memberships`` relationship, references resolved through ``included``,
    and membership rows returned directly as primary data.
    """
    root = graph.root
    if root is None:
        return []

    embedded = [r for r in root.embedded("memberships") if _has_campaign(r)]
    if embedded:
        return _to_memberships(embedded, graph)

    from_refs = [r for r in map(graph.get, root.refs("memberships")) if r]
    if from_refs:
        return _to_memberships(from_refs, graph)

    direct = [r for r in graph.primary if is_membership_resource(r) and _has_campaign(r)]
    return _to_memberships(direct, graph)


def membership_refs(graph: ResourceGraph) -> list[ResourceRef]:
    """Membership references on the current user, resolvable or not."""
    root = graph.root
    return root.refs("memberships") if root else []


def _matches_user(resource: Resource, user_id: str | None) -> bool:
    if not user_id:
        return True
    back_refs = [resource.first_ref(name) for name in ("patron", "user", "me")]
    back_refs = [ref for ref in back_refs if ref]
    if not back_refs:
        return True
    return any(ref.id == user_id for ref in back_refs)


def scan_included_memberships(graph: ResourceGraph) -> list[Membership]:
    """
    Find member-like resources in ``included`` when the user carries no refs.

    Resources pointing back at a different user are skipped; resources with
    no back-reference at all are kept.
    """
    user_id = graph.root.id if graph.root else None
    candidates = [
        r for r in graph.included
        if is_membership_resource(r) and _has_campaign(r) and _matches_user(r, user_id)
    ]
    return _to_memberships(candidates, graph)


def membership_fetch_candidates(ref: ResourceRef) -> list[str]:
    """Endpoint variants for fetching one membership resource by id."""
    encoded_id = quote(ref.id, safe="")
    query = f"include={MEMBERSHIP_INCLUDE}&json-api-version=1.0"
    # Naive pluralization covers the observed types (member -> members)
    plural = f"{ref.type}es" if ref.type.endswith("s") else f"{ref.type}s"

    candidates = [
        f"/api/{ref.type}/{encoded_id}?{query}",
        f"/api/{plural}/{encoded_id}?{query}",
    ]
    if ref.type == "member":
        candidates.insert(0, f"/api/members/{encoded_id}?{query}")
    return list(dict.fromkeys(candidates))


def campaign_to_membership(
    graph: ResourceGraph,
    campaign_id: str,
    override: dict | None = None,
) -> Membership | None:
    """Build a membership from a bare campaign document plus scraped pricing hints."""
    campaign = graph.root
    if campaign is None:
        return None
    override = override or {}
    creator = graph.related(campaign, "creator")

    creator_name = (
        (creator.attr_str("full_name") if creator else None)
        or campaign.attr_str("creator_name", "name")
        or f"Patreon Campaign {campaign_id}"
    )
    cost_cents = override.get("cost_cents")

    return Membership(
        campaign_id=campaign_id,
        creator_name=creator_name,
        campaign_name=campaign.attr_str("creation_name", "name") or creator_name,
        creator_avatar_url=(
            (creator.attr_str("image_url") if creator else None) or campaign.attr_str("image_url")
        ),
        profile_url=campaign.attr_str("url") or (creator.attr_str("url") if creator else None),
        tier_name=pick_string(override.get("tier_name")),
        cost_cents=cost_cents if isinstance(cost_cents, int) else 0,
        currency=pick_string(override.get("currency")) or campaign.attr_str("currency") or "USD",
        status="active",
        member_since=None,
    )


# ─────────────────────────────────────────────────────────────
# HTML scraping
# ─────────────────────────────────────────────────────────────

def decode_escaped_json_string(value: str) -> str:
    """Undo the escaping Patreon applies to URLs inside inline JSON."""
    value = re.sub(r"\\u002F", "/", value, flags=re.IGNORECASE)
    return value.replace("\\/", "/").replace("&amp;", "&")


def extract_campaign_ids_from_html(html: str) -> list[str]:
    """Campaign ids referenced anywhere in a page, first-seen order, capped at 200."""
    ids: dict[str, None] = {}
    for pattern in _CAMPAIGN_ID_PATTERNS:
        for match in pattern.finditer(html):
            ids.setdefault(match.group(1))
    return list(ids)[:MAX_HTML_CAMPAIGN_IDS]


def extract_membership_overrides_from_html(html: str) -> dict[str, dict]:
    """
    Pricing and tier hints found near each campaign_id in inline JSON.

    Returns {campaign_id: {"cost_cents", "currency", "tier_name"}} with only
    the keys that were found. Non-zero amounts and the first tier win.
    """
    decoded = decode_escaped_json_string(html)
    overrides: dict[str, dict] = {}

    for match in re.finditer(r'"campaign_id"\s*:\s*(\d+)', decoded):
        campaign_id = match.group(1)
        window = decoded[match.start():match.start() + OVERRIDE_WINDOW]

        amount = re.search(r'"currently_entitled_amount_cents"\s*:\s*(\d+)', window)
        currency = re.search(r'"currency"\s*:\s*"([A-Z]{3})"', window)
        tier = re.search(r'"tier_title"\s*:\s*"([^"]{1,120})"', window) or re.search(
            r'"currently_entitled_tiers"[\s\S]{0,300}?"title"\s*:\s*"([^"]{1,120})"', window
        )

        existing = overrides.setdefault(campaign_id, {})
        if amount and int(amount.group(1)) > 0 and not existing.get("cost_cents"):
            existing["cost_cents"] = int(amount.group(1))
        if currency and "currency" not in existing:
            existing["currency"] = currency.group(1)
        if tier and "tier_name" not in existing:
            existing["tier_name"] = tier.group(1)

    return overrides


def merge_overrides(target: dict[str, dict], found: dict[str, dict]):
    """Merge per-page overrides; values seen on earlier pages win."""
    for campaign_id, values in found.items():
        existing = target.setdefault(campaign_id, {})
        for key, value in values.items():
            existing.setdefault(key, value)


# ─────────────────────────────────────────────────────────────
# Posts and media
# ─────────────────────────────────────────────────────────────

def _is_http_url(value: str | None) -> bool:
    return bool(value) and value.lower().startswith(("http://", "https://"))


def _resource_urls(resource: Resource) -> list[str]:
    """Direct-URL attributes of a media resource, explicit download fields first."""
    candidates = [
        resource.attr_str("download_url"),
        resource.attr_str("file_url"),
        resource.attr_str("url"),
        resource.attr_nested_str("image_urls", "original"),
        resource.attr_nested_str("image", "large_url"),
    ]
    return [url for url in candidates if _is_http_url(url)]


def _resource_file_name(resource: Resource) -> str | None:
    return resource.attr_str("name", "file_name", "filename")


def extract_media_url(related: list[Resource], post: Resource) -> tuple[str | None, str | None]:
    """
    The post's primary file as (download_url, file_name_hint).

    Looks through related media resources first, then the post's own
    ``post_file``.
    """
    for resource in related:
        urls = _resource_urls(resource)
        if urls:
            return urls[0], _resource_file_name(resource)

    post_file_url = post.attr_nested_str("post_file", "url")
    if post_file_url:
        return post_file_url, post.attr_nested_str("post_file", "name")
    return None, None


def collect_assets(related: list[Resource], post: Resource) -> list[DiscoveredAsset]:
    """Every distinct downloadable file a post references."""
    assets: dict[str, DiscoveredAsset] = {}
    for resource in related:
        urls = _resource_urls(resource)
        if not urls:
            continue
        url = urls[0]
        hint = _resource_file_name(resource)
        assets.setdefault(url, DiscoveredAsset(
            url=url,
            file_name_hint=hint,
            asset_type=content_type_from_extension(hint or url),
        ))

    post_file_url = post.attr_nested_str("post_file", "url")
    if _is_http_url(post_file_url):
        hint = post.attr_nested_str("post_file", "name")
        assets.setdefault(post_file_url, DiscoveredAsset(
            url=post_file_url,
            file_name_hint=hint,
            asset_type=content_type_from_extension(hint or post_file_url),
        ))
    return list(assets.values())


def infer_content_type(post: Resource, download_url: str | None) -> str:
    """Content type from post_type, else the download URL's extension, else article."""
    post_type = (post.attr_str("post_type") or "").lower()
    if post_type in ("video_external_file", "video"):
        return "video"
    if post_type in ("podcast", "audio"):
        return "audio"
    if post_type == "image":
        return "image"
    if post_type == "link":
        return "article"
    if download_url:
        return content_type_from_extension(download_url)
    return "article"


def _post_tags(post: Resource, graph: ResourceGraph) -> list[str]:
    tags = []
    for tag in graph.related_all(post, "user_defined_tags"):
        value = tag.attr_str("value")
        if value:
            tags.append(value)
    return tags


def parse_posts(graph: ResourceGraph) -> list[Post]:
    """Extract posts from a posts listing or single-post document."""
    posts = []
    for resource in graph.primary:
        if not resource.id:
            continue
        related = graph.related_many(resource, MEDIA_RELATIONSHIPS)
        download_url, file_name_hint = extract_media_url(related, resource)
        posts.append(Post(
            external_id=resource.id,
            title=resource.attr_str("title") or f"Patreon Post {resource.id}",
            description=resource.attr_str("content"),
            external_url=resource.attr_str("url"),
            content_type=infer_content_type(resource, download_url),
            published_at=resource.attr_str("published_at"),
            tags=_post_tags(resource, graph),
            download_url=download_url,
            file_name_hint=file_name_hint,
            assets=collect_assets(related, resource),
        ))
    return posts


def dedupe_posts(posts: list[Post]) -> list[Post]:
    """Drop repeated external ids, keeping the first occurrence in order."""
    seen: set[str] = set()
    unique = []
    for post in posts:
        if post.external_id in seen:
            continue
        seen.add(post.external_id)
        unique.append(post)
    return unique


def parse_post_id_from_url(url: str) -> str | None:
    """Post id from a URL like /posts/some-title-12345."""
    match = _POST_ID_PATTERN.search(url)
    return match.group(1) if match else None


def extract_urls_from_text(text: str) -> list[str]:
    return _URL_PATTERN.findall(decode_escaped_json_string(text))


def extract_download_candidates_from_html(html: str) -> list[str]:
    """URL-like strings in a page, minus scripts and stylesheets."""
    return [
        url for url in extract_urls_from_text(html)
        if not url.endswith(".js") and not url.endswith(".css")
    ]


def _extension_rank(url: str) -> int:
    ext = extension_of(url.lower())
    if ext in DOWNLOAD_EXT_PRIORITY:
        return DOWNLOAD_EXT_PRIORITY.index(ext)
    return len(DOWNLOAD_EXT_PRIORITY)


def score_download_candidate(url: str) -> int:
    """
    Heuristic rank for a scraped URL being the post's real file.

    Base score comes from the extension priority table; keywords and the
    Patreon CDN host add bonuses.
    """
    normalized = url.lower()
    rank = _extension_rank(normalized)
    score = 1000 - rank * 10 if rank < len(DOWNLOAD_EXT_PRIORITY) else 100

    if "download" in normalized:
        score += 50
    if "attachment" in normalized:
        score += 20
    if "media" in normalized:
        score += 10
    if ".m3u8" in normalized:
        score += 30
    if ".mp4" in normalized:
        score += 25
    if "patreonusercontent.com" in normalized:
        score += 15
    return score


def is_likely_file_url(url: str) -> bool:
    if extension_of(url.lower()) in DOWNLOAD_EXT_PRIORITY:
        return True
    normalized = url.lower()
    return "/download" in normalized or "/attachment" in normalized or "/media" in normalized


def rank_download_candidates(candidates: list[str]) -> list[str]:
    """
    Likely file URLs ordered best-first.

    Ties go to the better extension, then to discovery order.
    """
    unique = list(dict.fromkeys(c.strip() for c in candidates))
    likely = [c for c in unique if _is_http_url(c) and is_likely_file_url(c)]
    return sorted(
        likely,
        key=lambda url: (-score_download_candidate(url), _extension_rank(url)),
    )


def pick_best_download_url(candidates: list[str]) -> str | None:
    ranked = rank_download_candidates(candidates)
    return ranked[0] if ranked else None


def file_name_hint_from_url(url: str) -> str | None:
    """File name from a filename/file_name query parameter or the last path segment."""
    parts = urlsplit(url)
    query = parse_qs(parts.query)
    for key in ("filename", "file_name"):
        values = [v.strip() for v in query.get(key, []) if v.strip()]
        if values:
            return values[0]
    segments = [s for s in parts.path.split("/") if s]
    return segments[-1] if segments else None
