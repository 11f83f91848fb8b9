"""
Patreon HTTP client.

Talks to the undocumented JSON:API the Patreon web app uses, authenticated
with the raw Cookie header copied from a logged-in browser session.
Redirects are followed by hand and only within patreon.com so the session
cookie never reaches another host.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from urllib.parse import urljoin, urlsplit

import aiohttp
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ...exceptions import InvalidCookieError, UpstreamError
from ...jsonapi import ResourceGraph

logger = logging.getLogger(__name__)

BASE_URL = "https://www.patreon.com"
USER_AGENT = "PatronHub/0.1 (+self-hosted)"
REFERER = "https://www.patreon.com/home"
MAX_REDIRECTS = 10
SNIPPET_LENGTH = 300

JSON_ACCEPT = "application/json"
HTML_ACCEPT = "text/html,application/xhtml+xml"


def normalize_cookie(raw: str) -> str:
    """
    Validate a pasted cookie and turn it into a Cookie header value.

    A bare token is taken to be the session id.

    Raises:
        InvalidCookieError: If the value is empty or contains non-ASCII characters
    """
    trimmed = (raw or "").strip()
    if not trimmed:
        raise InvalidCookieError("Patreon cookie is empty. Paste the full raw Cookie header value.")
    if any(ord(ch) > 127 for ch in trimmed):
        raise InvalidCookieError(
            "Patreon cookie contains unsupported non-ASCII characters (often caused by a "
            "truncated copy like “…”). Re-copy the full raw Cookie header value."
        )
    if "=" in trimmed:
        return trimmed
    return f"session_id={trimmed}"


def is_patreon_host(hostname: str | None) -> bool:
    host = (hostname or "").lower()
    return host == "patreon.com" or host.endswith(".patreon.com")


def to_patreon_url(path_or_url: str) -> str:
    """
    Resolve an API path against patreon.com.

    Raises:
        UpstreamError: If an absolute URL points at another host
    """
    if path_or_url.lower().startswith(("http://", "https://")):
        hostname = urlsplit(path_or_url).hostname
        if not is_patreon_host(hostname):
            raise UpstreamError(f"Refusing non-Patreon link: {hostname}")
        return path_or_url
    if not path_or_url.startswith("/"):
        return f"{BASE_URL}/{path_or_url}"
    return f"{BASE_URL}{path_or_url}"


@dataclass
class HttpResponse:
    """The parts of an HTTP response the client needs."""
    status: int
    text: str
    url: str
    content_type: str | None = None
    location: str | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status < 400


class PatreonClient:
    """Cookie-authenticated fetcher for Patreon API and page URLs."""

    def __init__(
        self,
        cookie: str,
        session: aiohttp.ClientSession | None = None,
        timeout: int = 60,
    ):
        # Validated here so a bad cookie fails before any request is made
        self.cookie_header = normalize_cookie(cookie)
        self._session = session
        self.timeout = timeout

    def _headers(self, accept: str) -> dict[str, str]:
        headers = {
            "Accept": accept,
            "Cookie": self.cookie_header,
            "User-Agent": USER_AGENT,
            "Referer": REFERER,
        }
        if accept == JSON_ACCEPT:
            headers["X-Requested-With"] = "XMLHttpRequest"
        return headers

    @retry(
        retry=retry_if_exception_type((aiohttp.ClientConnectionError, asyncio.TimeoutError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    async def _send(self, url: str, headers: dict[str, str]) -> HttpResponse:
        """Perform a single GET without following redirects."""
        if self._session is not None:
            return await self._read(self._session, url, headers)
        async with aiohttp.ClientSession() as session:
            return await self._read(session, url, headers)

    async def _read(
        self,
        session: aiohttp.ClientSession,
        url: str,
        headers: dict[str, str],
    ) -> HttpResponse:
        async with session.get(
            url,
            headers=headers,
            allow_redirects=False,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        ) as resp:
            return HttpResponse(
                status=resp.status,
                text=await resp.text(errors="replace"),
                url=str(resp.url),
                content_type=resp.headers.get("Content-Type"),
                location=resp.headers.get("Location"),
            )

    async def _get(self, path_or_url: str, accept: str) -> HttpResponse:
        """GET a Patreon URL, following redirects that stay on patreon.com."""
        headers = self._headers(accept)
        current = to_patreon_url(path_or_url)

        for _ in range(MAX_REDIRECTS):
            try:
                response = await self._send(current, headers)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise UpstreamError(f"Patreon request error on {path_or_url}: {e}") from e

            if not response.is_redirect:
                return response
            if not response.location:
                raise UpstreamError(
                    "Patreon returned redirect with no Location header", status=response.status
                )
            current = to_patreon_url(urljoin(current, response.location))

        raise UpstreamError(f"Too many redirects fetching {path_or_url}")

    async def fetch_json(self, path_or_url: str) -> ResourceGraph:
        """Fetch a JSON:API document."""
        response = await self._get(path_or_url, JSON_ACCEPT)
        if not response.ok:
            snippet = response.text[:SNIPPET_LENGTH]
            raise UpstreamError(
                f"Patreon request failed ({response.status}) on {path_or_url}: {snippet}",
                status=response.status,
                snippet=snippet,
            )
        try:
            document = json.loads(response.text)
        except json.JSONDecodeError as e:
            raise UpstreamError(
                f"Patreon returned invalid JSON on {path_or_url}: {e}",
                status=response.status,
                snippet=response.text[:SNIPPET_LENGTH],
            ) from e
        return ResourceGraph(document)

    async def fetch_json_candidates(self, paths: list[str]) -> ResourceGraph:
        """
        Try endpoint variants in priority order; first success wins.

        Raises:
            UpstreamError: The last candidate's failure when none succeed
        """
        last_error: UpstreamError | None = None
        for path in paths:
            try:
                return await self.fetch_json(path)
            except UpstreamError as e:
                logger.debug(f"Candidate {path} failed: {e}")
                last_error = e
        raise last_error or UpstreamError("Patreon request failed: no candidate endpoints")

    async def fetch_html(self, path_or_url: str) -> str:
        """Fetch a page's HTML."""
        response = await self._get(path_or_url, HTML_ACCEPT)
        if not response.ok:
            snippet = response.text[:SNIPPET_LENGTH]
            raise UpstreamError(
                f"Patreon HTML request failed ({response.status}) on {path_or_url}: {snippet}",
                status=response.status,
                snippet=snippet,
            )
        return response.text
