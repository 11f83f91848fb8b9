"""
Error types for the archive pipeline and HTTP exception helpers.

Domain errors are raised by the resolver, downloader and archive writer;
routes translate them into HTTPExceptions at the boundary.
"""

from typing import TypeVar

from fastapi import HTTPException

T = TypeVar("T")


class PatronHubError(Exception):
    """Base class for archive pipeline errors."""


class InvalidCookieError(PatronHubError, ValueError):
    """The configured session cookie cannot be sent as an HTTP header."""


class UpstreamError(PatronHubError):
    """An upstream platform request failed or returned an unusable response."""

    def __init__(self, message: str, status: int | None = None, snippet: str = ""):
        super().__init__(message)
        self.status = status
        self.snippet = snippet


class AuthenticationExpiredError(UpstreamError):
    """The platform served a login page where a file was expected."""


class DownloadError(PatronHubError):
    """A file could not be fetched or written to disk."""


class ContentNotFoundError(PatronHubError, LookupError):
    """A content item id does not exist."""

    def __init__(self, content_item_id: int):
        super().__init__(f"Content item {content_item_id} not found")
        self.content_item_id = content_item_id


def require_resource(resource: T | None, detail: str = "Resource not found") -> T:
    """
    Raise 404 if resource is None, otherwise return the resource.

    Usage:
        item = require_resource(db.get_content_item(id), "Content item not found")
    """
    if resource is None:
        raise HTTPException(status_code=404, detail=detail)
    return resource


def require_content(item: T | None) -> T:
    """Raise 404 if content item is None."""
    return require_resource(item, "Content item not found")


def require_subscription(subscription: T | None) -> T:
    """Raise 404 if subscription is None."""
    return require_resource(subscription, "Subscription not found")


def require_creator(creator: T | None) -> T:
    """Raise 404 if creator is None."""
    return require_resource(creator, "Creator not found")
