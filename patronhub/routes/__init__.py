"""
API route modules.
"""

from .content import router as content_router
from .creators import router as creators_router
from .internal import router as internal_router
from .misc import router as misc_router
from .subscriptions import router as subscriptions_router
from .sync import router as sync_router

__all__ = [
    "content_router",
    "creators_router",
    "internal_router",
    "misc_router",
    "subscriptions_router",
    "sync_router",
]
