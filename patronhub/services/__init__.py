"""
Service layer for business logic.

Services encapsulate business logic, keeping routes as thin HTTP adapters.
Each service receives its dependencies via constructor injection.

Usage in routes:
    from ..services import SettingsServiceDep

    @router.get("/settings")
    async def get_settings(service: SettingsServiceDep):
        return service.effective()
"""

from typing import TYPE_CHECKING, Annotated

from fastapi import Depends

from ..config import state, get_db
from ..database import Database

from .settings_service import SettingsService

if TYPE_CHECKING:
    from ..archive import ArchiveWriter

__all__ = [
    # Services
    "SettingsService",
    # Dependency factories
    "get_settings_service",
    "get_archive_writer",
    # Type aliases for dependency injection
    "SettingsServiceDep",
]


def get_settings_service(db: Annotated[Database, Depends(get_db)]) -> SettingsService:
    """Dependency to get SettingsService instance."""
    return SettingsService(db=db)


def get_archive_writer(db: Annotated[Database, Depends(get_db)]) -> "ArchiveWriter":
    """Dependency to get an ArchiveWriter wired to the shared downloader and adapter."""
    from ..archive import ArchiveWriter

    adapters = {state.adapter.platform.value: state.adapter} if state.adapter else None
    return ArchiveWriter(
        db=db,
        settings=SettingsService(db=db),
        downloader=state.downloader,
        adapters=adapters,
    )


SettingsServiceDep = Annotated[SettingsService, Depends(get_settings_service)]
