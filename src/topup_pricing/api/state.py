"""
Shared API state: one organization store and service per process.
"""
from typing import Optional

from ..config.settings import get_settings, reset_settings
from ..data.store import OrganizationStore
from ..services.storefront_service import StorefrontService

_service: Optional[StorefrontService] = None


def get_service() -> StorefrontService:
    """FastAPI dependency; loads the store from settings.data_dir on first use."""
    global _service
    if _service is None:
        settings = get_settings()
        _service = StorefrontService(OrganizationStore.load(settings.data_dir), settings)
    return _service


def reload_service() -> StorefrontService:
    """Re-read settings from the environment and configuration from disk."""
    global _service
    reset_settings()
    _service = None
    return get_service()
