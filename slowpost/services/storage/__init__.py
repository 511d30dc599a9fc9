# slowpost/services/storage/__init__.py
"""
Storage backends and the one-time selection between them
"""

from slowpost.config import Settings
from slowpost.utils.logger import logger

from .base import MediaUpload, StorageBackend, StoredAssets
from .local_store import LocalStorage


def build_storage(settings: Settings) -> StorageBackend:
    """Cloud when both the database URL and bucket are configured, else local.

    Decided once; a cloud failure later on is reported, never redirected
    to the local store.
    """
    if settings.cloud_configured:
        from .cloud_store import CloudStorage

        logger.info(" Storage mode: cloud (relational table + object store)")
        return CloudStorage(settings)

    if settings.database_url or settings.s3_bucket:
        logger.warning(" Cloud storage partially configured (need DATABASE_URL and S3_BUCKET), using local store")
    logger.info(f" Storage mode: local ({settings.data_dir})")
    return LocalStorage(settings)


__all__ = [
    "MediaUpload",
    "StorageBackend",
    "StoredAssets",
    "LocalStorage",
    "build_storage",
]
