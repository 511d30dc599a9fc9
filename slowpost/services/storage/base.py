# slowpost/services/storage/base.py
"""
Storage backend interface

Two realizations exist (local JSON file, relational table + object store).
Exactly one is selected when the application is built; see ``build_storage``.
"""

import re
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from slowpost.schemas.letter_schemas import Letter

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class MediaUpload:
    """One uploaded file, already read and size-checked by the HTTP layer."""
    field_name: str
    filename: str
    content_type: str
    data: bytes = b""


@dataclass
class StoredAssets:
    image_urls: List[str] = field(default_factory=list)
    video_urls: List[str] = field(default_factory=list)
    audio_url: Optional[str] = None
    # backend-specific handles used to remove the assets again
    keys: List[str] = field(default_factory=list)


def safe_filename(filename: Optional[str]) -> str:
    """Basename with unsafe characters collapsed, or a random name."""
    name = (filename or "").replace("\\", "/").rsplit("/", 1)[-1]
    name = _UNSAFE_NAME_CHARS.sub("_", name).strip("._")
    return name[:120] or uuid.uuid4().hex


def asset_name(filename: Optional[str]) -> str:
    """``<epoch ms>-<short id>-<name>``, unique per upload."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}-{safe_filename(filename)}"


class StorageBackend(ABC):
    name = "abstract"

    async def prepare(self) -> None:
        """Create whatever the backend needs (directories, tables)."""

    async def close(self) -> None:
        """Release connections."""

    @abstractmethod
    async def store_assets(
        self,
        images: List[MediaUpload],
        videos: List[MediaUpload],
        audio: Optional[MediaUpload],
    ) -> StoredAssets:
        """Persist uploads in order; on failure nothing stored so far is kept."""

    @abstractmethod
    async def discard_assets(self, assets: StoredAssets) -> None:
        """Best-effort removal of assets from an aborted create."""

    @abstractmethod
    async def create(self, letter: Letter) -> Letter:
        ...

    @abstractmethod
    async def get_all(self) -> List[Letter]:
        ...

    @abstractmethod
    async def get_by_id(self, letter_id: str) -> Optional[Letter]:
        ...

    @abstractmethod
    async def update_pending(
        self, letter_id: str, letter_content: str, delay_minutes: int
    ) -> Optional[Letter]:
        """Overwrite content and delay only; returns None if the id is unknown."""

    @abstractmethod
    async def health(self) -> Dict[str, Any]:
        ...
