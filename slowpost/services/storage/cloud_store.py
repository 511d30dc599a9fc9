# slowpost/services/storage/cloud_store.py
"""
Cloud storage: relational "letters" table + S3 object store

Assets are uploaded one at a time with linear backoff between attempts.
Inserts and updates tolerate a remote table that is missing columns: the
column named in the error is dropped from the payload and the statement is
retried, up to ``insert_max_attempts`` tries.
"""

import asyncio
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic.alias_generators import to_camel
from sqlalchemy import column, insert, table, text, update
from sqlalchemy.exc import SQLAlchemyError

from slowpost.config import Settings
from slowpost.exceptions import AssetUploadError, StorageError
from slowpost.models.base import Base, build_engine
from slowpost.models.letter import LetterRow
from slowpost.schemas.letter_schemas import Letter
from slowpost.services.storage.base import MediaUpload, StorageBackend, StoredAssets, asset_name
from slowpost.services.storage.object_store import OBJECT_STORE_ERRORS, ObjectStore
from slowpost.utils.logger import logger
from slowpost.utils.reveal import delay_days

_MISSING_COLUMN_PATTERNS = (
    # MySQL / MariaDB
    re.compile(r"Unknown column '(?:[^']*\.)?(\w+)' in 'field list'"),
    # SQLite
    re.compile(r"has no column named (\w+)"),
    re.compile(r"no such column: (?:\w+\.)?(\w+)"),
    # PostgreSQL
    re.compile(r'column "(\w+)" of relation "[^"]+" does not exist'),
    # PostgREST schema cache
    re.compile(r"Could not find the '(\w+)' column"),
)

# A letter without these cannot be revealed or edited correctly.
INSERT_PROTECTED_COLUMNS = frozenset(
    {"id", "delay_minutes", "schedule_time", "created_at", "edit_password_hash"}
)
UPDATE_PROTECTED_COLUMNS = frozenset({"letter_content", "delay_minutes"})

ASSET_FOLDERS = {"image": "images", "video": "videos", "audio": "audio"}


def missing_column(error: BaseException) -> Optional[str]:
    """Column name from a "column does not exist" error, else None."""
    message = str(getattr(error, "orig", None) or error)
    for pattern in _MISSING_COLUMN_PATTERNS:
        match = pattern.search(message)
        if match:
            return match.group(1)
    return None


def _naive_utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def letter_to_row(letter: Letter) -> Dict[str, Any]:
    row = letter.model_dump(mode="json")
    row["schedule_time"] = _naive_utc(letter.schedule_time)
    row["created_at"] = _naive_utc(letter.created_at)
    return row


def letter_from_row(row: Dict[str, Any]) -> Letter:
    """snake_case row -> Letter; absent columns take the field defaults."""
    return Letter.from_document({to_camel(key): value for key, value in row.items()})


class CloudStorage(StorageBackend):
    name = "cloud"

    def __init__(
        self,
        settings: Settings,
        object_store: ObjectStore = None,
        sleep: Callable = asyncio.sleep,
    ):
        self.engine = build_engine(settings.database_url, echo=settings.debug)
        self.table = LetterRow.__table__
        self.object_store = object_store or ObjectStore(settings)
        self.upload_retries = settings.upload_retries
        self.upload_backoff_ms = settings.upload_backoff_ms
        self.insert_max_attempts = settings.insert_max_attempts
        self._settings = settings
        self._sleep = sleep
        logger.info(" CloudStorage initialized")

    async def prepare(self) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info(" Letters table ready")
        except SQLAlchemyError as e:
            logger.error(f" Letters table check failed: {e}")

    async def close(self) -> None:
        await self.engine.dispose()
        logger.info(" Database connection closed")

    # ---- assets ----

    async def _upload_with_retry(self, upload: MediaUpload, kind: str) -> Tuple[str, str]:
        key = f"{ASSET_FOLDERS[kind]}/{asset_name(upload.filename)}"
        data = upload.data
        attempts = self.upload_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                url = await self.object_store.put(key, data, upload.content_type)
                return key, url
            except OBJECT_STORE_ERRORS as e:
                if attempt >= attempts:
                    logger.error(f" Upload of {key} failed after {attempt} attempts: {e}")
                    raise AssetUploadError(f"upload of {upload.filename or key} failed: {e}") from e
                backoff = self.upload_backoff_ms * attempt / 1000
                logger.warning(f" Upload of {key} failed (attempt {attempt}/{attempts}), retrying in {backoff:.1f}s: {e}")
                await self._sleep(backoff)

    async def store_assets(self, images, videos, audio) -> StoredAssets:
        stored = StoredAssets()
        try:
            for upload in images:
                key, url = await self._upload_with_retry(upload, "image")
                stored.keys.append(key)
                stored.image_urls.append(url)
            for upload in videos:
                key, url = await self._upload_with_retry(upload, "video")
                stored.keys.append(key)
                stored.video_urls.append(url)
            if audio is not None:
                key, url = await self._upload_with_retry(audio, "audio")
                stored.keys.append(key)
                stored.audio_url = url
        except AssetUploadError:
            await self.discard_assets(stored)
            raise
        return stored

    async def discard_assets(self, assets: StoredAssets) -> None:
        for key in assets.keys:
            await self.object_store.delete(key)

    # ---- letters ----

    def _target(self, values: Dict[str, Any]):
        """Table clause holding only the columns being written, without model defaults."""
        return table(
            self.table.name,
            *[column(name, self.table.c[name].type) for name in values],
        )

    async def _write_tolerating_drift(
        self,
        payload: Dict[str, Any],
        build_statement: Callable,
        protected: frozenset,
    ):
        payload = dict(payload)
        attempt = 0
        while True:
            attempt += 1
            try:
                async with self.engine.begin() as conn:
                    return await conn.execute(build_statement(payload))
            except SQLAlchemyError as e:
                missing = missing_column(e)
                droppable = missing is not None and missing in payload and missing not in protected
                if droppable and attempt < self.insert_max_attempts:
                    logger.warning(f" Column '{missing}' missing from remote table, retrying without it")
                    payload.pop(missing)
                    continue
                raise StorageError(f"relational store write failed: {e}") from e

    async def create(self, letter: Letter) -> Letter:
        await self._write_tolerating_drift(
            letter_to_row(letter),
            lambda values: insert(self._target(values)).values(**values),
            INSERT_PROTECTED_COLUMNS,
        )
        return letter

    async def _fetch(self, statement, params: Dict[str, Any] = None) -> List[Dict[str, Any]]:
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(statement, params or {})
                return [dict(row._mapping) for row in result]
        except SQLAlchemyError as e:
            raise StorageError(f"relational store read failed: {e}") from e

    async def get_all(self) -> List[Letter]:
        rows = await self._fetch(text(f"SELECT * FROM {self.table.name}"))
        letters = []
        for row in rows:
            try:
                letters.append(letter_from_row(row))
            except ValueError as e:
                logger.warning(f" Skipping unreadable letter row: {e}")
        letters.sort(key=lambda letter: letter.created_at)
        return letters

    async def get_by_id(self, letter_id: str) -> Optional[Letter]:
        rows = await self._fetch(
            text(f"SELECT * FROM {self.table.name} WHERE id = :id"), {"id": letter_id}
        )
        if not rows:
            return None
        try:
            return letter_from_row(rows[0])
        except ValueError as e:
            logger.warning(f" Unreadable letter row {letter_id}: {e}")
            return None

    async def update_pending(self, letter_id, letter_content, delay_minutes) -> Optional[Letter]:
        result = await self._write_tolerating_drift(
            {
                "letter_content": letter_content,
                "delay_minutes": delay_minutes,
                "delay_days": delay_days(delay_minutes),
            },
            lambda values: (
                update(self._target(values))
                .where(column("id", self.table.c.id.type) == letter_id)
                .values(**values)
            ),
            UPDATE_PROTECTED_COLUMNS,
        )
        if result.rowcount == 0:
            return None
        return await self.get_by_id(letter_id)

    async def health(self) -> Dict[str, Any]:
        database_live = True
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.warning(f" Database check failed: {e}")
            database_live = False

        return {
            "configured": {
                "databaseUrl": bool(self._settings.database_url),
                "s3Bucket": bool(self._settings.s3_bucket),
                "awsCredentials": bool(
                    self._settings.aws_access_key_id and self._settings.aws_secret_access_key
                ),
            },
            "live": {
                "database": database_live,
                "objectStore": await self.object_store.check_bucket(),
            },
        }
