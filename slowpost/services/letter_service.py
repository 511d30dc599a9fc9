# slowpost/services/letter_service.py
"""
Letter service

Create: validate -> normalize delay -> hash password -> detect country ->
store assets -> store record. Reads re-derive the reveal status from the
clock every time; nothing about revealing is ever written back.
"""

import asyncio
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional

from slowpost.config import Settings
from slowpost.exceptions import (
    EditForbiddenError,
    LetterNotFoundError,
    LetterValidationError,
    StorageError,
    StorageUnavailableError,
)
from slowpost.schemas.letter_schemas import Letter, PendingEditRequest, PendingEditResponse
from slowpost.services.country_service import CountryService
from slowpost.services.letter_input import parse_letter_form, partition_media
from slowpost.services.storage.base import MediaUpload, StorageBackend
from slowpost.utils.logger import logger
from slowpost.utils.reveal import combine_delay, delay_days, reveal_status, utcnow
from slowpost.utils.security import hash_password, verify_password


class LetterService:
    def __init__(
        self,
        storage: StorageBackend,
        settings: Settings,
        country_service: CountryService = None,
        clock: Callable = utcnow,
    ):
        self.storage = storage
        self.settings = settings
        self.country_service = country_service or CountryService(settings)
        self.clock = clock

    def _view(self, letter: Letter) -> Dict[str, Any]:
        status = reveal_status(self.clock(), letter.schedule_time, letter.delay_minutes)
        data = letter.public_dict()
        data["delayMinutes"] = letter.delay_minutes
        data["isRevealed"] = status.is_revealed
        data["timeLeft"] = status.time_left_ms
        return data

    async def create_letter(
        self,
        fields: Mapping[str, Any],
        uploads: List[MediaUpload],
        ip: Optional[str] = None,
        headers: Mapping[str, str] = None,
    ) -> Dict[str, Any]:
        letter_input = parse_letter_form(fields)
        media = partition_media(uploads, self.settings.max_upload_files)

        password_hash = None
        if letter_input.edit_password:
            password_hash = await asyncio.to_thread(
                hash_password, letter_input.edit_password, self.settings.password_kdf_rounds
            )

        sender_country = await self.country_service.detect(ip, headers or {})

        try:
            assets = await self.storage.store_assets(media.images, media.videos, media.audio)
        except StorageError as e:
            logger.error(f" Asset storage failed: {e}")
            raise StorageUnavailableError(f"Could not store uploaded files: {e}") from e

        now = self.clock()
        letter = Letter(
            id=str(uuid.uuid4()),
            sender_name=letter_input.sender_name,
            recipient_name=letter_input.recipient_name,
            recipient_email=letter_input.recipient_email,
            sender_country=sender_country,
            letter_content=letter_input.letter_content,
            delay_minutes=letter_input.delay_minutes,
            delay_days=delay_days(letter_input.delay_minutes),
            schedule_time=now,
            created_at=now,
            image_urls=assets.image_urls,
            video_urls=assets.video_urls,
            audio_url=assets.audio_url,
            stamp_data=letter_input.stamp_data,
            stamp_template=letter_input.stamp_template,
            paper_theme=letter_input.paper_theme,
            ambience_music=letter_input.ambience_music,
            stickers=letter_input.stickers,
            holiday_theme=letter_input.holiday_theme,
            edit_password_hash=password_hash,
        )

        try:
            await self.storage.create(letter)
        except StorageError as e:
            logger.error(f" Letter save failed: {e}")
            await self.storage.discard_assets(assets)
            raise StorageUnavailableError(f"Could not save letter: {e}") from e

        logger.info(
            f" Letter saved: {letter.id} (delay={letter.delay_minutes}m, "
            f"images={len(letter.image_urls)}, videos={len(letter.video_urls)}, audio={bool(letter.audio_url)})"
        )
        return letter.public_dict()

    async def list_letters(self) -> List[Dict[str, Any]]:
        try:
            letters = await self.storage.get_all()
        except StorageError as e:
            logger.error(f" Letter listing failed: {e}")
            raise StorageUnavailableError(f"Letter store unavailable: {e}") from e
        return [letter.public_dict() for letter in letters]

    async def _load(self, letter_id: str) -> Letter:
        try:
            letter = await self.storage.get_by_id(letter_id)
        except StorageError as e:
            logger.error(f" Letter lookup failed: {e}")
            raise StorageUnavailableError(f"Letter store unavailable: {e}") from e
        if letter is None:
            raise LetterNotFoundError("Letter not found")
        return letter

    async def get_letter(self, letter_id: str) -> Dict[str, Any]:
        return self._view(await self._load(letter_id))

    async def edit_pending(self, letter_id: str, request: PendingEditRequest) -> PendingEditResponse:
        """Change content/delay of a letter that has not unlocked yet."""
        if not request.password:
            raise LetterValidationError("password is required")

        letter = await self._load(letter_id)

        status = reveal_status(self.clock(), letter.schedule_time, letter.delay_minutes)
        if status.is_revealed:
            raise LetterValidationError("cannot edit after unlock")
        if not letter.edit_password_hash:
            raise LetterValidationError("pending edit not enabled for this letter")
        matches = await asyncio.to_thread(
            verify_password, request.password, letter.edit_password_hash, self.settings.password_kdf_rounds
        )
        if not matches:
            logger.warning(f" Pending edit rejected for {letter_id}: wrong password")
            raise EditForbiddenError("wrong password")

        delay_given = any(
            value is not None
            for value in (request.delayDays, request.delayHours, request.delayMinutesPart)
        )
        new_delay = (
            combine_delay(request.delayDays, request.delayHours, request.delayMinutesPart)
            if delay_given
            else letter.delay_minutes
        )
        new_content = request.letterContent if request.letterContent is not None else letter.letter_content

        try:
            updated = await self.storage.update_pending(letter_id, new_content, new_delay)
        except StorageError as e:
            logger.error(f" Pending edit failed for {letter_id}: {e}")
            raise StorageUnavailableError(f"Could not save edit: {e}") from e
        if updated is None:
            raise LetterNotFoundError("Letter not found")

        logger.info(f" Pending edit applied: {letter_id} (delay={updated.delay_minutes}m)")
        status = reveal_status(self.clock(), updated.schedule_time, updated.delay_minutes)
        return PendingEditResponse(
            id=updated.id,
            letterContent=updated.letter_content,
            delayMinutes=updated.delay_minutes,
            delayDays=updated.delay_days,
            isRevealed=status.is_revealed,
            timeLeft=status.time_left_ms,
        )

    async def health(self) -> Dict[str, Any]:
        report = await self.storage.health()
        live = report.get("live", {})
        return {
            "status": "healthy" if all(live.values()) else "degraded",
            "storage": self.storage.name,
            "configured": report.get("configured", {}),
            "live": live,
        }
