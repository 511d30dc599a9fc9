# slowpost/services/letter_input.py
"""
Untrusted form input -> validated letter input

Every field the create endpoint accepts is read here and nowhere else.
Names are trimmed and required, numbers are clamped, cosmetic enums fall
back to defaults, and uploads are partitioned into images/videos/audio.
"""

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from slowpost.exceptions import LetterValidationError
from slowpost.schemas.letter_schemas import (
    HOLIDAY_THEMES,
    PAPER_THEMES,
    STAMP_TEMPLATES,
    filter_stickers,
    pick_choice,
)
from slowpost.services.storage.base import MediaUpload
from slowpost.utils.reveal import normalize_delay

MIN_PASSWORD_LENGTH = 4
MAX_NAME_LENGTH = 100
MAX_STAMP_DATA_LENGTH = 2 * 1024 * 1024

IMAGE_FIELDS = ("images", "image")
VIDEO_FIELDS = ("videos", "video")
AUDIO_FIELDS = ("audio",)
MEDIA_FIELDS = IMAGE_FIELDS + VIDEO_FIELDS + AUDIO_FIELDS

DELAY_FIELDS = (
    "delayMinutes",
    "delayDays",
    "delayHours",
    "delayMinutesPart",
    "delayValue",
    "delayUnit",
)


@dataclass
class LetterMedia:
    images: List[MediaUpload] = field(default_factory=list)
    videos: List[MediaUpload] = field(default_factory=list)
    audio: Optional[MediaUpload] = None

    @property
    def count(self) -> int:
        return len(self.images) + len(self.videos) + (1 if self.audio else 0)


@dataclass
class LetterInput:
    sender_name: str
    recipient_name: str
    recipient_email: Optional[str]
    letter_content: str
    delay_minutes: int
    edit_password: Optional[str]
    stamp_data: Optional[str]
    stamp_template: str
    paper_theme: str
    ambience_music: bool
    stickers: List[str]
    holiday_theme: str


def _text(fields: Mapping[str, Any], key: str) -> str:
    value = fields.get(key)
    return value if isinstance(value, str) else ""


def _required_name(fields: Mapping[str, Any], key: str) -> str:
    value = _text(fields, key).strip()
    if not value:
        raise LetterValidationError("senderName and recipientName are required")
    if len(value) > MAX_NAME_LENGTH:
        raise LetterValidationError(f"{key} must be at most {MAX_NAME_LENGTH} characters")
    return value


def _stamp_data(fields: Mapping[str, Any]) -> Optional[str]:
    value = _text(fields, "stampData").strip()
    if not value.startswith("data:image/"):
        return None
    if len(value) > MAX_STAMP_DATA_LENGTH:
        raise LetterValidationError("stampData is too large")
    return value


def require_edit_password(password: Optional[str], delay_minutes: int) -> Optional[str]:
    """A delayed letter must carry an edit password of at least 4 characters."""
    if delay_minutes <= 0:
        return None
    if not password or len(password.strip()) < MIN_PASSWORD_LENGTH:
        raise LetterValidationError(
            f"editPassword of at least {MIN_PASSWORD_LENGTH} characters is required when delay > 0"
        )
    return password


def parse_letter_form(fields: Mapping[str, Any]) -> LetterInput:
    sender_name = _required_name(fields, "senderName")
    recipient_name = _required_name(fields, "recipientName")

    delay_minutes = normalize_delay({key: fields.get(key) for key in DELAY_FIELDS})
    edit_password = require_edit_password(fields.get("editPassword") or None, delay_minutes)

    recipient_email = _text(fields, "recipientEmail").strip() or None

    return LetterInput(
        sender_name=sender_name,
        recipient_name=recipient_name,
        recipient_email=recipient_email,
        letter_content=_text(fields, "letterContent"),
        delay_minutes=delay_minutes,
        edit_password=edit_password,
        stamp_data=_stamp_data(fields),
        stamp_template=pick_choice(fields.get("stampTemplate"), STAMP_TEMPLATES, "classic"),
        paper_theme=pick_choice(fields.get("paperTheme"), PAPER_THEMES, "classic"),
        ambience_music=_text(fields, "ambienceMusic") == "true",
        stickers=filter_stickers(fields.get("stickers")),
        holiday_theme=pick_choice(fields.get("holidayTheme"), HOLIDAY_THEMES, "none"),
    )


def partition_media(uploads: List[MediaUpload], max_files: int) -> LetterMedia:
    """Split uploads into images/videos by declared MIME type, audio by field.

    Senders may put videos in the ``images`` field (the composer sends every
    visual attachment there), so the content type decides, not the field.
    """
    media = LetterMedia()
    for upload in uploads:
        if upload.field_name not in MEDIA_FIELDS:
            raise LetterValidationError(f"Unexpected field: {upload.field_name}")

        if upload.field_name in AUDIO_FIELDS:
            if media.audio is not None:
                raise LetterValidationError("Only one audio file is allowed")
            media.audio = upload
        elif (upload.content_type or "").lower().startswith("video/"):
            media.videos.append(upload)
        else:
            media.images.append(upload)

    if len(media.images) > max_files:
        raise LetterValidationError(f"Too many images (max {max_files})")
    if len(media.videos) > max_files:
        raise LetterValidationError(f"Too many videos (max {max_files})")
    return media
