# slowpost/schemas/letter_schemas.py
"""
Letter record schema

Field names are snake_case in Python and camelCase on the wire and in the
local JSON store (``imageUrls``, ``editPasswordHash`` ...).
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

from slowpost.utils.reveal import (
    MAX_DELAY_MINUTES,
    delay_days,
    format_timestamp,
    normalize_delay,
    parse_timestamp,
)

PAPER_THEMES = ("classic", "warm", "mint", "lavender")
HOLIDAY_THEMES = ("none", "christmas", "birthday", "newyear")
STICKERS = ("star", "flower", "postmark")
STAMP_TEMPLATES = ("classic", "star", "heart", "wave")

PaperTheme = Literal["classic", "warm", "mint", "lavender"]
HolidayTheme = Literal["none", "christmas", "birthday", "newyear"]
Sticker = Literal["star", "flower", "postmark"]
StampTemplate = Literal["classic", "star", "heart", "wave"]


def pick_choice(value: Any, allowed, default: str) -> str:
    """Known enum value or the default; unknown cosmetic values never raise."""
    if isinstance(value, str):
        candidate = value.strip().lower()
        if candidate in allowed:
            return candidate
    return default


def filter_stickers(value: Any) -> List[str]:
    """Allowlisted, de-duplicated stickers in first-seen order.

    Accepts a list or a JSON-encoded list; anything else yields [].
    """
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    if not isinstance(value, (list, tuple)):
        return []

    stickers = []
    for item in value:
        if isinstance(item, str) and item in STICKERS and item not in stickers:
            stickers.append(item)
    return stickers


def _string_list(value: Any) -> List[str]:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    if not isinstance(value, (list, tuple)):
        return []
    return [item for item in value if isinstance(item, str) and item]


def _optional_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


def _is_true(value: Any) -> bool:
    return value is True or value == 1 or value == "true"


class Letter(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    sender_name: str
    recipient_name: str
    recipient_email: Optional[str] = None
    sender_country: Optional[str] = None
    letter_content: str = ""
    delay_minutes: int = Field(0, ge=0, le=MAX_DELAY_MINUTES)
    delay_days: int = 0
    schedule_time: datetime
    created_at: datetime
    image_urls: List[str] = Field(default_factory=list)
    video_urls: List[str] = Field(default_factory=list)
    audio_url: Optional[str] = None
    stamp_data: Optional[str] = None
    stamp_template: StampTemplate = "classic"
    paper_theme: PaperTheme = "classic"
    ambience_music: bool = False
    stickers: List[Sticker] = Field(default_factory=list)
    holiday_theme: HolidayTheme = "none"
    edit_password_hash: Optional[str] = None

    @field_serializer("schedule_time", "created_at")
    def _serialize_timestamp(self, value: datetime) -> str:
        return format_timestamp(value)

    @property
    def has_edit_password(self) -> bool:
        return bool(self.edit_password_hash)

    def to_document(self) -> Dict[str, Any]:
        """Full camelCase record, password hash included (storage only)."""
        return self.model_dump(by_alias=True, mode="json")

    def public_dict(self) -> Dict[str, Any]:
        """camelCase projection safe to hand to clients."""
        data = self.model_dump(by_alias=True, mode="json", exclude={"edit_password_hash"})
        data["hasEditPassword"] = self.has_edit_password
        return data

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "Letter":
        """Build a letter from a stored camelCase document.

        Missing or malformed optional fields fall back to their defaults, and
        the delay is re-derived so legacy ``delayDays``-only records still
        read correctly. Raises ValueError when the document has no id, or
        has neither a readable ``scheduleTime`` nor ``createdAt``.
        """
        letter_id = doc.get("id")
        if not letter_id:
            raise ValueError("stored letter has no id")

        created_at = parse_timestamp(doc.get("createdAt"))
        schedule_time = parse_timestamp(doc.get("scheduleTime")) or created_at
        if schedule_time is None:
            raise ValueError(f"stored letter {letter_id} has no readable timestamp")
        minutes = normalize_delay({
            "delayMinutes": doc.get("delayMinutes"),
            "delayDays": doc.get("delayDays"),
        })

        return cls(
            id=str(letter_id),
            sender_name=str(doc.get("senderName") or ""),
            recipient_name=str(doc.get("recipientName") or ""),
            recipient_email=_optional_str(doc.get("recipientEmail")),
            sender_country=_optional_str(doc.get("senderCountry")),
            letter_content=doc.get("letterContent") if isinstance(doc.get("letterContent"), str) else "",
            delay_minutes=minutes,
            delay_days=delay_days(minutes),
            schedule_time=schedule_time,
            created_at=created_at or schedule_time,
            image_urls=_string_list(doc.get("imageUrls")),
            video_urls=_string_list(doc.get("videoUrls")),
            audio_url=_optional_str(doc.get("audioUrl")),
            stamp_data=_optional_str(doc.get("stampData")),
            stamp_template=pick_choice(doc.get("stampTemplate"), STAMP_TEMPLATES, "classic"),
            paper_theme=pick_choice(doc.get("paperTheme"), PAPER_THEMES, "classic"),
            ambience_music=_is_true(doc.get("ambienceMusic")),
            stickers=filter_stickers(doc.get("stickers")),
            holiday_theme=pick_choice(doc.get("holidayTheme"), HOLIDAY_THEMES, "none"),
            edit_password_hash=_optional_str(doc.get("editPasswordHash")),
        )


DelayPart = Union[int, float, str, None]


# PUT /api/letters/{id}/edit
class PendingEditRequest(BaseModel):
    password: Optional[str] = None
    letterContent: Optional[str] = None
    delayDays: DelayPart = None
    delayHours: DelayPart = None
    delayMinutesPart: DelayPart = None


class PendingEditResponse(BaseModel):
    id: str
    letterContent: str
    delayMinutes: int
    delayDays: int
    isRevealed: bool
    timeLeft: int
