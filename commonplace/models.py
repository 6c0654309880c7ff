"""Pydantic models for commonplace data structures."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from whenever import Instant

from .recommendations import TrackerType


class FolderType(StrEnum):
    FRAGMENTS = "FRAGMENTS"
    LONG = "LONG"


class TrackerStatus(StrEnum):
    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class TrackerSource(StrEnum):
    MANUAL = "MANUAL"
    NOTE_AUTO = "NOTE_AUTO"
    IMPORT = "IMPORT"


class User(BaseModel):
    """A registered account."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    id: str
    email: str
    name: str | None = None
    password_hash: str
    created_at: Instant


class Folder(BaseModel):
    """A user's folder that notes are filed into."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    id: str
    user_id: str
    name: str
    type: FolderType = FolderType.FRAGMENTS
    instructions: str | None = None
    parent_id: str | None = None
    created_at: Instant
    note_count: int = 0


class CalendarEvent(BaseModel):
    """Event details the LLM found in a note.

    Date and time are kept as the phrases from the note ("next Friday",
    "at noon"); they are not resolved to an absolute time.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: str
    date_text: str | None = Field(default=None, alias="dateText")
    time_text: str | None = Field(default=None, alias="timeText")
    duration: int | None = None
    location: str | None = None
    notes: str | None = None
    is_all_day: bool = Field(default=False, alias="isAllDay")


class Analysis(BaseModel):
    """Structured LLM output for a single note."""

    title: str = "Untitled Note"
    summary: str = ""
    cleaned_memo: str = ""
    tags: list[str] = Field(default_factory=list)
    action_required: bool = False
    location_relevant: bool = False
    calendar_event: CalendarEvent | None = None


class Note(BaseModel):
    """A stored note."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    id: str
    user_id: str
    folder_id: str
    folder_name: str | None = None
    original_text: str
    cleaned_memo: str | None = None
    title: str | None = None
    summary: str | None = None
    tags: list[str] = Field(default_factory=list)
    action_required: bool = False
    location_relevant: bool = False
    latitude: float | None = None
    longitude: float | None = None
    place_name: str | None = None
    audio_url: str | None = None
    image_urls: list[str] = Field(default_factory=list)
    calendar_event: CalendarEvent | None = None
    created_at: Instant


class TrackerItem(BaseModel):
    """A book, movie or music entry in a user's library."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    id: str
    user_id: str
    type: TrackerType
    status: TrackerStatus = TrackerStatus.PLANNED
    title: str
    title_normalized: str
    creator: str | None = None
    rating: float | None = None
    notes: str | None = None
    tags: list[str] = Field(default_factory=list)
    source: TrackerSource = TrackerSource.MANUAL
    is_recommendation: bool = False
    source_note_id: str | None = None
    started_at: Instant | None = None
    finished_at: Instant | None = None
    created_at: Instant


class UserSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: str
    custom_llm_instructions: str | None = None


class PasswordResetToken(BaseModel):
    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    token_hash: str
    user_id: str
    expires_at: Instant
    created_at: Instant


def to_jsonable(value: Any) -> Any:
    """Convert models, enums and instants into JSON-serializable values."""
    if isinstance(value, BaseModel):
        return to_jsonable(value.model_dump())
    if isinstance(value, Instant):
        return value.format_iso()
    if isinstance(value, StrEnum):
        return value.value
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [to_jsonable(v) for v in value]
    return value
