"""Book, movie and music tracker ("library")."""

import logging
import math
import re
import sqlite3
from typing import Any

from whenever import Instant

from .config import settings
from .database import Database
from .llm import LLMClient
from .models import TrackerItem, TrackerSource, TrackerStatus
from .recommendations import TrackerType, normalize_title

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 500

CREATOR_PROMPT = """Return JSON with a single field "creator".
If the creator is unknown, return null.
Use author for books, director for movies, and artist for music."""

_LEADING_NUMBER = re.compile(r"\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")


def parse_rating(value: Any) -> float | None:
    """Parse a rating from a number or a string that starts with one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        match = _LEADING_NUMBER.match(value)
        if match:
            rating = float(match.group(1))
            return rating if math.isfinite(rating) else None
    return None


def parse_instant(value: str) -> Instant:
    """Parse a ``YYYY-MM-DD`` date (midnight UTC) or a full ISO timestamp."""
    value = value.strip()
    match = re.fullmatch(r"(\d{4})-(\d{2})-(\d{2})", value)
    if match:
        year, month, day = map(int, match.groups())
        return Instant.from_utc(year, month, day)
    return Instant.parse_iso(value)


def parse_type(value: str | TrackerType) -> TrackerType:
    try:
        return TrackerType(str(value).upper())
    except ValueError:
        raise ValueError("Invalid type") from None


def parse_status(value: str | TrackerStatus) -> TrackerStatus:
    try:
        return TrackerStatus(str(value).upper())
    except ValueError:
        raise ValueError("Invalid status") from None


class LibraryService:
    """Create, update and query a user's tracker items."""

    def __init__(self, db: Database, llm: LLMClient | None = None):
        self.db = db
        self.llm = llm

    def list_items(
        self,
        user_id: str,
        item_type: str | None = None,
        status: str | None = None,
        year: int | None = None,
        recommendations: bool | None = None,
    ) -> list[TrackerItem]:
        """List items. Unknown type or status values are ignored, not rejected."""
        type_filter = None
        if item_type and item_type.upper() in TrackerType.__members__:
            type_filter = TrackerType(item_type.upper())

        status_filter = None
        if status and status.upper() in TrackerStatus.__members__:
            status_filter = TrackerStatus(status.upper())

        return self.db.list_tracker_items(
            user_id,
            item_type=type_filter,
            status=status_filter,
            year=year,
            recommendations=recommendations,
        )

    def add_item(
        self,
        user_id: str,
        title: str,
        item_type: str | TrackerType,
        *,
        creator: str | None = None,
        rating: Any = None,
        notes: str | None = None,
        tags: list[str] | None = None,
        is_recommendation: bool = False,
        started_at: Instant | None = None,
        finished_at: Instant | None = None,
    ) -> tuple[TrackerItem, bool]:
        """Add an item unless the user already tracks the same title.

        Recommendations are stored as planned; anything else is treated as
        completed.

        Returns:
            Tuple of (item, existing) where existing is True when a matching
            item was already stored and returned unchanged
        """
        title = title.strip()
        if not title:
            raise ValueError("Title is required")
        if len(title) > MAX_TITLE_LENGTH:
            raise ValueError(f"Title exceeds maximum length ({MAX_TITLE_LENGTH} characters)")
        tracker_type = parse_type(item_type)

        title_normalized = normalize_title(title)
        if not title_normalized:
            raise ValueError("Invalid title")

        existing = self.db.find_tracker_item(user_id, tracker_type, title_normalized)
        if existing:
            return existing, True

        status = TrackerStatus.PLANNED if is_recommendation else TrackerStatus.COMPLETED
        creator = (creator or "").strip()

        item = self.db.create_tracker_item(
            user_id,
            tracker_type,
            title,
            title_normalized,
            status=status,
            creator=creator or None,
            rating=parse_rating(rating),
            notes=notes.strip() if notes else None,
            tags=tags or [],
            source=TrackerSource.MANUAL,
            is_recommendation=is_recommendation,
            started_at=started_at,
            finished_at=None if is_recommendation else finished_at,
        )

        if not creator and self.llm is not None and self.llm.enabled:
            try:
                guessed = self.guess_creator(tracker_type, title)
                if guessed:
                    item = self.db.update_tracker_item(
                        user_id, item.id, {"creator": guessed}
                    ) or item
            except Exception as e:
                logger.error(f"Creator auto-fill failed: {e}")

        return item, False

    def guess_creator(self, item_type: TrackerType, title: str) -> str | None:
        """Ask the LLM for the author, director or artist of a title."""
        parsed = self.llm.chat_json(
            settings.analysis_model,
            CREATOR_PROMPT,
            f"Type: {item_type}\nTitle: {title}",
            temperature=settings.analysis_temperature,
        )
        creator = parsed.get("creator")
        if not isinstance(creator, str):
            return None
        return creator.strip() or None

    def update_item(
        self, user_id: str, item_id: str, changes: dict[str, Any]
    ) -> TrackerItem | None:
        """Update an item from a partial set of fields.

        Keeps status and recommendation flag consistent: a recommendation is
        always planned, a completed item is never a recommendation, and
        clearing the recommendation flag completes the item.

        Returns:
            Updated item, or None if the user has no such item
        """
        data: dict[str, Any] = {}

        if isinstance(changes.get("title"), str):
            title = changes["title"].strip()
            title_normalized = normalize_title(title)
            if not title or not title_normalized:
                raise ValueError("Invalid title")
            data["title"] = title
            data["title_normalized"] = title_normalized

        if changes.get("type") is not None:
            data["type"] = parse_type(changes["type"])

        if changes.get("status") is not None:
            data["status"] = parse_status(changes["status"])

        if isinstance(changes.get("creator"), str):
            data["creator"] = changes["creator"].strip()

        rating = parse_rating(changes.get("rating"))
        if rating is not None:
            data["rating"] = rating

        if isinstance(changes.get("notes"), str):
            data["notes"] = changes["notes"].strip()

        if isinstance(changes.get("tags"), list):
            data["tags"] = changes["tags"]

        if isinstance(changes.get("is_recommendation"), bool):
            data["is_recommendation"] = changes["is_recommendation"]
            if changes["is_recommendation"]:
                data["status"] = TrackerStatus.PLANNED
                data["finished_at"] = None

        if changes.get("started_at"):
            data["started_at"] = changes["started_at"]

        if changes.get("finished_at"):
            data["finished_at"] = changes["finished_at"]

        if data.get("status") == TrackerStatus.COMPLETED:
            data["is_recommendation"] = False

        if data.get("is_recommendation") is False and data.get("status") != TrackerStatus.COMPLETED:
            data["status"] = TrackerStatus.COMPLETED

        if self.db.get_tracker_item(user_id, item_id) is None:
            return None

        try:
            return self.db.update_tracker_item(user_id, item_id, data)
        except sqlite3.IntegrityError:
            raise ValueError("An item with this title already exists") from None

    def delete_item(self, user_id: str, item_id: str) -> bool:
        return self.db.delete_tracker_item(user_id, item_id)
