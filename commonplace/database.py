import json
import logging
import sqlite3
import uuid
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from whenever import Instant

from .models import (
    CalendarEvent,
    Folder,
    FolderType,
    Note,
    PasswordResetToken,
    TrackerItem,
    TrackerSource,
    TrackerStatus,
    User,
    UserSettings,
)
from .recommendations import TrackerType

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    name TEXT,
    password_hash TEXT NOT NULL,
    created_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS folders (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'FRAGMENTS',
    instructions TEXT,
    parent_id TEXT,
    created_at TIMESTAMP NOT NULL,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
    FOREIGN KEY (parent_id) REFERENCES folders(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS notes (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    folder_id TEXT NOT NULL,
    original_text TEXT NOT NULL,
    cleaned_memo TEXT,
    title TEXT,
    summary TEXT,
    tags TEXT NOT NULL DEFAULT '[]',
    action_required BOOLEAN DEFAULT 0,
    location_relevant BOOLEAN DEFAULT 0,
    latitude REAL,
    longitude REAL,
    place_name TEXT,
    audio_url TEXT,
    image_urls TEXT NOT NULL DEFAULT '[]',
    created_at TIMESTAMP NOT NULL,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
    FOREIGN KEY (folder_id) REFERENCES folders(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS calendar_events (
    note_id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    date_text TEXT,
    time_text TEXT,
    duration INTEGER,
    location TEXT,
    notes TEXT,
    is_all_day BOOLEAN DEFAULT 0,
    FOREIGN KEY (note_id) REFERENCES notes(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS tracker_items (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    type TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'PLANNED',
    title TEXT NOT NULL,
    title_normalized TEXT NOT NULL,
    creator TEXT,
    rating REAL,
    notes TEXT,
    tags TEXT NOT NULL DEFAULT '[]',
    source TEXT NOT NULL DEFAULT 'MANUAL',
    is_recommendation BOOLEAN DEFAULT 0,
    source_note_id TEXT,
    started_at TIMESTAMP,
    finished_at TIMESTAMP,
    created_at TIMESTAMP NOT NULL,
    UNIQUE (user_id, type, title_normalized),
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
    FOREIGN KEY (source_note_id) REFERENCES notes(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS user_settings (
    user_id TEXT PRIMARY KEY,
    custom_llm_instructions TEXT,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS password_reset_tokens (
    token_hash TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    expires_at TIMESTAMP NOT NULL,
    created_at TIMESTAMP NOT NULL,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_folders_user ON folders(user_id);
CREATE INDEX IF NOT EXISTS idx_notes_user_created ON notes(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_notes_folder ON notes(folder_id);
CREATE INDEX IF NOT EXISTS idx_tracker_items_user ON tracker_items(user_id, type);
CREATE INDEX IF NOT EXISTS idx_reset_tokens_user ON password_reset_tokens(user_id);
"""

# Columns callers may change through update_folder / update_tracker_item
FOLDER_UPDATE_COLUMNS = frozenset({"name", "instructions", "parent_id"})
TRACKER_UPDATE_COLUMNS = frozenset(
    {
        "type",
        "status",
        "title",
        "title_normalized",
        "creator",
        "rating",
        "notes",
        "tags",
        "is_recommendation",
        "started_at",
        "finished_at",
    }
)

NOTE_SEARCH_FIELDS = ("title", "summary", "cleaned_memo", "original_text")


def _new_id() -> str:
    return uuid.uuid4().hex


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class Database:
    def __init__(
        self,
        db_path: str = "commonplace.db",
        now_func: Callable[[], Instant] = Instant.now,
    ):
        self.db_path = db_path
        self._memory_conn = None
        self.now_func = now_func
        self.init_db()

    def init_db(self) -> None:
        """Initialize the database with schema."""
        with self.get_conn() as conn:
            # Only enable WAL mode for file-based databases, not in-memory
            if self.db_path != ":memory:":
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")

            conn.executescript(SCHEMA)
            conn.commit()

    @contextmanager
    def get_conn(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection with row factory."""
        if self.db_path == ":memory:":
            # For in-memory databases, maintain a persistent connection
            if self._memory_conn is None:
                self._memory_conn = self._connect()
            yield self._memory_conn
        else:
            conn = self._connect()
            try:
                yield conn
            finally:
                conn.close()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, detect_types=sqlite3.PARSE_DECLTYPES)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        # SQLite's own lower() only folds ASCII
        conn.create_function("unicode_lower", 1, str.lower, deterministic=True)
        self._register_adapters_converters()
        return conn

    def _register_adapters_converters(self) -> None:
        """Register adapters and converters for custom types."""

        def adapt_instant(instant: Instant) -> str:
            return instant.format_iso()

        def convert_instant(s: bytes) -> Instant:
            return Instant.parse_iso(s.decode())

        sqlite3.register_adapter(Instant, adapt_instant)
        sqlite3.register_converter("TIMESTAMP", convert_instant)

    def _now(self) -> Instant:
        # Whole seconds keep ISO strings lexically ordered
        return self.now_func().round()

    # Users

    def create_user(self, email: str, password_hash: str, name: str | None = None) -> User:
        """Insert a new user. Raises sqlite3.IntegrityError on duplicate email."""
        user = User(
            id=_new_id(),
            email=email,
            name=name,
            password_hash=password_hash,
            created_at=self._now(),
        )
        with self.get_conn() as conn:
            conn.execute(
                """
                INSERT INTO users (id, email, name, password_hash, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user.id, user.email, user.name, user.password_hash, user.created_at),
            )
            conn.commit()
        return user

    def get_user(self, user_id: str) -> User | None:
        with self.get_conn() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return User(**dict(row)) if row else None

    def find_user_by_email(self, email: str) -> User | None:
        """Look up a user by email, ignoring case."""
        with self.get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE lower(email) = lower(?)", (email.strip(),)
            ).fetchone()
            return User(**dict(row)) if row else None

    def update_user_password(self, user_id: str, password_hash: str) -> None:
        with self.get_conn() as conn:
            conn.execute(
                "UPDATE users SET password_hash = ? WHERE id = ?",
                (password_hash, user_id),
            )
            conn.commit()

    # Folders

    def create_folder(
        self,
        user_id: str,
        name: str,
        folder_type: FolderType = FolderType.FRAGMENTS,
        instructions: str | None = None,
        parent_id: str | None = None,
    ) -> Folder:
        folder = Folder(
            id=_new_id(),
            user_id=user_id,
            name=name,
            type=folder_type,
            instructions=instructions,
            parent_id=parent_id,
            created_at=self._now(),
        )
        with self.get_conn() as conn:
            conn.execute(
                """
                INSERT INTO folders (id, user_id, name, type, instructions, parent_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    folder.id,
                    folder.user_id,
                    folder.name,
                    folder.type.value,
                    folder.instructions,
                    folder.parent_id,
                    folder.created_at,
                ),
            )
            conn.commit()
        return folder

    def list_folders(self, user_id: str) -> list[Folder]:
        """List a user's folders, newest first, with note counts."""
        with self.get_conn() as conn:
            cursor = conn.execute(
                """
                SELECT f.*, COUNT(n.id) AS note_count
                FROM folders f
                LEFT JOIN notes n ON n.folder_id = f.id
                WHERE f.user_id = ?
                GROUP BY f.id
                ORDER BY f.created_at DESC, f.rowid DESC
                """,
                (user_id,),
            )
            return [Folder(**dict(row)) for row in cursor.fetchall()]

    def get_folder(self, user_id: str, folder_id: str) -> Folder | None:
        with self.get_conn() as conn:
            row = conn.execute(
                """
                SELECT f.*, (SELECT COUNT(*) FROM notes n WHERE n.folder_id = f.id) AS note_count
                FROM folders f
                WHERE f.id = ? AND f.user_id = ?
                """,
                (folder_id, user_id),
            ).fetchone()
            return Folder(**dict(row)) if row else None

    def update_folder(
        self, user_id: str, folder_id: str, changes: dict[str, Any]
    ) -> Folder | None:
        """Apply changes to a folder owned by user_id."""
        unknown = set(changes) - FOLDER_UPDATE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown folder fields: {sorted(unknown)}")

        if changes:
            assignments = ", ".join(f"{column} = ?" for column in changes)
            with self.get_conn() as conn:
                conn.execute(
                    f"UPDATE folders SET {assignments} WHERE id = ? AND user_id = ?",
                    (*changes.values(), folder_id, user_id),
                )
                conn.commit()

        return self.get_folder(user_id, folder_id)

    def delete_folder(self, user_id: str, folder_id: str) -> bool:
        """Delete a folder; its notes and subfolders go with it."""
        with self.get_conn() as conn:
            cursor = conn.execute(
                "DELETE FROM folders WHERE id = ? AND user_id = ?", (folder_id, user_id)
            )
            conn.commit()
            return cursor.rowcount > 0

    # Notes

    def create_note(
        self,
        user_id: str,
        folder_id: str,
        original_text: str,
        *,
        cleaned_memo: str | None = None,
        title: str | None = None,
        summary: str | None = None,
        tags: Sequence[str] = (),
        action_required: bool = False,
        location_relevant: bool = False,
        latitude: float | None = None,
        longitude: float | None = None,
        place_name: str | None = None,
        audio_url: str | None = None,
        image_urls: Sequence[str] = (),
        calendar_event: CalendarEvent | None = None,
    ) -> Note:
        """Insert a note and, if given, its calendar event."""
        note_id = _new_id()
        with self.get_conn() as conn:
            conn.execute(
                """
                INSERT INTO notes (
                    id, user_id, folder_id, original_text, cleaned_memo, title,
                    summary, tags, action_required, location_relevant, latitude,
                    longitude, place_name, audio_url, image_urls, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    note_id,
                    user_id,
                    folder_id,
                    original_text,
                    cleaned_memo,
                    title,
                    summary,
                    json.dumps(list(tags)),
                    action_required,
                    location_relevant,
                    latitude,
                    longitude,
                    place_name,
                    audio_url,
                    json.dumps(list(image_urls)),
                    self._now(),
                ),
            )

            if calendar_event is not None:
                conn.execute(
                    """
                    INSERT INTO calendar_events (
                        note_id, title, date_text, time_text, duration,
                        location, notes, is_all_day
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        note_id,
                        calendar_event.title,
                        calendar_event.date_text,
                        calendar_event.time_text,
                        calendar_event.duration,
                        calendar_event.location,
                        calendar_event.notes,
                        calendar_event.is_all_day,
                    ),
                )

            conn.commit()

        note = self.get_note(user_id, note_id)
        assert note is not None
        return note

    def get_note(self, user_id: str, note_id: str) -> Note | None:
        notes = self._query_notes("n.id = ? AND n.user_id = ?", [note_id, user_id])
        return notes[0] if notes else None

    def list_notes(self, user_id: str, folder_id: str | None = None) -> list[Note]:
        """List a user's notes newest first, optionally within one folder."""
        where = "n.user_id = ?"
        params: list[Any] = [user_id]
        if folder_id:
            where += " AND n.folder_id = ?"
            params.append(folder_id)
        return self._query_notes(where, params)

    def delete_note(self, user_id: str, note_id: str) -> bool:
        with self.get_conn() as conn:
            cursor = conn.execute(
                "DELETE FROM notes WHERE id = ? AND user_id = ?", (note_id, user_id)
            )
            conn.commit()
            return cursor.rowcount > 0

    def search_notes(
        self,
        user_id: str,
        keywords: Sequence[str],
        tags: Sequence[str] = (),
        fields: Sequence[str] = NOTE_SEARCH_FIELDS,
        folder_id: str | None = None,
        limit: int | None = None,
    ) -> list[Note]:
        """Find notes where any keyword appears in any field, or any tag matches.

        Keyword matching is a case-insensitive substring test; tags must match
        exactly.
        """
        unknown = set(fields) - set(NOTE_SEARCH_FIELDS)
        if unknown:
            raise ValueError(f"Unknown search fields: {sorted(unknown)}")

        clauses = []
        params: list[Any] = [user_id]
        for keyword in keywords:
            pattern = f"%{_escape_like(keyword.lower())}%"
            for field in fields:
                clauses.append(f"unicode_lower(coalesce(n.{field}, '')) LIKE ? ESCAPE '\\'")
                params.append(pattern)
        for tag in tags:
            clauses.append("EXISTS (SELECT 1 FROM json_each(n.tags) WHERE value = ?)")
            params.append(tag)

        if not clauses:
            return []

        where = f"n.user_id = ? AND ({' OR '.join(clauses)})"
        if folder_id:
            where += " AND n.folder_id = ?"
            params.append(folder_id)

        return self._query_notes(where, params, limit=limit)

    def _query_notes(
        self, where: str, params: Sequence[Any], limit: int | None = None
    ) -> list[Note]:
        query = f"""
            SELECT n.*, f.name AS folder_name
            FROM notes n
            JOIN folders f ON f.id = n.folder_id
            WHERE {where}
            ORDER BY n.created_at DESC, n.rowid DESC
        """
        if limit is not None:
            query += " LIMIT ?"
            params = [*params, limit]

        with self.get_conn() as conn:
            rows = conn.execute(query, params).fetchall()
            if not rows:
                return []

            note_ids = [row["id"] for row in rows]
            placeholders = ",".join(["?"] * len(note_ids))
            event_rows = conn.execute(
                f"SELECT * FROM calendar_events WHERE note_id IN ({placeholders})",
                note_ids,
            ).fetchall()

        events = {}
        for event_row in event_rows:
            data = dict(event_row)
            note_id = data.pop("note_id")
            events[note_id] = CalendarEvent(**data)

        notes = []
        for row in rows:
            data = dict(row)
            data["tags"] = json.loads(data["tags"] or "[]")
            data["image_urls"] = json.loads(data["image_urls"] or "[]")
            data["calendar_event"] = events.get(data["id"])
            notes.append(Note(**data))
        return notes

    # Tracker items

    def create_tracker_item(
        self,
        user_id: str,
        item_type: TrackerType,
        title: str,
        title_normalized: str,
        *,
        status: TrackerStatus = TrackerStatus.PLANNED,
        creator: str | None = None,
        rating: float | None = None,
        notes: str | None = None,
        tags: Sequence[str] = (),
        source: TrackerSource = TrackerSource.MANUAL,
        is_recommendation: bool = False,
        source_note_id: str | None = None,
        started_at: Instant | None = None,
        finished_at: Instant | None = None,
    ) -> TrackerItem:
        """Insert a tracker item.

        Raises sqlite3.IntegrityError if the user already has an item with the
        same type and normalized title.
        """
        item = TrackerItem(
            id=_new_id(),
            user_id=user_id,
            type=item_type,
            status=status,
            title=title,
            title_normalized=title_normalized,
            creator=creator,
            rating=rating,
            notes=notes,
            tags=list(tags),
            source=source,
            is_recommendation=is_recommendation,
            source_note_id=source_note_id,
            started_at=started_at,
            finished_at=finished_at,
            created_at=self._now(),
        )
        with self.get_conn() as conn:
            conn.execute(
                """
                INSERT INTO tracker_items (
                    id, user_id, type, status, title, title_normalized, creator,
                    rating, notes, tags, source, is_recommendation, source_note_id,
                    started_at, finished_at, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    item.id,
                    item.user_id,
                    item.type.value,
                    item.status.value,
                    item.title,
                    item.title_normalized,
                    item.creator,
                    item.rating,
                    item.notes,
                    json.dumps(item.tags),
                    item.source.value,
                    item.is_recommendation,
                    item.source_note_id,
                    item.started_at,
                    item.finished_at,
                    item.created_at,
                ),
            )
            conn.commit()
        return item

    def get_tracker_item(self, user_id: str, item_id: str) -> TrackerItem | None:
        with self.get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM tracker_items WHERE id = ? AND user_id = ?",
                (item_id, user_id),
            ).fetchone()
            return self._row_to_tracker_item(row) if row else None

    def find_tracker_item(
        self, user_id: str, item_type: TrackerType, title_normalized: str
    ) -> TrackerItem | None:
        """Look up a tracker item by its uniqueness key."""
        with self.get_conn() as conn:
            row = conn.execute(
                """
                SELECT * FROM tracker_items
                WHERE user_id = ? AND type = ? AND title_normalized = ?
                """,
                (user_id, TrackerType(item_type).value, title_normalized),
            ).fetchone()
            return self._row_to_tracker_item(row) if row else None

    def list_tracker_items(
        self,
        user_id: str,
        item_type: TrackerType | None = None,
        status: TrackerStatus | None = None,
        year: int | None = None,
        recommendations: bool | None = None,
    ) -> list[TrackerItem]:
        """List tracker items, unfinished first, then most recently finished.

        A year filter matches items finished in that year, or unfinished items
        created in that year.
        """
        where = ["user_id = ?"]
        params: list[Any] = [user_id]

        if item_type is not None:
            where.append("type = ?")
            params.append(TrackerType(item_type).value)
        if status is not None:
            where.append("status = ?")
            params.append(TrackerStatus(status).value)
        if recommendations is not None:
            where.append("is_recommendation = ?")
            params.append(recommendations)
        if year is not None:
            start = Instant.from_utc(year, 1, 1)
            end = Instant.from_utc(year + 1, 1, 1)
            where.append(
                "((finished_at >= ? AND finished_at < ?)"
                " OR (finished_at IS NULL AND created_at >= ? AND created_at < ?))"
            )
            params.extend([start, end, start, end])

        with self.get_conn() as conn:
            cursor = conn.execute(
                f"""
                SELECT * FROM tracker_items
                WHERE {" AND ".join(where)}
                ORDER BY (finished_at IS NULL) DESC, finished_at DESC, created_at DESC, rowid DESC
                """,
                params,
            )
            return [self._row_to_tracker_item(row) for row in cursor.fetchall()]

    def update_tracker_item(
        self, user_id: str, item_id: str, changes: dict[str, Any]
    ) -> TrackerItem | None:
        """Apply changes to a tracker item owned by user_id."""
        unknown = set(changes) - TRACKER_UPDATE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown tracker item fields: {sorted(unknown)}")

        if changes:
            values = []
            for column, value in changes.items():
                if column == "tags":
                    value = json.dumps(list(value))
                elif column in ("type", "status") and value is not None:
                    value = str(value)
                values.append(value)

            assignments = ", ".join(f"{column} = ?" for column in changes)
            with self.get_conn() as conn:
                conn.execute(
                    f"UPDATE tracker_items SET {assignments} WHERE id = ? AND user_id = ?",
                    (*values, item_id, user_id),
                )
                conn.commit()

        return self.get_tracker_item(user_id, item_id)

    def delete_tracker_item(self, user_id: str, item_id: str) -> bool:
        with self.get_conn() as conn:
            cursor = conn.execute(
                "DELETE FROM tracker_items WHERE id = ? AND user_id = ?",
                (item_id, user_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def _row_to_tracker_item(self, row: sqlite3.Row) -> TrackerItem:
        data = dict(row)
        data["tags"] = json.loads(data["tags"] or "[]")
        data["is_recommendation"] = bool(data["is_recommendation"])
        return TrackerItem(**data)

    # Settings

    def get_settings(self, user_id: str) -> UserSettings | None:
        with self.get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM user_settings WHERE user_id = ?", (user_id,)
            ).fetchone()
            return UserSettings(**dict(row)) if row else None

    def upsert_settings(
        self, user_id: str, custom_llm_instructions: str | None
    ) -> UserSettings:
        with self.get_conn() as conn:
            conn.execute(
                """
                INSERT INTO user_settings (user_id, custom_llm_instructions)
                VALUES (?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    custom_llm_instructions = excluded.custom_llm_instructions
                """,
                (user_id, custom_llm_instructions),
            )
            conn.commit()
        return UserSettings(
            user_id=user_id, custom_llm_instructions=custom_llm_instructions
        )

    # Password reset tokens

    def replace_reset_token(
        self, user_id: str, token_hash: str, expires_at: Instant
    ) -> PasswordResetToken:
        """Store a reset token, dropping any earlier tokens for the user."""
        record = PasswordResetToken(
            token_hash=token_hash,
            user_id=user_id,
            expires_at=expires_at,
            created_at=self._now(),
        )
        with self.get_conn() as conn:
            conn.execute(
                "DELETE FROM password_reset_tokens WHERE user_id = ?", (user_id,)
            )
            conn.execute(
                """
                INSERT INTO password_reset_tokens (token_hash, user_id, expires_at, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (record.token_hash, record.user_id, record.expires_at, record.created_at),
            )
            conn.commit()
        return record

    def get_reset_token(self, token_hash: str) -> PasswordResetToken | None:
        with self.get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM password_reset_tokens WHERE token_hash = ?",
                (token_hash,),
            ).fetchone()
            return PasswordResetToken(**dict(row)) if row else None

    def delete_reset_token(self, token_hash: str) -> None:
        with self.get_conn() as conn:
            conn.execute(
                "DELETE FROM password_reset_tokens WHERE token_hash = ?", (token_hash,)
            )
            conn.commit()
