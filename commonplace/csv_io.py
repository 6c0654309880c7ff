"""CSV import of tracker items and CSV export of notes."""

import logging
from dataclasses import dataclass, field

import polars as pl

from .database import Database
from .library import MAX_TITLE_LENGTH, parse_rating, parse_type
from .models import TrackerSource, TrackerStatus
from .recommendations import normalize_title

logger = logging.getLogger(__name__)

# Flexible column name mapping
TITLE_ALIASES = frozenset({"title", "name"})
CREATOR_ALIASES = frozenset({"creator", "author", "director", "artist", "by", "writer"})
RATING_ALIASES = frozenset({"rating", "score", "stars"})
NOTES_ALIASES = frozenset({"notes", "note", "comments", "comment", "description"})

IMPORT_MODES = ("completed", "recommended")

EXPORT_HEADERS = [
    "Title",
    "Summary",
    "Cleaned Memo",
    "Original Text",
    "Tags",
    "Folder",
    "Created At",
]


@dataclass
class ImportResult:
    added: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class ColumnMap:
    title: int = 0
    creator: int = 1
    rating: int = 2
    notes: int = 3


def map_columns(headers: list[str]) -> ColumnMap | None:
    """Find columns by header name; None when the row has no title column."""
    found = {"title": -1, "creator": -1, "rating": -1, "notes": -1}
    for i, header in enumerate(headers):
        key = header.lower().strip()
        if key in TITLE_ALIASES:
            found["title"] = i
        elif key in CREATOR_ALIASES:
            found["creator"] = i
        elif key in RATING_ALIASES:
            found["rating"] = i
        elif key in NOTES_ALIASES:
            found["notes"] = i

    if found["title"] == -1:
        return None
    return ColumnMap(**found)


def max_field_count(csv_text: str) -> int:
    """Widest record in the text, counting only commas outside quotes."""
    widest = fields = 1
    in_quotes = False
    for char in csv_text:
        if char == '"':
            in_quotes = not in_quotes
        elif in_quotes:
            continue
        elif char == ",":
            fields += 1
        elif char == "\n":
            widest = max(widest, fields)
            fields = 1
    return max(widest, fields)


def read_csv_rows(csv_text: str) -> list[list[str]]:
    """Parse CSV text into rows of strings, dropping blank lines.

    Rows shorter than the widest one are padded with empty cells.
    """
    if not csv_text.strip():
        return []

    width = max_field_count(csv_text)
    frame = pl.read_csv(
        csv_text.encode("utf-8"),
        has_header=False,
        schema={f"column_{i + 1}": pl.String for i in range(width)},
        truncate_ragged_lines=True,
    )

    rows = []
    for values in frame.iter_rows():
        row = ["" if value is None else value for value in values]
        if any(cell.strip() for cell in row):
            rows.append(row)
    return rows


def _cell(row: list[str], index: int) -> str:
    if 0 <= index < len(row):
        return row[index].strip()
    return ""


def import_tracker_csv(
    db: Database, user_id: str, csv_text: str, item_type: str, mode: str
) -> ImportResult:
    """Import tracker items from CSV text.

    The first row is treated as a header when it names a title column;
    otherwise columns are taken to be Title, Creator, Rating, Notes.

    Args:
        db: Database
        user_id: Owner of the imported items
        csv_text: Raw CSV content
        item_type: BOOK, MOVIE or MUSIC
        mode: "completed" or "recommended"

    Returns:
        Counts of added and skipped rows plus per-row error messages
    """
    tracker_type = parse_type(item_type)
    if mode not in IMPORT_MODES:
        raise ValueError("Mode must be 'completed' or 'recommended'")

    try:
        rows = read_csv_rows(csv_text)
    except pl.exceptions.PolarsError as e:
        logger.error(f"CSV parse failed: {e}")
        raise ValueError("Failed to parse CSV file") from e

    if not rows:
        raise ValueError("CSV file is empty")

    columns = map_columns(rows[0])
    has_header = columns is not None
    if columns is None:
        columns = ColumnMap()
    data_rows = rows[1:] if has_header else rows

    is_recommendation = mode == "recommended"
    status = TrackerStatus.PLANNED if is_recommendation else TrackerStatus.COMPLETED
    finished_at = None if is_recommendation else db.now_func().round()

    result = ImportResult()
    for i, row in enumerate(data_rows):
        row_num = i + 2 if has_header else i + 1

        title = _cell(row, columns.title)
        if not title:
            result.errors.append(f"Row {row_num}: missing title, skipped")
            continue
        if len(title) > MAX_TITLE_LENGTH:
            result.errors.append(
                f"Row {row_num}: title too long (max {MAX_TITLE_LENGTH}), skipped"
            )
            continue

        title_normalized = normalize_title(title)
        if not title_normalized:
            result.errors.append(f"Row {row_num}: invalid title, skipped")
            continue

        if db.find_tracker_item(user_id, tracker_type, title_normalized):
            result.skipped += 1
            continue

        db.create_tracker_item(
            user_id,
            tracker_type,
            title,
            title_normalized,
            status=status,
            creator=_cell(row, columns.creator) or None,
            rating=parse_rating(_cell(row, columns.rating)),
            notes=_cell(row, columns.notes) or None,
            source=TrackerSource.IMPORT,
            is_recommendation=is_recommendation,
            finished_at=finished_at,
        )
        result.added += 1

    logger.info(
        f"Imported {result.added} {tracker_type} items "
        f"({result.skipped} duplicates, {len(result.errors)} errors)"
    )
    return result


def export_notes_csv(
    db: Database, user_id: str, folder_id: str | None = None
) -> tuple[str, str]:
    """Export a user's notes as CSV.

    Returns:
        Tuple of (suggested filename, CSV text)
    """
    notes = db.list_notes(user_id, folder_id=folder_id)

    columns: dict[str, list[str]] = {header: [] for header in EXPORT_HEADERS}
    for note in notes:
        columns["Title"].append(note.title or "")
        columns["Summary"].append(note.summary or "")
        columns["Cleaned Memo"].append(note.cleaned_memo or "")
        columns["Original Text"].append(note.original_text)
        columns["Tags"].append("; ".join(note.tags))
        columns["Folder"].append(note.folder_name or "")
        columns["Created At"].append(note.created_at.format_iso()[:10])

    frame = pl.DataFrame(columns, schema={header: pl.String for header in EXPORT_HEADERS})
    csv_text = frame.write_csv(quote_style="always")

    if folder_id:
        folder = db.get_folder(user_id, folder_id)
        folder_name = folder.name if folder else "folder"
    else:
        folder_name = "all"
    date = db.now_func().format_iso()[:10]
    filename = f"commonplace-{folder_name}-{date}.csv"

    logger.info(f"Exported {len(notes)} notes to {filename}")
    return filename, csv_text
