"""Command-line interface for commonplace."""

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

from .accounts import RESET_REQUESTED_MESSAGE, register_user, request_password_reset, reset_password
from .capture import NoteCapture
from .config import settings
from .csv_io import export_notes_csv, import_tracker_csv
from .database import Database
from .library import LibraryService, parse_instant
from .llm import LLMClient, TranscriptionError
from .models import FolderType, User, to_jsonable
from .recommendations import extract_recommendation_candidates
from .search import NoteAsker, search_notes

logger = logging.getLogger(__name__)


class App:
    """Shared resources for one CLI invocation."""

    def __init__(self, db: Database, llm: LLMClient, email: str | None):
        self.db = db
        self.llm = llm
        self.email = email

    def current_user(self) -> User:
        if not self.email:
            raise ValueError("--email is required for this command")
        user = self.db.find_user_by_email(self.email)
        if user is None:
            raise ValueError(f"No account for {self.email}")
        return user


def _print(data) -> None:
    print(json.dumps(to_jsonable(data), indent=2, ensure_ascii=False))


def _public_user(user: User) -> dict:
    return {"id": user.id, "email": user.email, "name": user.name}


def cmd_register(app: App, args: argparse.Namespace) -> None:
    user = register_user(app.db, args.email_address, args.password, name=args.name)
    _print(_public_user(user))


def cmd_folders(app: App, args: argparse.Namespace) -> None:
    user = app.current_user()

    if args.action == "list":
        _print(app.db.list_folders(user.id))
    elif args.action == "add":
        if not args.name:
            raise ValueError("Folder name is required")
        if len(args.name) > 100:
            raise ValueError("Folder name exceeds maximum length (100 characters)")
        _print(
            app.db.create_folder(
                user.id,
                args.name,
                FolderType(args.type),
                instructions=args.instructions,
                parent_id=args.parent,
            )
        )
    elif args.action == "update":
        changes = {
            key: value
            for key, value in (
                ("name", args.name),
                ("instructions", args.instructions),
                ("parent_id", args.parent),
            )
            if value is not None
        }
        folder = app.db.update_folder(user.id, args.folder_id, changes)
        if folder is None:
            raise ValueError("Folder not found")
        _print(folder)
    elif args.action == "rm":
        if not app.db.delete_folder(user.id, args.folder_id):
            raise ValueError("Folder not found")
        _print({"ok": True})


def cmd_capture(app: App, args: argparse.Namespace) -> None:
    user = app.current_user()
    audio = Path(args.audio).read_bytes() if args.audio else None
    result = NoteCapture(app.db, app.llm).capture(
        user.id,
        text=args.text,
        audio=audio,
        audio_filename=Path(args.audio).name if args.audio else "audio.webm",
        folder_id=args.folder,
    )
    _print(
        {
            "note": result.note,
            "folder_name": result.folder_name,
            "recommendations": asdict(result.recommendations),
        }
    )


def cmd_suggest_folder(app: App, args: argparse.Namespace) -> None:
    user = app.current_user()
    _print({"folder": NoteCapture(app.db, app.llm).suggest_folder(user.id, args.text)})


def cmd_extract(app: App, args: argparse.Namespace) -> None:
    _print([asdict(c) for c in extract_recommendation_candidates(args.text)])


def cmd_notes(app: App, args: argparse.Namespace) -> None:
    user = app.current_user()
    if args.delete:
        if not app.db.delete_note(user.id, args.delete):
            raise ValueError("Note not found")
        _print({"ok": True})
        return
    _print(app.db.list_notes(user.id, folder_id=args.folder))


def cmd_search(app: App, args: argparse.Namespace) -> None:
    user = app.current_user()
    _print(search_notes(app.db, user.id, args.query))


def cmd_ask(app: App, args: argparse.Namespace) -> None:
    user = app.current_user()
    result = NoteAsker(app.db, app.llm).ask(user.id, args.query, folder_id=args.folder)
    _print(
        {
            "answer": result.answer,
            "notes": result.notes,
            "keywords": result.keywords,
            "tags": result.tags,
        }
    )


def cmd_library(app: App, args: argparse.Namespace) -> None:
    user = app.current_user()
    library = LibraryService(app.db, app.llm)

    if args.action == "list":
        _print(
            library.list_items(
                user.id,
                item_type=args.type,
                status=args.status,
                year=args.year,
                recommendations=args.recommendations,
            )
        )
    elif args.action == "add":
        item, existing = library.add_item(
            user.id,
            args.title,
            args.type,
            creator=args.creator,
            rating=args.rating,
            notes=args.notes,
            tags=args.tag,
            is_recommendation=bool(args.recommendation),
            started_at=parse_instant(args.started) if args.started else None,
            finished_at=parse_instant(args.finished) if args.finished else None,
        )
        _print({"item": item, "existing": existing})
    elif args.action == "update":
        changes = {
            "title": args.title,
            "type": args.type,
            "status": args.status,
            "creator": args.creator,
            "rating": args.rating,
            "notes": args.notes,
            "tags": args.tag,
            "is_recommendation": args.recommendation,
            "started_at": parse_instant(args.started) if args.started else None,
            "finished_at": parse_instant(args.finished) if args.finished else None,
        }
        item = library.update_item(user.id, args.item_id, changes)
        if item is None:
            raise ValueError("Not found")
        _print({"item": item})
    elif args.action == "rm":
        if not library.delete_item(user.id, args.item_id):
            raise ValueError("Not found")
        _print({"ok": True})
    elif args.action == "import":
        csv_text = Path(args.file).read_text(encoding="utf-8")
        result = import_tracker_csv(app.db, user.id, csv_text, args.type, args.mode)
        _print(asdict(result))


def cmd_export(app: App, args: argparse.Namespace) -> None:
    user = app.current_user()
    filename, csv_text = export_notes_csv(app.db, user.id, folder_id=args.folder)
    output = Path(args.output) if args.output else Path(filename)
    output.write_text(csv_text, encoding="utf-8")
    _print({"path": str(output)})


def cmd_settings(app: App, args: argparse.Namespace) -> None:
    user = app.current_user()
    if args.instructions is not None:
        _print(app.db.upsert_settings(user.id, args.instructions or None))
        return
    current = app.db.get_settings(user.id)
    _print(current or {"custom_llm_instructions": None})


def cmd_forgot_password(app: App, args: argparse.Namespace) -> None:
    request_password_reset(app.db, args.email_address)
    _print({"ok": True, "message": RESET_REQUESTED_MESSAGE})


def cmd_reset_password(app: App, args: argparse.Namespace) -> None:
    reset_password(app.db, args.token, args.password)
    _print({"ok": True})


def _library_item_options(parser: argparse.ArgumentParser, require_type: bool) -> None:
    parser.add_argument("--type", required=require_type, help="BOOK, MOVIE or MUSIC")
    parser.add_argument("--creator", help="Author, director or artist")
    parser.add_argument("--rating", help="Numeric rating")
    parser.add_argument("--notes", help="Free-form notes")
    parser.add_argument("--tag", action="append", help="Tag (repeatable)")
    parser.add_argument(
        "--recommendation",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Mark as a recommendation still to get to",
    )
    parser.add_argument("--started", help="Start date (YYYY-MM-DD or ISO timestamp)")
    parser.add_argument("--finished", help="Finish date (YYYY-MM-DD or ISO timestamp)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="commonplace", description="Capture, organize and query personal notes"
    )
    parser.add_argument(
        "--db-path",
        type=str,
        default=settings.db_path,
        help=f"Path to SQLite database (default: {settings.db_path})",
    )
    parser.add_argument("--email", help="Email of the account to act as")
    parser.add_argument(
        "--log-level",
        type=str,
        default=settings.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help=f"Logging level (default: {settings.log_level})",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("register", help="Create an account")
    p.add_argument("email_address")
    p.add_argument("password")
    p.add_argument("--name")
    p.set_defaults(handler=cmd_register)

    p = sub.add_parser("folders", help="Manage folders")
    p.add_argument("action", choices=["list", "add", "update", "rm"])
    p.add_argument("folder_id", nargs="?", help="Folder id for update/rm")
    p.add_argument("--name")
    p.add_argument("--type", default="FRAGMENTS", choices=[t.value for t in FolderType])
    p.add_argument("--instructions")
    p.add_argument("--parent")
    p.set_defaults(handler=cmd_folders)

    p = sub.add_parser("capture", help="Capture a typed or recorded note")
    p.add_argument("text", nargs="?")
    p.add_argument("--audio", help="Audio file to transcribe")
    p.add_argument("--folder", help="File into this folder instead of letting the LLM choose")
    p.set_defaults(handler=cmd_capture)

    p = sub.add_parser("suggest-folder", help="Suggest a folder for some text")
    p.add_argument("text")
    p.set_defaults(handler=cmd_suggest_folder)

    p = sub.add_parser("extract", help="Show recommendation candidates found in text")
    p.add_argument("text")
    p.set_defaults(handler=cmd_extract)

    p = sub.add_parser("notes", help="List notes")
    p.add_argument("--folder")
    p.add_argument("--delete", metavar="NOTE_ID", help="Delete a note instead")
    p.set_defaults(handler=cmd_notes)

    p = sub.add_parser("search", help="Keyword search over notes")
    p.add_argument("query")
    p.set_defaults(handler=cmd_search)

    p = sub.add_parser("ask", help="Ask a question answered from your notes")
    p.add_argument("query")
    p.add_argument("--folder")
    p.set_defaults(handler=cmd_ask)

    library = sub.add_parser("library", help="Book, movie and music tracker")
    library_sub = library.add_subparsers(dest="action", required=True)

    p = library_sub.add_parser("list")
    p.add_argument("--type")
    p.add_argument("--status")
    p.add_argument("--year", type=int)
    p.add_argument(
        "--recommendations", action=argparse.BooleanOptionalAction, default=None
    )
    p.set_defaults(handler=cmd_library)

    p = library_sub.add_parser("add")
    p.add_argument("title")
    _library_item_options(p, require_type=True)
    p.set_defaults(handler=cmd_library)

    p = library_sub.add_parser("update")
    p.add_argument("item_id")
    p.add_argument("--title")
    p.add_argument("--status", help="PLANNED, IN_PROGRESS or COMPLETED")
    _library_item_options(p, require_type=False)
    p.set_defaults(handler=cmd_library)

    p = library_sub.add_parser("rm")
    p.add_argument("item_id")
    p.set_defaults(handler=cmd_library)

    p = library_sub.add_parser("import")
    p.add_argument("file")
    p.add_argument("--type", required=True)
    p.add_argument("--mode", required=True, choices=["completed", "recommended"])
    p.set_defaults(handler=cmd_library)

    p = sub.add_parser("export", help="Export notes as CSV")
    p.add_argument("--folder")
    p.add_argument("--output", "-o")
    p.set_defaults(handler=cmd_export)

    p = sub.add_parser("settings", help="Show or set custom LLM instructions")
    p.add_argument("--instructions")
    p.set_defaults(handler=cmd_settings)

    p = sub.add_parser("forgot-password", help="Email a password reset link")
    p.add_argument("email_address")
    p.set_defaults(handler=cmd_forgot_password)

    p = sub.add_parser("reset-password", help="Set a new password with a reset token")
    p.add_argument("token")
    p.add_argument("password")
    p.set_defaults(handler=cmd_reset_password)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    db = Database(args.db_path)
    llm = LLMClient()
    try:
        args.handler(App(db, llm, args.email), args)
    except (ValueError, TranscriptionError, OSError) as e:
        logger.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)
    finally:
        llm.close()


if __name__ == "__main__":
    main()
