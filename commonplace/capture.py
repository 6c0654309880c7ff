"""Note capture: transcribe, analyze, file into a folder, collect recommendations."""

import logging
from dataclasses import dataclass

from .analysis import analyze_and_categorize, analyze_note, categorize_note
from .config import settings
from .database import Database
from .ingestion import IngestionResult, RecommendationIngestor
from .llm import LLMClient
from .models import Folder, Note

logger = logging.getLogger(__name__)


@dataclass
class CaptureResult:
    note: Note
    folder_name: str
    recommendations: IngestionResult


def build_instructions(global_instructions: str | None, folders: list[Folder]) -> str:
    """Combine the user's global instructions with per-folder instructions."""
    blocks = []
    if global_instructions:
        blocks.append(global_instructions)

    with_instructions = [folder for folder in folders if folder.instructions]
    if with_instructions:
        lines = [f"- {folder.name}: {folder.instructions}" for folder in with_instructions]
        blocks.append("FOLDER-SPECIFIC INSTRUCTIONS:\n" + "\n".join(lines))

    return "\n\n".join(blocks)


class NoteCapture:
    """Coordinates the steps that turn raw input into a stored note."""

    def __init__(self, db: Database, llm: LLMClient):
        self.db = db
        self.llm = llm
        self.ingestor = RecommendationIngestor(db)

    def capture(
        self,
        user_id: str,
        text: str | None = None,
        audio: bytes | None = None,
        audio_filename: str = "audio.webm",
        folder_id: str | None = None,
    ) -> CaptureResult:
        """Capture a typed or recorded note.

        Args:
            user_id: Owner of the note
            text: Typed note text
            audio: Recorded memo, transcribed when given
            audio_filename: Filename reported to the transcription API
            folder_id: Folder to file into; chosen by the LLM when omitted

        Returns:
            The stored note, its folder name and the recommendation summary

        Raises:
            ValueError: on missing or oversized text, or when the user has no
                usable folder
            TranscriptionError: if the recording could not be transcribed
        """
        if audio is not None:
            logger.info(f"Transcribing {len(audio)} bytes of audio")
            text = self.llm.transcribe(audio, audio_filename)

        if not text or not text.strip():
            raise ValueError("No text provided")
        if len(text) > settings.max_note_length:
            raise ValueError(
                f"Text exceeds maximum length ({settings.max_note_length:,} characters)"
            )

        folders = self.db.list_folders(user_id)
        if not folders:
            raise ValueError("No folders available. Please create a folder first.")

        user_settings = self.db.get_settings(user_id)
        instructions = build_instructions(
            user_settings.custom_llm_instructions if user_settings else None, folders
        )

        if folder_id is not None:
            folder = next((f for f in folders if f.id == folder_id), None)
            if folder is None:
                raise ValueError("Folder not found")
            analysis = analyze_note(self.llm, text, folder.name, instructions or None)
        else:
            folder_name, analysis = analyze_and_categorize(
                self.llm, text, [f.name for f in folders], instructions or None
            )
            folder = next((f for f in folders if f.name == folder_name), None)
            if folder is None:
                raise ValueError(f'Folder "{folder_name}" not found')

        note = self.db.create_note(
            user_id,
            folder.id,
            text,
            cleaned_memo=analysis.cleaned_memo,
            title=analysis.title,
            summary=analysis.summary,
            tags=analysis.tags,
            action_required=analysis.action_required,
            location_relevant=analysis.location_relevant,
            calendar_event=analysis.calendar_event,
        )
        logger.info(f"Saved note {note.id} to folder '{folder.name}'")

        recommendations = self.ingestor.ingest(user_id, text, source_note_id=note.id)
        return CaptureResult(note=note, folder_name=folder.name, recommendations=recommendations)

    def suggest_folder(self, user_id: str, text: str) -> str:
        """Suggest which of the user's folders a note belongs in."""
        folders = self.db.list_folders(user_id)
        return categorize_note(self.llm, text, [f.name for f in folders])
