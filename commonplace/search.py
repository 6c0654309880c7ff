"""Keyword search and LLM-assisted question answering over notes."""

import logging
from dataclasses import dataclass, field

from .config import settings
from .database import Database
from .llm import LLMClient
from .models import Note
from .tags import PRESET_TAGS

logger = logging.getLogger(__name__)

ASK_RESULT_LIMIT = 20
ANSWER_CONTEXT_NOTES = 8
SNIPPET_LENGTH = 280

KEYWORD_PROMPT = f"""Return JSON with:
- "keywords": 3-6 short keywords or short phrases
- "tags": 0-3 tags from this list if relevant: {", ".join(PRESET_TAGS)}

Keep keywords concise and literal."""

ANSWER_PROMPT = """You answer questions using the provided notes.
If the notes do not contain enough information, say so briefly.
Return JSON with:
- "answer": 2-4 sentences, clear and direct."""

FOUND_NOTES_ANSWER = "Here are the most relevant notes I found."
NO_NOTES_ANSWER = "No matching notes found for that question."


@dataclass
class AskResult:
    answer: str
    notes: list[Note] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)


def search_notes(db: Database, user_id: str, query: str) -> list[Note]:
    """Find notes whose title, summary or text contains query, or tagged with it."""
    query = query.strip()
    if not query:
        return []

    return db.search_notes(
        user_id,
        [query],
        tags=[query],
        fields=("title", "summary", "original_text"),
    )


def normalize_list(items: object) -> list[str]:
    if not isinstance(items, list):
        return []
    return [item.strip() for item in items if isinstance(item, str) and item.strip()]


def build_snippet(text: str | None, max_length: int = SNIPPET_LENGTH) -> str:
    if not text:
        return ""
    return f"{text[:max_length]}..." if len(text) > max_length else text


class NoteAsker:
    """Answers a question from the user's own notes."""

    def __init__(self, db: Database, llm: LLMClient):
        self.db = db
        self.llm = llm

    def ask(self, user_id: str, query: str, folder_id: str | None = None) -> AskResult:
        """Search notes relevant to query and summarize an answer.

        LLM failures degrade gracefully: keyword extraction falls back to the
        raw query and a failed summary falls back to a canned answer.
        """
        query = query.strip()
        if not query:
            raise ValueError("Query is required")

        keywords = [query]
        tags: list[str] = []
        try:
            extracted = self.extract_keywords(query)
            extracted_keywords = normalize_list(extracted.get("keywords"))
            if extracted_keywords:
                keywords = extracted_keywords
            tags = [tag for tag in normalize_list(extracted.get("tags")) if tag in PRESET_TAGS]
        except Exception as e:
            logger.error(f"ask keyword extraction failed: {e}")

        notes = self.db.search_notes(
            user_id, keywords, tags=tags, folder_id=folder_id, limit=ASK_RESULT_LIMIT
        )

        answer = ""
        if notes:
            try:
                answer = self.summarize_answer(query, notes)
            except Exception as e:
                logger.error(f"ask answer summarize failed: {e}")

        if not answer:
            answer = FOUND_NOTES_ANSWER if notes else NO_NOTES_ANSWER

        return AskResult(answer=answer, notes=notes, keywords=keywords, tags=tags)

    def extract_keywords(self, query: str) -> dict:
        return self.llm.chat_json(
            settings.analysis_model,
            KEYWORD_PROMPT,
            query,
            temperature=settings.analysis_temperature,
        )

    def summarize_answer(self, query: str, notes: list[Note]) -> str:
        context = "\n\n".join(
            f"Note {i}\n"
            f"Title: {note.title or 'Untitled'}\n"
            f"Summary: {build_snippet(note.summary or note.cleaned_memo or note.original_text)}"
            for i, note in enumerate(notes[:ANSWER_CONTEXT_NOTES], start=1)
        )

        parsed = self.llm.chat_json(
            settings.analysis_model,
            ANSWER_PROMPT,
            f"Question: {query}\n\nNotes:\n{context}",
            temperature=settings.analysis_temperature,
        )
        answer = parsed.get("answer")
        return answer.strip() if isinstance(answer, str) else ""
