"""LLM note analysis: title, summary, cleanup, tags and folder choice."""

import logging

from pydantic import ValidationError

from .config import settings
from .llm import LLMClient
from .models import Analysis, CalendarEvent
from .tags import PRESET_TAGS, filter_preset_tags

logger = logging.getLogger(__name__)

OUTPUT_FIELDS = """Return JSON with:
- "folder": Exact folder name from the list that best fits (if none fit, use the first one)
- "title": 3-6 word factual title, no fluff, no "Note about..."
- "summary": ONE sentence. What is this note about and why does it matter? Be direct.
- "cleanedMemo": The note rewritten: fix grammar, cut filler words and repetition, keep every fact. Do NOT add context or pad length.
- "tags": Array of 1-3 tags chosen ONLY from: {PRESET_TAGS}
- "action_required": true if the note implies something needs to be done
- "location_relevant": true if the note is tied to a specific place
- "calendar_event": event object if a date/time is mentioned, else null"""

CALENDAR_RULES = """CALENDAR EVENT RULES:
- Only create if text mentions a date AND/OR time
- dateText: exact date phrase from the text (e.g. "next Friday", "January 15th")
- timeText: exact time phrase (e.g. "at noon", "4pm") or null if none
- duration: estimate in minutes (60 for appointments, 120 for longer events, null for all-day)
- isAllDay: true only for explicit all-day events
- location: venue if mentioned, else null
- notes: anything else relevant to the event, else null
Format: {"title":"...","dateText":"...","timeText":"...","duration":60,"location":null,"notes":null,"isAllDay":false}"""

TAG_RULES = """RULES:
- Tags must come ONLY from the preset list, never invent tags
- summary must be a single sentence, not a paragraph
- cleanedMemo should be shorter than or equal to the original, never longer"""

MERGED_PROMPT = f"""You analyze a note, pick the best folder for it, and extract structured data.

Available folders: {{FOLDERS}}

{OUTPUT_FIELDS}

{CALENDAR_RULES}

{TAG_RULES}

{{CUSTOM_INSTRUCTIONS}}"""

ANALYSIS_PROMPT = f"""You analyze a note that belongs to the "{{CATEGORY}}" folder and extract structured data.

{OUTPUT_FIELDS}

{CALENDAR_RULES}

{TAG_RULES}

{{CUSTOM_INSTRUCTIONS}}"""

CATEGORIZATION_PROMPT = """You are a folder categorization assistant.
Your only job is to quickly determine which folder a note belongs to.

Available folders: {FOLDERS}

Respond with ONLY the exact folder name that best matches the content.
If uncertain, use "other"."""


def build_prompt(template: str, variables: dict[str, str]) -> str:
    """Replace every ``{NAME}`` placeholder in template."""
    for key, value in variables.items():
        template = template.replace(f"{{{key}}}", value)
    return template


def custom_block(custom_instructions: str | None) -> str:
    if custom_instructions and custom_instructions.strip():
        return f"ADDITIONAL INSTRUCTIONS:\n{custom_instructions.strip()}"
    return ""


def fallback_analysis(text: str) -> Analysis:
    return Analysis(
        title="Untitled Note",
        summary=text[:120],
        cleaned_memo=text,
    )


def _parse_calendar_event(value: object) -> CalendarEvent | None:
    if not isinstance(value, dict):
        return None
    try:
        return CalendarEvent.model_validate(value)
    except ValidationError as e:
        logger.warning(f"Discarding malformed calendar event: {e}")
        return None


def _parse_analysis(parsed: dict, text: str) -> Analysis:
    return Analysis(
        title=parsed.get("title") or "Untitled Note",
        summary=parsed.get("summary") or text[:120],
        cleaned_memo=parsed.get("cleanedMemo") or text,
        tags=filter_preset_tags(parsed.get("tags")),
        action_required=bool(parsed.get("action_required")),
        location_relevant=bool(parsed.get("location_relevant")),
        calendar_event=_parse_calendar_event(parsed.get("calendar_event")),
    )


def analyze_and_categorize(
    llm: LLMClient,
    text: str,
    folder_names: list[str],
    custom_instructions: str | None = None,
) -> tuple[str, Analysis]:
    """Pick a folder for a note and analyze it in a single LLM call.

    Args:
        llm: LLM client
        text: Note text
        folder_names: Names of the user's folders, first one is the fallback
        custom_instructions: Extra user instructions appended to the prompt

    Returns:
        Tuple of (folder name from folder_names, analysis). Any LLM failure
        yields the first folder and a fallback analysis.
    """
    first_folder = folder_names[0] if folder_names else "other"

    prompt = build_prompt(
        MERGED_PROMPT,
        {
            "FOLDERS": ", ".join(folder_names),
            "PRESET_TAGS": ", ".join(PRESET_TAGS),
            "CUSTOM_INSTRUCTIONS": custom_block(custom_instructions),
        },
    )

    try:
        parsed = llm.chat_json(
            settings.analysis_model,
            prompt,
            text,
            temperature=settings.analysis_temperature,
        )
        requested = str(parsed.get("folder") or "").lower()
        folder = next(
            (name for name in folder_names if name.lower() == requested),
            first_folder,
        )
        return folder, _parse_analysis(parsed, text)
    except Exception as e:
        logger.error(f"analyze_and_categorize error: {e}")
        return first_folder, fallback_analysis(text)


def analyze_note(
    llm: LLMClient,
    text: str,
    category: str,
    custom_instructions: str | None = None,
) -> Analysis:
    """Analyze a note whose folder is already known."""
    prompt = build_prompt(
        ANALYSIS_PROMPT,
        {
            "CATEGORY": category,
            "PRESET_TAGS": ", ".join(PRESET_TAGS),
            "CUSTOM_INSTRUCTIONS": custom_block(custom_instructions),
        },
    )

    try:
        parsed = llm.chat_json(
            settings.analysis_model,
            prompt,
            text,
            temperature=settings.analysis_temperature,
        )
        return _parse_analysis(parsed, text)
    except Exception as e:
        logger.error(f"analyze_note error: {e}")
        return fallback_analysis(text)


def categorize_note(llm: LLMClient, text: str, folder_names: list[str]) -> str:
    """Choose a folder name for a note, or "other" when unsure."""
    if not folder_names:
        return "other"
    if len(folder_names) == 1:
        return folder_names[0]

    try:
        result = llm.chat_text(
            settings.categorization_model,
            build_prompt(CATEGORIZATION_PROMPT, {"FOLDERS": ", ".join(folder_names)}),
            f"Categorize this note: {text}",
            temperature=settings.categorization_temperature,
            max_tokens=20,
        ).lower()
    except Exception as e:
        logger.error(f"Categorization error: {e}")
        return "other"

    return next((name for name in folder_names if name.lower() == result), "other")
