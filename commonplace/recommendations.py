"""Recommendation candidate extraction from free-text notes.

Scans a note for phrases like "need to watch Dune" or 'read "Sapiens"' and
turns them into provisional tracker items. This is a heuristic pattern
matcher, not a parser: over-captured clause material is trimmed with a small
stopword list and obvious non-titles are dropped.
"""

import re
from dataclasses import dataclass
from enum import StrEnum


class TrackerType(StrEnum):
    BOOK = "BOOK"
    MOVIE = "MOVIE"
    MUSIC = "MUSIC"


@dataclass(frozen=True)
class RecommendationCandidate:
    """A tracker item suggestion inferred from note text."""

    type: TrackerType
    title: str
    reason: str  # "quoted-intent" | "intent"


@dataclass(frozen=True)
class IntentPattern:
    type: TrackerType
    regex: re.Pattern[str]


_INTENT_PREFIX = r"\b(?:need|should|want|plan|remember|gotta|have to|must)\s+to\s+"
_FRAGMENT = r"([^.\n!?;,]+)"

INTENT_PATTERNS: tuple[IntentPattern, ...] = (
    IntentPattern(
        TrackerType.MOVIE,
        re.compile(_INTENT_PREFIX + r"(?:watch|see)\s+" + _FRAGMENT, re.IGNORECASE),
    ),
    IntentPattern(
        TrackerType.BOOK,
        re.compile(_INTENT_PREFIX + r"read\s+" + _FRAGMENT, re.IGNORECASE),
    ),
    IntentPattern(
        TrackerType.MUSIC,
        re.compile(_INTENT_PREFIX + r"listen(?:\s+to)?\s+" + _FRAGMENT, re.IGNORECASE),
    ),
    IntentPattern(
        TrackerType.MOVIE,
        re.compile(r"\b(?:watch|see)\s+" + _FRAGMENT, re.IGNORECASE),
    ),
    IntentPattern(
        TrackerType.BOOK,
        re.compile(r"\bread\s+" + _FRAGMENT, re.IGNORECASE),
    ),
    IntentPattern(
        TrackerType.MUSIC,
        re.compile(r"\blisten(?:\s+to)?\s+" + _FRAGMENT, re.IGNORECASE),
    ),
    IntentPattern(
        TrackerType.MOVIE,
        re.compile(
            r"\b(?:recommend|recommended)\s+(?:watch|see)\s+" + _FRAGMENT,
            re.IGNORECASE,
        ),
    ),
    IntentPattern(
        TrackerType.BOOK,
        re.compile(r"\b(?:recommend|recommended)\s+read\s+" + _FRAGMENT, re.IGNORECASE),
    ),
    IntentPattern(
        TrackerType.MUSIC,
        re.compile(
            r"\b(?:recommend|recommended)\s+listen(?:\s+to)?\s+" + _FRAGMENT,
            re.IGNORECASE,
        ),
    ),
)

QUOTED_PATTERN = re.compile(
    r"\b(watch|see|read|listen)(?:\s+to)?\s+[\"']([^\"']+)[\"']", re.IGNORECASE
)

IGNORED_TITLES: frozenset[str] = frozenset(
    {
        "it",
        "this",
        "that",
        "something",
        "a movie",
        "a book",
        "a song",
        "a podcast",
        "a show",
    }
)

# Order matters: each word is checked against the already-truncated title
TRAILING_STOPWORDS: tuple[str, ...] = (
    "with",
    "for",
    "because",
    "so",
    "after",
    "before",
    "when",
    "while",
    "tonight",
    "today",
    "tomorrow",
    "later",
    "again",
)

# Word boundaries are ASCII only: an accented letter ends a stopword
_STOPWORD_PATTERNS = tuple(
    re.compile(rf"\s+{word}\b.*$", re.IGNORECASE | re.ASCII) for word in TRAILING_STOPWORDS
)


def normalize_title(title: str) -> str:
    """Normalize a title into its comparison key.

    Lowercases, replaces every run of characters outside ``[a-z0-9]`` with a
    single space and trims. "Dune: Part Two!" and "dune part two" share a key.

    Args:
        title: Display title

    Returns:
        Normalized title, or an empty string if it has no alphanumerics
    """
    return re.sub(r"[^a-z0-9]+", " ", title.lower()).strip()


def clean_title(raw: str) -> str:
    """Trim quoting, a trailing aside and trailing clauses from a raw capture.

    Args:
        raw: Fragment captured by one of the extraction patterns

    Returns:
        Cleaned title, possibly empty
    """
    title = re.sub(r"\s+", " ", raw).strip()
    title = re.sub(r"^[\s\"']+|[\s\"']+$", "", title)
    title = re.sub(r"\(([^)]+)\)$", "", title).strip()

    for pattern in _STOPWORD_PATTERNS:
        if pattern.search(title):
            title = pattern.sub("", title, count=1).strip()

    return title


def _verb_to_type(verb: str) -> TrackerType:
    if verb == "read":
        return TrackerType.BOOK
    if verb == "listen":
        return TrackerType.MUSIC
    return TrackerType.MOVIE


def _accept_title(raw_title: str) -> str | None:
    title = clean_title(raw_title)
    if not title:
        return None

    lowered = title.lower()
    if lowered.startswith("out "):
        return None
    if lowered in IGNORED_TITLES:
        return None

    return title


def extract_recommendation_candidates(text: str) -> list[RecommendationCandidate]:
    """Extract book, movie and music suggestions from note text.

    Quoted mentions are collected first, then the unquoted intent patterns
    in priority order. Candidates are deduplicated on type plus normalized
    title within this call; the first occurrence wins.

    Args:
        text: Raw note text

    Returns:
        Ordered list of candidates, empty if nothing matched
    """
    candidates: list[RecommendationCandidate] = []
    seen: set[str] = set()
    normalized_text = re.sub(r"\s+", " ", text)

    def add(type_: TrackerType, raw_title: str, reason: str) -> None:
        title = _accept_title(raw_title)
        if title is None:
            return

        key = f"{type_}:{normalize_title(title)}"
        if key in seen:
            return

        seen.add(key)
        candidates.append(RecommendationCandidate(type=type_, title=title, reason=reason))

    for match in QUOTED_PATTERN.finditer(normalized_text):
        add(_verb_to_type(match.group(1).lower()), match.group(2), "quoted-intent")

    for pattern in INTENT_PATTERNS:
        for match in pattern.regex.finditer(normalized_text):
            add(pattern.type, match.group(1), "intent")

    return candidates
