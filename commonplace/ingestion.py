"""Save recommendation candidates from a note into the user's library."""

import logging
from dataclasses import dataclass

from .database import Database
from .models import TrackerSource, TrackerStatus
from .recommendations import extract_recommendation_candidates, normalize_title

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    created: int = 0
    skipped: int = 0
    error: str | None = None


class RecommendationIngestor:
    """Turns recommendation candidates into planned tracker items."""

    def __init__(self, db: Database):
        self.db = db

    def ingest(
        self, user_id: str, text: str, source_note_id: str | None = None
    ) -> IngestionResult:
        """Extract candidates from text and store the ones the user lacks.

        Inserts are not wrapped in a transaction; items stored before a
        failure stay stored. Failures never propagate, they are reported in
        the result's error field.
        """
        result = IngestionResult()

        try:
            for candidate in extract_recommendation_candidates(text):
                title_normalized = normalize_title(candidate.title)
                if not title_normalized:
                    result.skipped += 1
                    continue

                existing = self.db.find_tracker_item(
                    user_id, candidate.type, title_normalized
                )
                if existing:
                    result.skipped += 1
                    continue

                self.db.create_tracker_item(
                    user_id,
                    candidate.type,
                    candidate.title,
                    title_normalized,
                    status=TrackerStatus.PLANNED,
                    source=TrackerSource.NOTE_AUTO,
                    is_recommendation=True,
                    source_note_id=source_note_id,
                )
                result.created += 1
                logger.info(
                    f"Added {candidate.type} recommendation '{candidate.title}' "
                    f"({candidate.reason})"
                )
        except Exception as e:
            logger.error(f"Recommendation extraction failed: {e}", exc_info=True)
            result.error = "Recommendations could not be saved."

        return result
