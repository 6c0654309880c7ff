import pytest
from whenever import Instant

from commonplace.library import LibraryService, parse_instant, parse_rating
from commonplace.models import TrackerSource, TrackerStatus
from commonplace.recommendations import TrackerType


@pytest.fixture
def library(temp_db):
    return LibraryService(temp_db)


class TestParsers:
    def test_parse_rating(self):
        assert parse_rating(4) == 4.0
        assert parse_rating(3.5) == 3.5
        assert parse_rating("4.5") == 4.5
        assert parse_rating(" 4/5 stars") == 4.0
        assert parse_rating("great") is None
        assert parse_rating("") is None
        assert parse_rating(None) is None
        assert parse_rating(True) is None
        assert parse_rating(float("nan")) is None

    def test_parse_instant(self):
        assert parse_instant("2024-03-05") == Instant.from_utc(2024, 3, 5)
        assert parse_instant("2024-03-05T10:30:00Z") == Instant.from_utc(2024, 3, 5, 10, 30)


class TestAddItem:
    def test_add_completed(self, library, user):
        item, existing = library.add_item(
            user.id, "  Dune ", "book", creator="Frank Herbert", rating="5"
        )

        assert existing is False
        assert item.title == "Dune"
        assert item.type == TrackerType.BOOK
        assert item.status == TrackerStatus.COMPLETED
        assert item.is_recommendation is False
        assert item.source == TrackerSource.MANUAL
        assert item.rating == 5.0

    def test_add_recommendation_is_planned(self, library, user):
        item, _ = library.add_item(
            user.id,
            "Heat",
            "MOVIE",
            is_recommendation=True,
            finished_at=Instant.from_utc(2024, 1, 1),
        )

        assert item.status == TrackerStatus.PLANNED
        assert item.is_recommendation is True
        assert item.finished_at is None

    def test_duplicate_returns_existing(self, library, user):
        first, _ = library.add_item(user.id, "Dune: Part Two", "MOVIE")
        second, existing = library.add_item(user.id, "dune part two", "MOVIE")

        assert existing is True
        assert second == first

    def test_validation(self, library, user):
        with pytest.raises(ValueError, match="Title is required"):
            library.add_item(user.id, "  ", "BOOK")
        with pytest.raises(ValueError, match="maximum length"):
            library.add_item(user.id, "x" * 501, "BOOK")
        with pytest.raises(ValueError, match="Invalid title"):
            library.add_item(user.id, "!!!", "BOOK")
        with pytest.raises(ValueError, match="Invalid type"):
            library.add_item(user.id, "Dune", "PODCAST")

    def test_creator_guessed(self, temp_db, llm, user, fake_openai):
        fake_openai.queue({"creator": " Denis Villeneuve "})

        item, _ = LibraryService(temp_db, llm).add_item(user.id, "Arrival", "MOVIE")

        assert item.creator == "Denis Villeneuve"
        assert "Title: Arrival" in fake_openai.request_json()["messages"][1]["content"]

    def test_creator_guess_failure_keeps_item(self, temp_db, llm, user, fake_openai):
        fake_openai.queue(500)

        item, _ = LibraryService(temp_db, llm).add_item(user.id, "Arrival", "MOVIE")

        assert item.creator is None
        assert temp_db.get_tracker_item(user.id, item.id) is not None

    def test_creator_given_skips_llm(self, temp_db, llm, user, fake_openai):
        LibraryService(temp_db, llm).add_item(user.id, "Arrival", "MOVIE", creator="Villeneuve")
        assert fake_openai.requests == []


class TestUpdateItem:
    def test_recommendation_forces_planned(self, library, user):
        item, _ = library.add_item(
            user.id, "Dune", "BOOK", finished_at=Instant.from_utc(2024, 1, 1)
        )

        updated = library.update_item(user.id, item.id, {"is_recommendation": True})

        assert updated.status == TrackerStatus.PLANNED
        assert updated.is_recommendation is True
        assert updated.finished_at is None

    def test_completing_clears_recommendation(self, library, user):
        item, _ = library.add_item(user.id, "Dune", "BOOK", is_recommendation=True)

        updated = library.update_item(user.id, item.id, {"status": "completed"})

        assert updated.status == TrackerStatus.COMPLETED
        assert updated.is_recommendation is False

    def test_clearing_recommendation_completes(self, library, user):
        item, _ = library.add_item(user.id, "Dune", "BOOK", is_recommendation=True)

        updated = library.update_item(user.id, item.id, {"is_recommendation": False})

        assert updated.status == TrackerStatus.COMPLETED

    def test_in_progress(self, library, user):
        item, _ = library.add_item(user.id, "Dune", "BOOK", is_recommendation=True)

        updated = library.update_item(
            user.id,
            item.id,
            {"status": "IN_PROGRESS", "started_at": Instant.from_utc(2025, 1, 1)},
        )

        assert updated.status == TrackerStatus.IN_PROGRESS
        assert updated.is_recommendation is True
        assert updated.started_at == Instant.from_utc(2025, 1, 1)

    def test_retitle_renormalizes(self, library, user):
        item, _ = library.add_item(user.id, "Dune", "BOOK")

        updated = library.update_item(user.id, item.id, {"title": "Dune Messiah!"})

        assert updated.title == "Dune Messiah!"
        assert updated.title_normalized == "dune messiah"

    def test_retitle_conflict(self, library, user):
        library.add_item(user.id, "Dune", "BOOK")
        other, _ = library.add_item(user.id, "Emma", "BOOK")

        with pytest.raises(ValueError, match="already exists"):
            library.update_item(user.id, other.id, {"title": "DUNE"})

    def test_ignores_unparsable_rating(self, library, user):
        item, _ = library.add_item(user.id, "Dune", "BOOK", rating=4)

        updated = library.update_item(user.id, item.id, {"rating": "n/a", "notes": " great "})

        assert updated.rating == 4.0
        assert updated.notes == "great"

    def test_invalid_values(self, library, user):
        item, _ = library.add_item(user.id, "Dune", "BOOK")

        with pytest.raises(ValueError, match="Invalid status"):
            library.update_item(user.id, item.id, {"status": "DROPPED"})
        with pytest.raises(ValueError, match="Invalid title"):
            library.update_item(user.id, item.id, {"title": "   "})

    def test_missing_item(self, library, user):
        assert library.update_item(user.id, "missing", {"notes": "x"}) is None


def test_list_items_ignores_unknown_filters(library, user):
    library.add_item(user.id, "Dune", "BOOK")
    library.add_item(user.id, "Heat", "MOVIE", is_recommendation=True)

    assert len(library.list_items(user.id, item_type="PODCAST", status="DROPPED")) == 2
    assert [i.title for i in library.list_items(user.id, item_type="movie")] == ["Heat"]
    assert [i.title for i in library.list_items(user.id, status="completed")] == ["Dune"]


def test_delete_item(library, user):
    item, _ = library.add_item(user.id, "Dune", "BOOK")

    assert library.delete_item(user.id, item.id) is True
    assert library.delete_item(user.id, item.id) is False
