import pytest

from commonplace.search import (
    FOUND_NOTES_ANSWER,
    NO_NOTES_ANSWER,
    NoteAsker,
    build_snippet,
    search_notes,
)


@pytest.fixture
def ideas(temp_db, user):
    return temp_db.create_folder(user.id, "Ideas")


@pytest.fixture
def asker(temp_db, llm):
    return NoteAsker(temp_db, llm)


def test_search_notes(temp_db, user, ideas):
    temp_db.create_note(user.id, ideas.id, "Try the new ramen place", title="Ramen")
    temp_db.create_note(user.id, ideas.id, "Mom's birthday", tags=["Family"])
    temp_db.create_note(user.id, ideas.id, "nothing", cleaned_memo="ramen")

    assert [n.title for n in search_notes(temp_db, user.id, "RAMEN")] == ["Ramen"]
    assert [n.original_text for n in search_notes(temp_db, user.id, "Family")] == [
        "Mom's birthday"
    ]
    assert search_notes(temp_db, user.id, "   ") == []


def test_search_folds_non_ascii_case(temp_db, user, ideas):
    temp_db.create_note(user.id, ideas.id, "Éclair recipe from Émile", title="Éclair")
    temp_db.create_note(user.id, ideas.id, "eclair without accents")

    assert [n.title for n in search_notes(temp_db, user.id, "éclair")] == ["Éclair"]
    assert [n.title for n in search_notes(temp_db, user.id, "ÉMILE")] == ["Éclair"]


def test_search_is_per_user(temp_db, user, ideas):
    other = temp_db.create_user("other@example.com", "hash")
    folder = temp_db.create_folder(other.id, "Ideas")
    temp_db.create_note(other.id, folder.id, "ramen")

    assert search_notes(temp_db, user.id, "ramen") == []


def test_build_snippet():
    assert build_snippet(None) == ""
    assert build_snippet("short") == "short"
    assert build_snippet("x" * 300) == "x" * 280 + "..."


class TestAsk:
    def test_answer_from_notes(self, asker, temp_db, user, ideas, fake_openai):
        temp_db.create_note(user.id, ideas.id, "Passport expires in March", title="Passport")
        temp_db.create_note(user.id, ideas.id, "Book flights", tags=["Travel"])
        temp_db.create_note(user.id, ideas.id, "unrelated")
        fake_openai.queue(
            {"keywords": ["passport", " ", 7], "tags": ["Travel", "Invented"]},
            {"answer": " Your passport expires in March. "},
        )

        result = asker.ask(user.id, "When does my passport expire?")

        assert result.answer == "Your passport expires in March."
        assert result.keywords == ["passport"]
        assert result.tags == ["Travel"]
        assert [n.original_text for n in result.notes] == [
            "Book flights",
            "Passport expires in March",
        ]

        answer_prompt = fake_openai.request_json()["messages"][1]["content"]
        assert answer_prompt.startswith("Question: When does my passport expire?")
        assert "Title: Passport" in answer_prompt

    def test_keyword_failure_falls_back_to_query(self, asker, temp_db, user, ideas, fake_openai):
        temp_db.create_note(user.id, ideas.id, "call the plumber")
        fake_openai.queue(500, {"answer": "Call the plumber."})

        result = asker.ask(user.id, "plumber")

        assert result.keywords == ["plumber"]
        assert result.answer == "Call the plumber."
        assert len(result.notes) == 1

    def test_summary_failure_uses_canned_answer(self, asker, temp_db, user, ideas, fake_openai):
        temp_db.create_note(user.id, ideas.id, "call the plumber")
        fake_openai.queue({"keywords": ["plumber"]}, 500)

        result = asker.ask(user.id, "plumber?")

        assert result.answer == FOUND_NOTES_ANSWER

    def test_no_notes(self, asker, user, ideas, fake_openai):
        fake_openai.queue({"keywords": ["taxes"]})

        result = asker.ask(user.id, "taxes")

        assert result.answer == NO_NOTES_ANSWER
        assert result.notes == []
        # No summary call without notes
        assert len(fake_openai.requests) == 1

    def test_folder_scope(self, asker, temp_db, user, ideas, fake_openai):
        tasks = temp_db.create_folder(user.id, "Tasks")
        temp_db.create_note(user.id, ideas.id, "garden idea")
        temp_db.create_note(user.id, tasks.id, "garden task")
        fake_openai.queue({"keywords": ["garden"]}, {"answer": "Weed the garden."})

        result = asker.ask(user.id, "garden", folder_id=tasks.id)

        assert [n.original_text for n in result.notes] == ["garden task"]

    def test_limit(self, asker, temp_db, user, ideas, fake_openai):
        for i in range(25):
            temp_db.create_note(user.id, ideas.id, f"bike ride {i}")
        fake_openai.queue({"keywords": ["bike"]}, {"answer": "Lots of rides."})

        result = asker.ask(user.id, "bike")

        assert len(result.notes) == 20
        answer_prompt = fake_openai.request_json()["messages"][1]["content"]
        assert "Note 8\n" in answer_prompt
        assert "Note 9\n" not in answer_prompt

    def test_empty_query(self, asker, user):
        with pytest.raises(ValueError, match="Query is required"):
            asker.ask(user.id, "  ")
