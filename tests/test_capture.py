from unittest.mock import patch

import pytest

from commonplace.capture import NoteCapture, build_instructions
from commonplace.llm import TranscriptionError
from commonplace.recommendations import TrackerType


@pytest.fixture
def folders(temp_db, user):
    ideas = temp_db.create_folder(user.id, "Ideas")
    movies = temp_db.create_folder(user.id, "Movies", instructions="Mention the director")
    return ideas, movies


@pytest.fixture
def capture(temp_db, llm):
    return NoteCapture(temp_db, llm)


def test_build_instructions(folders):
    ideas, movies = folders

    assert build_instructions(None, [ideas]) == ""
    assert build_instructions("Be brief", [ideas, movies]) == (
        "Be brief\n\nFOLDER-SPECIFIC INSTRUCTIONS:\n- Movies: Mention the director"
    )


def test_capture_text(capture, temp_db, user, folders, fake_openai):
    """Text is analyzed, filed into the chosen folder and mined for recommendations."""
    _, movies = folders
    temp_db.upsert_settings(user.id, "Use plain words")
    fake_openai.queue(
        {
            "folder": "Movies",
            "title": "Dune recommendation",
            "summary": "Sarah recommended Dune.",
            "cleanedMemo": "Sarah says I need to watch Dune.",
            "tags": ["Movies/TV"],
        }
    )

    result = capture.capture(user.id, text="sarah says i need to watch Dune tonight")

    assert result.folder_name == "Movies"
    assert result.note.folder_id == movies.id
    assert result.note.title == "Dune recommendation"
    assert result.note.tags == ["Movies/TV"]
    assert result.note.original_text == "sarah says i need to watch Dune tonight"
    assert result.recommendations.created == 1

    item = temp_db.find_tracker_item(user.id, TrackerType.MOVIE, "dune")
    assert item.source_note_id == result.note.id

    system_prompt = fake_openai.request_json()["messages"][0]["content"]
    assert "Use plain words" in system_prompt
    assert "- Movies: Mention the director" in system_prompt


def test_capture_with_calendar_event(capture, user, folders, fake_openai):
    fake_openai.queue(
        {
            "folder": "Ideas",
            "title": "Dentist",
            "calendar_event": {"title": "Dentist", "dateText": "next Friday", "timeText": "4pm"},
        }
    )

    result = capture.capture(user.id, text="dentist next friday 4pm")

    assert result.note.calendar_event.title == "Dentist"
    assert result.note.calendar_event.date_text == "next Friday"


def test_capture_into_given_folder(capture, user, folders, fake_openai):
    """A chosen folder skips categorization."""
    ideas, _ = folders
    fake_openai.queue({"folder": "Movies", "title": "Idea"})

    result = capture.capture(user.id, text="an idea", folder_id=ideas.id)

    assert result.folder_name == "Ideas"
    system_prompt = fake_openai.request_json()["messages"][0]["content"]
    assert 'belongs to the "Ideas" folder' in system_prompt


def test_capture_unknown_folder(capture, user, folders):
    with pytest.raises(ValueError, match="Folder not found"):
        capture.capture(user.id, text="an idea", folder_id="missing")


def test_capture_llm_failure_uses_first_folder(capture, user, folders, fake_openai):
    fake_openai.queue(500)

    result = capture.capture(user.id, text="something")

    # Folders list newest first
    assert result.folder_name == "Movies"
    assert result.note.title == "Untitled Note"
    assert result.note.cleaned_memo == "something"


def test_capture_audio(capture, user, folders, fake_openai):
    fake_openai.queue("need to read Sapiens", {"folder": "Ideas", "title": "Reading"})

    result = capture.capture(user.id, audio=b"recording")

    assert result.note.original_text == "need to read Sapiens"
    assert result.recommendations.created == 1
    assert fake_openai.requests[0].url.path.endswith("/audio/transcriptions")


def test_capture_audio_failure(capture, user, folders, fake_openai):
    fake_openai.queue(500)
    with pytest.raises(TranscriptionError):
        capture.capture(user.id, audio=b"recording")


def test_capture_requires_text(capture, user, folders):
    with pytest.raises(ValueError, match="No text provided"):
        capture.capture(user.id, text="   ")


def test_capture_rejects_long_text(capture, user, folders):
    with pytest.raises(ValueError, match="exceeds maximum length"):
        capture.capture(user.id, text="x" * 50_001)


def test_capture_requires_folder(capture, user):
    with pytest.raises(ValueError, match="No folders available"):
        capture.capture(user.id, text="an idea")


def test_capture_survives_ingestion_failure(capture, temp_db, user, folders, fake_openai):
    fake_openai.queue({"folder": "Ideas"})

    with patch.object(temp_db, "find_tracker_item", side_effect=RuntimeError("locked")):
        result = capture.capture(user.id, text="need to watch Heat")

    assert result.note.id
    assert result.recommendations.error == "Recommendations could not be saved."


def test_suggest_folder(capture, user, folders, fake_openai):
    fake_openai.queue("ideas")
    assert capture.suggest_folder(user.id, "shower thought") == "Ideas"
