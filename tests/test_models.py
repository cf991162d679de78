"""Tests for domain models: event union, frozen identity, session helpers."""

import pytest
from pydantic import TypeAdapter, ValidationError

from baker_street.models import (
    EVENT_PRIORITY,
    STAGE_ORDER,
    Challenge,
    ChallengeKind,
    DialogueLine,
    GameSession,
    Narrative,
    NarrativeEvent,
    Stage,
)


def test_event_union_discriminates_on_type():
    adapter = TypeAdapter(NarrativeEvent)
    event = adapter.validate_python({
        "type": "dialogue", "id": "dialogue-1-0", "chapter": 1,
        "speaker": "HOLMES", "position": 0, "text": "Hm.",
    })
    assert isinstance(event, DialogueLine)


def test_event_identity_is_frozen():
    event = Narrative(id="narrative-1", chapter=1, text="Fog.")
    with pytest.raises(ValidationError):
        event.id = "narrative-2"
    with pytest.raises(ValidationError):
        event.chapter = 2
    event.text = "Fog and rain."
    assert event.text == "Fog and rain."


def test_session_round_trips_through_json():
    session = GameSession(events=[
        Narrative(id="narrative-1", chapter=1, text="Fog.", complete=True),
        DialogueLine(id="dialogue-1-0", chapter=1, speaker="WATSON", position=0, text="Indeed."),
    ])
    restored = GameSession.model_validate_json(session.model_dump_json())
    assert restored == session
    assert isinstance(restored.events[1], DialogueLine)


def test_chapter_events_and_find_event():
    session = GameSession(chapter=2, events=[
        Narrative(id="narrative-1", chapter=1, text="One."),
        Narrative(id="narrative-2", chapter=2, text="Two."),
    ])
    assert [e.id for e in session.chapter_events()] == ["narrative-2"]
    assert [e.id for e in session.chapter_events(1)] == ["narrative-1"]
    assert session.find_event("narrative-1").text == "One."
    assert session.find_event("missing") is None


def test_challenge_is_choice():
    assert Challenge(id="a", kind=ChallengeKind.ACTION).is_choice
    assert not Challenge(id="r", kind=ChallengeKind.RIDDLE).is_choice


def test_priorities_and_stage_order():
    assert sorted(EVENT_PRIORITY, key=EVENT_PRIORITY.get) == [
        "chapter-title", "narrative", "dialogue", "deduction", "evidence", "challenge",
    ]
    assert STAGE_ORDER[0] is Stage.INTRODUCTION
    assert STAGE_ORDER[-1] is Stage.EPILOGUE
