"""Tests for the event reconciler: identity, ordering, idempotence, sealing."""

import pytest

from baker_street.models import GameSession
from baker_street.pipeline.decoders import decode_sections
from baker_street.pipeline.markers import scan
from baker_street.pipeline.reconciler import ReconcileError, reconcile, seal

NOW = "2026-01-01T00:00:00+00:00"


def _merge(session: GameSession, buffer: str, final: bool = False) -> GameSession:
    return reconcile(session, decode_sections(scan(buffer, final=final)), now=NOW)


def _ids(session: GameSession) -> list[str]:
    return [e.id for e in session.events]


def test_reconcile_creates_events_in_order(session, scenario_buffer):
    result = _merge(session, scenario_buffer, final=True)
    assert _ids(result) == [
        "chapter-title-1",
        "narrative-1",
        "dialogue-1-0",
        "dialogue-1-1",
        "challenge-a1",
    ]
    assert all(e.complete for e in result.events)
    assert result.pending_challenges == ["a1"]
    assert "a1" in result.challenges


def test_reconcile_does_not_mutate_input(session, scenario_buffer):
    _merge(session, scenario_buffer)
    assert session.events == []


def test_reconcile_updates_open_narrative_in_place(session):
    first = _merge(session, "###NARRATIVE###It was")
    second = _merge(first, "###NARRATIVE###It was foggy.")
    assert _ids(second) == ["narrative-1"]
    assert second.events[0].text == "It was foggy."
    assert second.events[0].complete is False


def test_reconcile_closed_text_is_never_touched(session):
    first = _merge(session, "###NARRATIVE###It was foggy.###DIALOGUE###")
    assert first.events[0].complete is True
    second = _merge(first, "###NARRATIVE###Something else.###DIALOGUE###")
    assert second.events[0].text == "It was foggy."


def test_reconcile_skips_empty_open_text(session):
    result = _merge(session, "###NARRATIVE###")
    assert result.events == []


def test_reconcile_dialogue_continuation(session):
    first = _merge(session, "###DIALOGUE#####SPEAKER##HOLMES##TEXT##Cur")
    second = _merge(first, "###DIALOGUE#####SPEAKER##HOLMES##TEXT##Curious.##SPEAKER##WATSON##TEXT##In")
    assert _ids(second) == ["dialogue-1-0", "dialogue-1-1"]
    holmes, watson = second.events
    assert (holmes.speaker, holmes.text, holmes.complete) == ("HOLMES", "Curious.", True)
    assert (watson.speaker, watson.text, watson.complete) == ("WATSON", "In", False)


def test_reconcile_idempotent_payload_delivery(session):
    buffer = '###EVIDENCE###[{"id": "e1", "title": "Letter"}, {"id": "e2", "title": "Knife"}]'
    once = _merge(session, buffer)
    twice = _merge(once, buffer)
    ids = _ids(twice)
    assert ids.count("evidence-e1") == 1
    assert ids.count("evidence-e2") == 1
    assert list(twice.evidence) == ["e1", "e2"]


def test_reconcile_payload_ids_are_global_across_chapters(session):
    buffer = '###DEDUCTIONS###[{"id": "d1", "conclusion": "Cigar"}]'
    first = _merge(session, buffer, final=True)
    later = first.model_copy(update={"chapter": 2})
    second = _merge(later, buffer)
    assert _ids(second).count("deduction-d1") == 1


def test_reconcile_orders_by_priority_regardless_of_arrival(session):
    # Challenge and evidence arrive in an earlier tick than the narrative
    first = _merge(session, '###ACTION###{"id": "a1", "type": "ACTION"}###EVIDENCE###[{"id": "e1"}]')
    second = _merge(first, "###CHAPTER###Title###NARRATIVE###Fog.")
    third = _merge(second, '###DEDUCTIONS###[{"id": "d1"}]###DIALOGUE#####SPEAKER##HOLMES##TEXT##Hm.')
    assert [e.type for e in third.events] == [
        "chapter-title",
        "narrative",
        "dialogue",
        "deduction",
        "evidence",
        "challenge",
    ]


def test_reconcile_keeps_chapters_apart():
    session = GameSession(chapter=1)
    first = seal(_merge(session, "###NARRATIVE###Chapter one.", final=True))
    second = first.model_copy(update={"chapter": 2, "stream_closed": False})
    second = _merge(second, "###CHAPTER###Two###NARRATIVE###Chapter two.")
    assert _ids(second) == ["narrative-1", "chapter-title-2", "narrative-2"]
    assert second.events[0].text == "Chapter one."


def test_reconcile_evidence_discovered_at(session):
    result = _merge(session, '###EVIDENCE###[{"id": "e1"}]')
    assert result.evidence["e1"].discovered_at == NOW
    assert result.events[0].evidence.discovered_at == NOW


def test_reconcile_deduction_text(session):
    buffer = '###DEDUCTIONS###[{"id": "d1", "observation": "Ash", "conclusion": "Cigar"}]'
    result = _merge(session, buffer)
    assert result.events[0].text == "Cigar"
    assert result.deductions["d1"].observation == "Ash"


def test_seal_marks_open_entries_complete(session):
    result = seal(_merge(session, "###NARRATIVE###It was fog"))
    assert result.events[0].complete is True
    assert result.events[0].text == "It was fog"
    assert result.stream_closed is True
    assert result.stream_open is False


def test_reconcile_after_seal_raises(session):
    sealed = seal(_merge(session, "###NARRATIVE###Fog."))
    with pytest.raises(ReconcileError):
        _merge(sealed, "###NARRATIVE###More fog.")
