"""Merge decoded stream values into the session's ordered event list.

Keys:
  chapter-title / narrative  (type, chapter)            one live entry, updated in place
  dialogue                   (speaker, chapter, position) open entry updated in place
  deduction / evidence / challenge  payload id            closed on first sight

The event list doubles as the identity table: an id present in it is never
created again, and a complete entry is never touched again. New entries go
immediately after the last entry of the same chapter whose type priority is
lower or equal (chapter-title < narrative < dialogue < deduction < evidence
< challenge), so sections arriving out of textual order still read in a
stable order.
"""

import logging
from datetime import datetime, timezone

from baker_street.models import (
    EVENT_PRIORITY,
    ChallengeEvent,
    ChapterTitle,
    DeductionEvent,
    DialogueLine,
    EvidenceItem,
    GameSession,
    Narrative,
)

from .decoders import Decoded, DialoguePair, TextValue

logger = logging.getLogger(__name__)


class ReconcileError(RuntimeError):
    """Raised when merging into a stream that has already been sealed."""


def _insert_index(events: list, chapter: int, priority: int) -> int:
    last_at_or_below = None
    first_in_chapter = None
    last_earlier = None
    for i, event in enumerate(events):
        if event.chapter == chapter:
            if first_in_chapter is None:
                first_in_chapter = i
            if EVENT_PRIORITY[event.type] <= priority:
                last_at_or_below = i
        elif event.chapter < chapter:
            last_earlier = i
    if last_at_or_below is not None:
        return last_at_or_below + 1
    if first_in_chapter is not None:
        return first_in_chapter
    if last_earlier is not None:
        return last_earlier + 1
    return 0


def _insert(session: GameSession, table: dict, event) -> None:
    index = _insert_index(session.events, event.chapter, EVENT_PRIORITY[event.type])
    session.events.insert(index, event)
    table[event.id] = event


def _merge_text(session: GameSession, table: dict, event_cls, event_id: str, value: TextValue) -> None:
    existing = table.get(event_id)
    if existing is None:
        if not value.text and not value.closed:
            return
        _insert(session, table, event_cls(
            id=event_id, chapter=session.chapter, text=value.text, complete=value.closed,
        ))
        return
    if existing.complete:
        return
    existing.text = value.text
    existing.complete = value.closed


def _merge_dialogue(session: GameSession, table: dict, pair: DialoguePair) -> None:
    event_id = f"dialogue-{session.chapter}-{pair.position}"
    existing = table.get(event_id)
    if existing is None:
        if not pair.text and not pair.closed:
            return
        _insert(session, table, DialogueLine(
            id=event_id,
            chapter=session.chapter,
            speaker=pair.speaker,
            position=pair.position,
            text=pair.text,
            complete=pair.closed,
        ))
        return
    if existing.complete:
        return
    if existing.speaker != pair.speaker:
        logger.warning(
            "Dialogue line %s changed speaker %r -> %r; keeping the first",
            event_id, existing.speaker, pair.speaker,
        )
        return
    existing.text = pair.text
    existing.complete = pair.closed


def reconcile(session: GameSession, decoded: Decoded, now: str | None = None) -> GameSession:
    """Return the next session with this tick's decoded values merged in."""
    if session.stream_closed:
        raise ReconcileError(f"Chapter {session.chapter} stream is already sealed")

    session = session.model_copy(deep=True)
    now = now or datetime.now(timezone.utc).isoformat()
    chapter = session.chapter
    table = {event.id: event for event in session.events}

    if decoded.title is not None:
        _merge_text(session, table, ChapterTitle, f"chapter-title-{chapter}", decoded.title)
    if decoded.narrative is not None:
        _merge_text(session, table, Narrative, f"narrative-{chapter}", decoded.narrative)

    for pair in decoded.dialogue or []:
        _merge_dialogue(session, table, pair)

    for deduction in decoded.deductions or []:
        event_id = f"deduction-{deduction.id}"
        if event_id in table:
            continue
        session.deductions[deduction.id] = deduction
        _insert(session, table, DeductionEvent(
            id=event_id,
            chapter=chapter,
            complete=True,
            text=deduction.description or deduction.conclusion or deduction.observation,
            deduction=deduction,
        ))

    for evidence in decoded.evidence or []:
        event_id = f"evidence-{evidence.id}"
        if event_id in table:
            continue
        evidence = evidence.model_copy(update={"discovered_at": evidence.discovered_at or now})
        session.evidence[evidence.id] = evidence
        _insert(session, table, EvidenceItem(
            id=event_id,
            chapter=chapter,
            complete=True,
            text=evidence.content or evidence.description,
            evidence=evidence,
        ))

    challenge = decoded.challenge
    if challenge is not None and f"challenge-{challenge.id}" not in table:
        session.challenges[challenge.id] = challenge
        session.pending_challenges.append(challenge.id)
        _insert(session, table, ChallengeEvent(
            id=f"challenge-{challenge.id}",
            chapter=chapter,
            complete=True,
            text=challenge.text,
            challenge=challenge,
        ))

    return session


def seal(session: GameSession) -> GameSession:
    """End-of-stream: mark every open entry complete, as it stands.

    After sealing, ``reconcile`` refuses further changes for this stream.
    """
    session = session.model_copy(deep=True)
    for event in session.events:
        if not event.complete:
            event.complete = True
    session.stream_open = False
    session.stream_closed = True
    return session
