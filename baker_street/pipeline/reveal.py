"""Revelation scheduler: drip-feeds already decoded text at a fixed rate.

Pure and single-threaded. Each call to ``tick`` grows the visible prefix of
the active textual event (the first chapter title, narrative or dialogue
line not yet fully revealed) by ``step`` characters. An event counts as
revealed once its whole text is visible and the reconciler has marked it
complete; only then does the next one become active. Evidence, deduction
and challenge cards appear whole as soon as they are decoded.

The timer driving ``tick`` lives with the caller (see
``CaseEngine.run_reveal``), so network bursts never speed up the reveal.
"""

from baker_street.models import TEXTUAL_TYPES, GameSession


def tick(session: GameSession, step: int = 1) -> GameSession:
    """Return the session with the reveal advanced by one timer tick."""
    session = session.model_copy(deep=True)
    state = session.reveal
    revealed = set(state.revealed)

    active = None
    for event in session.events:
        if event.id in revealed:
            continue
        if event.type not in TEXTUAL_TYPES:
            if event.complete:
                state.revealed.append(event.id)
                revealed.add(event.id)
            continue
        if active is None:
            active = event

    if active is None:
        state.active_id = None
        return session

    state.active_id = active.id
    shown = min(state.visible.get(active.id, 0) + step, len(active.text))
    state.visible[active.id] = shown
    if shown >= len(active.text) and active.complete:
        state.revealed.append(active.id)
    return session


def is_fully_revealed(session: GameSession) -> bool:
    revealed = set(session.reveal.revealed)
    return all(event.id in revealed for event in session.events)


def visible_text(session: GameSession, event) -> str:
    """The part of an event's text the reader may see right now."""
    if event.id in session.reveal.revealed:
        return event.text
    if event.type not in TEXTUAL_TYPES:
        return ""
    return event.text[:session.reveal.visible.get(event.id, 0)]
