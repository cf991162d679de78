"""Progression state machine: phases, chapter counter, stage transitions.

One pass (one stream) per chapter:

  AWAITING_STREAM ──first event──▶ PRESENTING
  PRESENTING ──all revealed + unsolved challenge──▶ AWAITING_CHALLENGE_RESOLUTION
  PRESENTING ──stream closed + all revealed, no challenge──▶ CHAPTER_COMPLETE
  AWAITING_CHALLENGE_RESOLUTION ──challenge accepted / option chosen──▶ CHAPTER_COMPLETE
  AWAITING_CHALLENGE_RESOLUTION ──new text sorted ahead──▶ PRESENTING
  CHAPTER_COMPLETE ──advance──▶ AWAITING_STREAM (chapter + 1) | CASE_CONCLUDED

Stages (introduction, reaction, development, conclusion, epilogue) are runs
of passes. Development repeats until ``max_chapters`` passes are done; every
other stage is a single pass. Leaving the reaction stage needs the companion
decision. After the epilogue the case is concluded.

A transport failure moves any live phase to FAILED; the events already
reconciled stay on the session and nothing is retried.

Every function takes the current session and returns the next one.
"""

import logging

from baker_street.models import STAGE_ORDER, GameSession, Phase, Stage

from . import reveal

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHAPTERS = 6

_TERMINAL = (Phase.CASE_CONCLUDED, Phase.FAILED)


class ProgressionError(ValueError):
    """Raised when an operation does not fit the session's current phase."""


def require(session: GameSession, *phases: Phase) -> None:
    if session.phase not in phases:
        allowed = ", ".join(p.value for p in phases)
        raise ProgressionError(
            f"Session is {session.phase.value}; expected one of: {allowed}"
        )


def require_challenge_open(session: GameSession) -> None:
    """A challenge takes answers only while offered and nothing is left unread."""
    require(session, Phase.AWAITING_CHALLENGE_RESOLUTION)
    if not reveal.is_fully_revealed(session):
        raise ProgressionError(f"Chapter {session.chapter} still has text being revealed")


def _with(session: GameSession, **fields) -> GameSession:
    return session.model_copy(update=fields, deep=True)


def begin_stream(session: GameSession) -> GameSession:
    """Mark the current chapter's stream as started.

    A chapter whose stream was cancelled before closing may be streamed
    again; events already reconciled for it are kept.
    """
    require(session, Phase.AWAITING_STREAM, Phase.PRESENTING)
    if session.stream_closed:
        raise ProgressionError(f"Chapter {session.chapter} stream has already closed")
    return _with(session, stream_open=True, stream_closed=False, malformed=False, error=None)


def stream_cancelled(session: GameSession) -> GameSession:
    """Explicit cancellation: keep everything, set no error."""
    logger.debug("Stream cancelled in chapter %d", session.chapter)
    return _with(session, stream_open=False)


def after_reconcile(session: GameSession) -> GameSession:
    """Enter PRESENTING once the chapter has its first event.

    Text that arrives after the challenge was offered can sort ahead of it;
    the challenge is then withdrawn until that text has been revealed.
    """
    if session.phase is Phase.AWAITING_STREAM and session.chapter_events():
        logger.debug("Chapter %d presenting", session.chapter)
        return _with(session, phase=Phase.PRESENTING)
    if (
        session.phase is Phase.AWAITING_CHALLENGE_RESOLUTION
        and not reveal.is_fully_revealed(session)
    ):
        logger.debug("Chapter %d has unrevealed text, challenge withdrawn", session.chapter)
        return _with(session, phase=Phase.PRESENTING)
    return session


def update(session: GameSession) -> GameSession:
    """Re-check the reveal gate after a reveal tick or the stream closing."""
    session = after_reconcile(session)
    if session.phase is Phase.AWAITING_STREAM and session.stream_closed:
        # Nothing arrived before the stream closed
        return _with(session, phase=Phase.CHAPTER_COMPLETE)
    if session.phase is not Phase.PRESENTING:
        return session
    if not reveal.is_fully_revealed(session):
        return session
    if session.pending_challenges:
        logger.debug("Chapter %d awaiting challenge resolution", session.chapter)
        return _with(session, phase=Phase.AWAITING_CHALLENGE_RESOLUTION)
    if session.stream_closed:
        return _with(session, phase=Phase.CHAPTER_COMPLETE)
    return session


def stream_failed(session: GameSession, message: str) -> GameSession:
    """Freeze the session on a transport failure."""
    logger.warning("Stream failed in chapter %d: %s", session.chapter, message)
    return _with(session, phase=Phase.FAILED, error=message, stream_open=False)


def challenge_resolved(session: GameSession) -> GameSession:
    """Close the chapter after the evaluator accepted a submission."""
    require(session, Phase.AWAITING_CHALLENGE_RESOLUTION)
    return _with(session, phase=Phase.CHAPTER_COMPLETE)


def decide_companion(session: GameSession, joined: bool) -> GameSession:
    """Record whether the companion joins the investigation (once)."""
    require(session, Phase.CHAPTER_COMPLETE)
    if session.stage is not Stage.REACTION:
        raise ProgressionError("The companion decision belongs to the reaction stage")
    if session.companion_joined is not None:
        raise ProgressionError("The companion decision has already been made")
    return _with(session, companion_joined=joined)


def _next_stage(stage: Stage) -> Stage | None:
    index = STAGE_ORDER.index(stage)
    return STAGE_ORDER[index + 1] if index + 1 < len(STAGE_ORDER) else None


def advance(session: GameSession, max_chapters: int = DEFAULT_MAX_CHAPTERS) -> GameSession:
    """Leave CHAPTER_COMPLETE for the next chapter, stage, or the case end."""
    require(session, Phase.CHAPTER_COMPLETE)
    if session.stream_open:
        raise ProgressionError(f"Chapter {session.chapter} is still streaming")
    if session.stage is Stage.REACTION and session.companion_joined is None:
        raise ProgressionError("Decide whether the companion joins before continuing")

    fresh = dict(
        phase=Phase.AWAITING_STREAM,
        chapter=session.chapter + 1,
        stream_open=False,
        stream_closed=False,
        malformed=False,
    )
    if session.stage is Stage.DEVELOPMENT:
        passes = session.chapter - session.stage_started_at + 1
        if passes < max_chapters:
            return _with(session, **fresh)

    stage = _next_stage(session.stage)
    if stage is None:
        logger.info("Case concluded after chapter %d", session.chapter)
        return _with(session, phase=Phase.CASE_CONCLUDED, stream_open=False)
    logger.info("Entering %s stage at chapter %d", stage.value, session.chapter + 1)
    return _with(session, stage=stage, stage_started_at=session.chapter + 1, **fresh)


def is_terminal(session: GameSession) -> bool:
    return session.phase in _TERMINAL
