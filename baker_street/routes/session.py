"""Game session endpoints: stream, reveal, challenges, companion, advance."""

from fastapi import APIRouter, Depends, HTTPException, Request

from baker_street.pipeline import CaseEngine
from baker_street.pipeline.evaluator import ChallengeError
from baker_street.pipeline.progression import ProgressionError
from baker_street.pipeline.reveal import visible_text

from .models import AttemptBody, ChooseBody, CompanionBody, RevealBody

router = APIRouter()


def get_engine(request: Request) -> CaseEngine:
    return request.app.state.engine


def session_view(engine: CaseEngine) -> dict:
    session = engine.session
    data = session.model_dump(mode="json")
    data["visible"] = {e.id: visible_text(session, e) for e in session.events}
    data["streaming"] = engine.streaming
    return data


def _check_challenge(engine: CaseEngine, challenge_id: str) -> None:
    if challenge_id not in engine.session.challenges:
        raise HTTPException(404, "Challenge not found")


@router.get("/session")
async def get_session(engine: CaseEngine = Depends(get_engine)):
    """Current session with the visible part of every event."""
    return session_view(engine)


@router.post("/session/reset")
async def reset_session(engine: CaseEngine = Depends(get_engine)):
    """Cancel any stream and start a new case."""
    await engine.reset()
    return session_view(engine)


@router.post("/session/stream")
async def start_stream(wait: bool = False, engine: CaseEngine = Depends(get_engine)):
    """Stream the current chapter; with ?wait=true return once it ends."""
    try:
        await engine.start_stream()
    except ProgressionError as e:
        raise HTTPException(409, str(e))
    if wait:
        await engine.wait()
    return session_view(engine)


@router.post("/session/cancel")
async def cancel_stream(engine: CaseEngine = Depends(get_engine)):
    """Cancel the in-flight stream. Safe to repeat."""
    await engine.cancel()
    return session_view(engine)


@router.post("/session/reveal")
async def tick_reveal(body: RevealBody, engine: CaseEngine = Depends(get_engine)):
    """Advance the reveal by ``ticks`` timer ticks."""
    engine.tick_reveal(body.ticks)
    return session_view(engine)


@router.post("/session/challenges/{challenge_id}/attempt")
async def attempt_challenge(challenge_id: str, body: AttemptBody, engine: CaseEngine = Depends(get_engine)):
    """Submit a free-text answer."""
    _check_challenge(engine, challenge_id)
    try:
        verdict = engine.submit(challenge_id, body.text)
    except ProgressionError as e:
        raise HTTPException(409, str(e))
    except ChallengeError as e:
        raise HTTPException(400, str(e))
    return {"verdict": verdict.model_dump(mode="json"), "session": session_view(engine)}


@router.post("/session/challenges/{challenge_id}/choose")
async def choose_option(challenge_id: str, body: ChooseBody, engine: CaseEngine = Depends(get_engine)):
    """Pick one option of a choice challenge."""
    _check_challenge(engine, challenge_id)
    try:
        verdict = engine.choose(challenge_id, body.option)
    except ProgressionError as e:
        raise HTTPException(409, str(e))
    except ChallengeError as e:
        raise HTTPException(400, str(e))
    return {"verdict": verdict.model_dump(mode="json"), "session": session_view(engine)}


@router.post("/session/companion")
async def decide_companion(body: CompanionBody, engine: CaseEngine = Depends(get_engine)):
    """Record whether Watson joins the investigation."""
    try:
        engine.decide_companion(body.joined)
    except ProgressionError as e:
        raise HTTPException(409, str(e))
    return session_view(engine)


@router.post("/session/advance")
async def advance(engine: CaseEngine = Depends(get_engine)):
    """Move on to the next chapter, stage or the end of the case."""
    try:
        engine.advance()
    except ProgressionError as e:
        raise HTTPException(409, str(e))
    return session_view(engine)
