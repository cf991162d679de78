"""Challenge evaluation: free-text attempts and option choices.

Free-text challenges compare the attempt with the canonical solution using
Jaccard similarity over lowercase whitespace-delimited word sets:

    similarity = |words(attempt) & words(solution)| / |words(attempt) | words(solution)|

An attempt is accepted at ``threshold`` (default 0.1) or above. That bar is
very lenient: one shared word out of ten distinct words passes.

Choice challenges (ACTION kind) accept any offered option unconditionally.

Acceptance marks the challenge solved, removes it from the pending set,
records the challenge id on every required evidence item and appends a
``Resolution`` (the progression trigger) to the session. Rejection leaves
the session untouched so the player may try again.
"""

import logging

from pydantic import BaseModel

from baker_street.models import Challenge, GameSession, Resolution

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.1


class ChallengeError(ValueError):
    """Raised for attempts that cannot be evaluated at all."""


class Verdict(BaseModel):
    accepted: bool
    similarity: float
    resolution: Resolution | None = None


def similarity(attempt: str, solution: str) -> float:
    words_a = set(attempt.lower().strip().split())
    words_b = set(solution.lower().strip().split())
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def _open_challenge(session: GameSession, challenge_id: str) -> Challenge:
    challenge = session.challenges.get(challenge_id)
    if challenge is None:
        raise ChallengeError(f"Unknown challenge {challenge_id!r}")
    if challenge.solved:
        raise ChallengeError(f"Challenge {challenge_id!r} is already solved")
    return challenge


def _accept(session: GameSession, challenge: Challenge, submitted: str) -> tuple[GameSession, Resolution]:
    session = session.model_copy(deep=True)
    challenge = session.challenges[challenge.id]
    challenge.solved = True
    session.pending_challenges = [c for c in session.pending_challenges if c != challenge.id]

    event = session.find_event(f"challenge-{challenge.id}")
    if event is not None:
        event.challenge.solved = True

    # Required ids are matched loosely: generated ids are often abbreviated
    for required in challenge.required_evidence:
        for evidence in session.evidence.values():
            if required and required in evidence.id and challenge.id not in evidence.used_in:
                evidence.used_in.append(challenge.id)

    resolution = Resolution(
        challenge_id=challenge.id,
        kind=challenge.kind,
        prompt=challenge.prompt or challenge.text,
        submitted_text=submitted,
        chapter=session.chapter,
    )
    session.resolutions.append(resolution)
    return session, resolution


def evaluate(
    session: GameSession,
    challenge_id: str,
    attempt: str,
    threshold: float = DEFAULT_THRESHOLD,
) -> tuple[GameSession, Verdict]:
    """Score a free-text attempt; returns the next session and the verdict."""
    challenge = _open_challenge(session, challenge_id)
    if challenge.is_choice:
        raise ChallengeError(f"Challenge {challenge_id!r} takes an option, not free text")

    score = similarity(attempt, challenge.solution)
    if score < threshold:
        logger.debug("Attempt on %s rejected (similarity %.3f)", challenge_id, score)
        return session, Verdict(accepted=False, similarity=score)

    session, resolution = _accept(session, challenge, attempt)
    logger.info("Challenge %s solved (similarity %.3f)", challenge_id, score)
    return session, Verdict(accepted=True, similarity=score, resolution=resolution)


def choose(session: GameSession, challenge_id: str, option: str) -> tuple[GameSession, Verdict]:
    """Resolve a choice challenge with the selected option."""
    challenge = _open_challenge(session, challenge_id)
    if not challenge.is_choice:
        raise ChallengeError(f"Challenge {challenge_id!r} needs a free-text answer")
    if challenge.options and option not in challenge.options:
        raise ChallengeError(f"{option!r} is not an option of challenge {challenge_id!r}")

    session, resolution = _accept(session, challenge, option)
    logger.info("Challenge %s resolved with option %r", challenge_id, option)
    return session, Verdict(accepted=True, similarity=1.0, resolution=resolution)
