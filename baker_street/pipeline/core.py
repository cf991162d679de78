"""CaseEngine: the single-session driver.

Owns the one game session, the raw buffer of the current chapter's stream
and the one in-flight stream task. Every chunk runs synchronously through

    markers.scan -> decoders.decode_sections -> reconciler.reconcile
        -> progression.after_reconcile

in arrival order. The end of the stream (or a malformed buffer) seals the
chapter's entries and re-runs the progression gate. Reveal ticks, challenge
submissions, the companion decision and advancing are the remaining inputs.
"""

import asyncio
import contextlib
import logging
from typing import Any

from baker_street.llm import TransportError
from baker_street.models import ChallengeKind, GameSession
from baker_street.stream import StreamSource, TextStream

from . import decoders, evaluator, markers, progression, reconciler, reveal

logger = logging.getLogger(__name__)

DEFAULT_LOCATION = "221B Baker Street"
DEFAULT_REVEAL_INTERVAL_MS = 40


def build_context(session: GameSession, location: str = DEFAULT_LOCATION) -> dict[str, Any]:
    """Request context for the next stream of ``session``."""
    selected_action = None
    selected_solution = None
    if session.resolutions:
        last = session.resolutions[-1]
        if last.kind is ChallengeKind.ACTION:
            selected_action = last.submitted_text
        else:
            selected_solution = last.submitted_text

    dialogue = [
        {"speaker": e.speaker, "text": e.text}
        for e in session.events if e.type == "dialogue"
    ]
    deductions = [
        {"text": e.text}
        for e in session.events if e.type == "deduction"
    ]
    return {
        "location": location,
        "stage": session.stage.value,
        "chapter": session.chapter,
        "companion_joined": bool(session.companion_joined),
        "selected_action": selected_action,
        "selected_solution": selected_solution,
        "evidence": [
            {"id": ev.id, "description": ev.description or ev.title}
            for ev in session.evidence.values()
        ],
        "recent_dialogue": dialogue,
        "recent_deductions": deductions,
    }


class CaseEngine:
    def __init__(
        self,
        source: StreamSource,
        config: dict[str, Any] | None = None,
        session: GameSession | None = None,
    ) -> None:
        self.source = source
        self.config = config or {}
        self.session = session or GameSession()
        self._buffer = ""
        self._stream: TextStream | None = None
        self._task: asyncio.Task | None = None

    @property
    def streaming(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── Stream intake ────────────────────────────────────────

    def begin(self) -> GameSession:
        """Open the current chapter for intake with an empty buffer."""
        self.session = progression.begin_stream(self.session)
        self._buffer = ""
        return self.session

    def feed(self, chunk: str) -> GameSession:
        """Append one text increment and reconcile the whole buffer."""
        return self.feed_snapshot(self._buffer + chunk)

    def feed_snapshot(self, buffer: str) -> GameSession:
        """Reconcile a cumulative buffer re-sent in full."""
        if not self.session.stream_open:
            raise progression.ProgressionError("No stream is open for this chapter")
        self._buffer = buffer
        return self._apply(final=False)

    def end_stream(self) -> GameSession:
        """End-of-stream signal: final parse, seal, re-check the gate."""
        if not self.session.stream_open:
            raise progression.ProgressionError("No stream is open for this chapter")
        return self._apply(final=True)

    def _apply(self, final: bool) -> GameSession:
        result = markers.scan(self._buffer, final=final)
        session = reconciler.reconcile(self.session, decoders.decode_sections(result))
        session = progression.after_reconcile(session)
        if result.malformed:
            logger.warning(
                "Malformed stream in chapter %d, closing early after %d chars",
                session.chapter, len(self._buffer),
            )
            session = reconciler.seal(session)
            session = session.model_copy(update={"malformed": True})
            session = progression.update(session)
        elif final:
            session = reconciler.seal(session)
            session = progression.update(session)
        self.session = session
        return session

    async def start_stream(self, context: dict[str, Any] | None = None) -> asyncio.Task:
        """Cancel any in-flight stream, then stream the current chapter."""
        await self.cancel()
        self.begin()
        if context is None:
            context = build_context(self.session, self.config.get("location", DEFAULT_LOCATION))
        logger.info(
            "Streaming %s stage, chapter %d", self.session.stage.value, self.session.chapter,
        )
        self._stream = self.source.open(self.session.stage, context)
        self._task = asyncio.create_task(self._consume(self._stream))
        return self._task

    async def _consume(self, stream: TextStream) -> None:
        try:
            async for chunk in stream:
                logger.debug("chunk len=%d", len(chunk))
                self.feed(chunk)
                if self.session.stream_closed:
                    await stream.cancel()
                    return
        except TransportError as e:
            self.session = progression.stream_failed(self.session, str(e))
            return
        self.end_stream()

    async def cancel(self) -> None:
        """Stop the in-flight stream, if any. Safe to call repeatedly."""
        stream, task = self._stream, self._task
        self._stream = None
        self._task = None
        if stream is not None:
            await stream.cancel()
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self.session.stream_open:
            self.session = progression.stream_cancelled(self.session)

    async def wait(self) -> GameSession:
        """Wait for the in-flight stream to finish."""
        if self._task is not None:
            await self._task
        return self.session

    # ── Reveal ────────────────────────────────────────────────

    def tick_reveal(self, ticks: int = 1) -> GameSession:
        session = self.session
        for _ in range(ticks):
            session = reveal.tick(session)
        self.session = progression.update(session)
        return self.session

    async def run_reveal(self, interval: float | None = None) -> None:
        """Tick the reveal on a fixed timer until cancelled."""
        if interval is None:
            interval = self.config.get("reveal_interval_ms", DEFAULT_REVEAL_INTERVAL_MS) / 1000
        while True:
            self.tick_reveal()
            await asyncio.sleep(interval)

    # ── Player input ──────────────────────────────────────────

    def submit(self, challenge_id: str, text: str) -> evaluator.Verdict:
        progression.require_challenge_open(self.session)
        threshold = self.config.get("similarity_threshold", evaluator.DEFAULT_THRESHOLD)
        session, verdict = evaluator.evaluate(self.session, challenge_id, text, threshold)
        if verdict.accepted:
            session = progression.challenge_resolved(session)
        self.session = session
        return verdict

    def choose(self, challenge_id: str, option: str) -> evaluator.Verdict:
        progression.require_challenge_open(self.session)
        session, verdict = evaluator.choose(self.session, challenge_id, option)
        self.session = progression.challenge_resolved(session)
        return verdict

    def decide_companion(self, joined: bool) -> GameSession:
        self.session = progression.decide_companion(self.session, joined)
        return self.session

    def advance(self) -> GameSession:
        max_chapters = self.config.get("max_development_chapters", progression.DEFAULT_MAX_CHAPTERS)
        self.session = progression.advance(self.session, max_chapters)
        self._buffer = ""
        return self.session

    async def reset(self) -> GameSession:
        await self.cancel()
        self.session = GameSession()
        self._buffer = ""
        logger.info("Session reset")
        return self.session
