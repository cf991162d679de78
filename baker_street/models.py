"""Core domain models.

All engine stages operate on these types. Pydantic is used for validation
and serialisation at every data boundary: decoded stream payloads, the
session value threaded through the reconciler and state machine, and the
API responses.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


class Stage(str, Enum):
    """Coarse game stages, each made of one or more stream passes."""

    INTRODUCTION = "introduction"
    REACTION = "reaction"
    DEVELOPMENT = "development"
    CONCLUSION = "conclusion"
    EPILOGUE = "epilogue"


STAGE_ORDER = [
    Stage.INTRODUCTION,
    Stage.REACTION,
    Stage.DEVELOPMENT,
    Stage.CONCLUSION,
    Stage.EPILOGUE,
]


class Phase(str, Enum):
    """Per-pass progression states."""

    AWAITING_STREAM = "awaiting_stream"
    PRESENTING = "presenting"
    AWAITING_CHALLENGE_RESOLUTION = "awaiting_challenge_resolution"
    CHAPTER_COMPLETE = "chapter_complete"
    CASE_CONCLUDED = "case_concluded"
    FAILED = "failed"


class ChallengeKind(str, Enum):
    ACTION = "ACTION"
    RIDDLE = "RIDDLE"
    PUZZLE = "PUZZLE"
    MEDICAL = "MEDICAL"
    OBSERVATION = "OBSERVATION"
    LOGIC = "LOGIC"
    PHYSICAL = "PHYSICAL"


Difficulty = Literal["EASY", "MEDIUM", "HARD"]

EventType = Literal[
    "chapter-title",
    "narrative",
    "dialogue",
    "deduction",
    "evidence",
    "challenge",
]

# Reading order within a chapter
EVENT_PRIORITY: dict[str, int] = {
    "chapter-title": 1,
    "narrative": 2,
    "dialogue": 3,
    "deduction": 4,
    "evidence": 5,
    "challenge": 6,
}

# Revealed character by character; everything else appears whole
TEXTUAL_TYPES = frozenset({"chapter-title", "narrative", "dialogue"})


# ---------------------------------------------------------------------------
# Registry records
# ---------------------------------------------------------------------------

class Reward(BaseModel):
    type: str = ""
    description: str = ""


class Challenge(BaseModel):
    """An interactive puzzle or choice gating the next chapter."""

    id: str
    kind: ChallengeKind
    text: str = ""
    prompt: str = ""
    hints: list[str] = Field(default_factory=list)
    solution: str = ""
    difficulty: Difficulty = "EASY"
    options: list[str] = Field(default_factory=list)  # ACTION kind only
    reward: Reward = Field(default_factory=Reward)
    required_evidence: list[str] = Field(default_factory=list)
    available_for: str = "WATSON"
    solved: bool = False

    @property
    def is_choice(self) -> bool:
        return self.kind is ChallengeKind.ACTION


class Evidence(BaseModel):
    id: str
    type: str = ""
    title: str = ""
    description: str = ""
    content: str = ""
    discovered_at: str = ""
    used_in: list[str] = Field(default_factory=list)
    available_actions: list[str] = Field(default_factory=list)


class Deduction(BaseModel):
    id: str
    observation: str = ""
    conclusion: str = ""
    description: str = ""
    author: Literal["HOLMES", "WATSON"] = "HOLMES"


class Resolution(BaseModel):
    """Progression-trigger payload emitted when a challenge is accepted."""

    challenge_id: str
    kind: ChallengeKind
    prompt: str
    submitted_text: str
    chapter: int


# ---------------------------------------------------------------------------
# Narrative events
# ---------------------------------------------------------------------------

class _EventBase(BaseModel):
    id: str = Field(frozen=True)
    chapter: int = Field(frozen=True)
    complete: bool = False
    text: str = ""


class ChapterTitle(_EventBase):
    type: Literal["chapter-title"] = Field(default="chapter-title", frozen=True)


class Narrative(_EventBase):
    type: Literal["narrative"] = Field(default="narrative", frozen=True)


class DialogueLine(_EventBase):
    type: Literal["dialogue"] = Field(default="dialogue", frozen=True)
    speaker: str
    position: int = Field(frozen=True)


class DeductionEvent(_EventBase):
    type: Literal["deduction"] = Field(default="deduction", frozen=True)
    deduction: Deduction


class EvidenceItem(_EventBase):
    type: Literal["evidence"] = Field(default="evidence", frozen=True)
    evidence: Evidence


class ChallengeEvent(_EventBase):
    type: Literal["challenge"] = Field(default="challenge", frozen=True)
    challenge: Challenge


NarrativeEvent = Annotated[
    Union[
        ChapterTitle,
        Narrative,
        DialogueLine,
        DeductionEvent,
        EvidenceItem,
        ChallengeEvent,
    ],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class RevealState(BaseModel):
    """Visible prefix length per event id plus the active event."""

    active_id: str | None = None
    visible: dict[str, int] = Field(default_factory=dict)
    revealed: list[str] = Field(default_factory=list)


class GameSession(BaseModel):
    """The single in-memory game session.

    Passed into the reconciler, evaluator and state machine, which each
    return the next session value rather than mutating shared state.
    """

    stage: Stage = Stage.INTRODUCTION
    phase: Phase = Phase.AWAITING_STREAM
    chapter: int = 1
    stage_started_at: int = 1
    events: list[NarrativeEvent] = Field(default_factory=list)
    evidence: dict[str, Evidence] = Field(default_factory=dict)
    deductions: dict[str, Deduction] = Field(default_factory=dict)
    challenges: dict[str, Challenge] = Field(default_factory=dict)
    pending_challenges: list[str] = Field(default_factory=list)
    resolutions: list[Resolution] = Field(default_factory=list)
    reveal: RevealState = Field(default_factory=RevealState)
    companion_joined: bool | None = None
    stream_open: bool = False
    stream_closed: bool = False
    malformed: bool = False
    error: str | None = None

    def chapter_events(self, chapter: int | None = None) -> list[Any]:
        number = self.chapter if chapter is None else chapter
        return [e for e in self.events if e.chapter == number]

    def find_event(self, event_id: str) -> Any | None:
        for event in self.events:
            if event.id == event_id:
                return event
        return None
