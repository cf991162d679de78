import pytest

from baker_street.models import GameSession
from baker_street.pipeline import CaseEngine
from baker_street.stream import ScriptedStreamSource

SCENARIO_BUFFER = (
    "###CHAPTER###Ch1###NARRATIVE###It was foggy.###DIALOGUE###"
    "##SPEAKER##HOLMES##TEXT##Curious.##SPEAKER##WATSON##TEXT##Indeed."
    '###ACTION###{"id":"a1","type":"ACTION","text":"choose"}'
)

DEVELOPMENT_BUFFER = """###CHAPTER###The Locked Study
###NARRATIVE###Rain lashed the windows of the study.
###DIALOGUE###
##SPEAKER## HOLMES ##TEXT## "The ash is Trichinopoly." ##SPEAKER## WATSON ##TEXT## Remarkable!
###DEDUCTIONS###
[{"id": "d1", "observation": "Ash on the sill", "conclusion": "The visitor smoked a cigar", "description": "A cigar smoker stood at the window", "author": "HOLMES"}]
###EVIDENCE###
[{"id": "ev-letter", "type": "DOCUMENT", "title": "Torn letter", "description": "A letter torn in half", "content": "Meet me at the dagger inn"}]
###ACTION###
{"id": "r1", "type": "RIDDLE", "text": "Decode the letter", "challenge": {"question": "Where was the meeting?", "hints": ["an inn"], "solution": "dagger inn", "difficulty": "MEDIUM"}, "requiresEvidence": ["ev-letter"]}
"""

_ENV_VARS = (
    "LLM_PROVIDER_URL",
    "LLM_API_KEY",
    "LLM_PROVIDER_FORMAT",
    "LLM_MODEL",
    "LLM_TIMEOUT",
    "REVEAL_INTERVAL_MS",
    "MAX_DEVELOPMENT_CHAPTERS",
    "SIMILARITY_THRESHOLD",
    "CASE_LOCATION",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Start every test without configuration from the environment."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def scenario_buffer() -> str:
    return SCENARIO_BUFFER


@pytest.fixture
def development_buffer() -> str:
    return DEVELOPMENT_BUFFER


@pytest.fixture
def session() -> GameSession:
    return GameSession()


@pytest.fixture
def make_engine():
    """Build a CaseEngine over a ScriptedStreamSource."""

    def _make(scripts=None, config=None, session=None, **source_kwargs) -> CaseEngine:
        source = ScriptedStreamSource(scripts or {}, **source_kwargs)
        return CaseEngine(source, config, session)

    return _make
