"""Narrative stream ingestion and case progression.

Turns the narrator's growing, partially delimited text stream into an
ordered, deduplicated list of story events and drives the case forward:
  1. Lex top-level ###NAME### section markers (markers.scan).
  2. Decode each section: plain text, ##SPEAKER##/##TEXT## pairs, or a JSON
     payload once it looks complete (decoders.decode_sections).
  3. Merge decoded values into the session's event list by deterministic id
     and type priority (reconciler.reconcile / reconciler.seal).
  4. Drip-feed textual events at a fixed rate (reveal.tick).
  5. Gate challenges on the reveal, evaluate attempts and choices, and move
     through chapters and stages (progression, evaluator).

Stages (one or more stream passes each):
  introduction: atmosphere and the initial mystery
  reaction: Holmes's first reaction; ends with the companion decision
  development: chapters with evidence, deductions and one challenge each
  conclusion: the revelation and capture
  epilogue: loose ends at Baker Street

Event ids:
  chapter-title-<ch>, narrative-<ch>, dialogue-<ch>-<position>,
  deduction-<id>, evidence-<id>, challenge-<id>

Every step takes the current GameSession and returns the next one; CaseEngine
(core.py) holds the session and the single in-flight stream.
"""

from .core import CaseEngine, build_context  # noqa: F401
from .decoders import PayloadParseError, decode_sections  # noqa: F401
from .evaluator import ChallengeError, Verdict, similarity  # noqa: F401
from .markers import ScanResult, Section, scan  # noqa: F401
from .progression import ProgressionError  # noqa: F401
from .reconciler import ReconcileError, reconcile, seal  # noqa: F401
