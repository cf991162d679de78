"""Per-section decoding: plain text, speaker/text pairs, and JSON payloads.

Decoders turn a lexed ``Section`` into plain Python values the reconciler
can merge. They never raise for content that is merely incomplete; a JSON
section that looks finished but does not parse raises ``PayloadParseError``
so the caller can log it and retry on the next tick.

Dialogue format (no separators between fragments):
  ##SPEAKER## HOLMES ##TEXT## Curious. ##SPEAKER## WATSON ##TEXT## Indeed.

Challenge payload (ACTION section, a single object or a one-element array):
  {"id": "...", "type": "RIDDLE", "text": "...",
   "challenge": {"question", "hints", "solution", "difficulty"},
   "action": {"text", "actionOptions"},
   "requiresEvidence": [...], "availableFor": "WATSON",
   "reward": {"type", "description"}}
"""

import hashlib
import json
import logging
import re
from typing import Any

from pydantic import BaseModel

from baker_street.models import (
    Challenge,
    ChallengeKind,
    Deduction,
    Evidence,
    Reward,
)

from .markers import ScanResult, Section

logger = logging.getLogger(__name__)

SPEAKER_TOKEN = "##SPEAKER##"
TEXT_TOKEN = "##TEXT##"

_DIFFICULTIES = ("EASY", "MEDIUM", "HARD")


class PayloadParseError(ValueError):
    """A JSON section looked complete but could not be decoded."""


class DialoguePair(BaseModel):
    position: int
    speaker: str
    text: str
    closed: bool


# ── Plain text ─────────────────────────────────────────────


def decode_text(section: Section) -> str:
    """Chapter title and narrative: the content, trimmed of stray markup."""
    text = section.content.strip()
    text = re.sub(r"\s*#{2,}\s*$", "", text)
    return text.strip()


# ── Dialogue ───────────────────────────────────────────────


def clean_dialogue_text(text: str) -> str:
    """Strip marker fragments, wrapping quotes and brackets from a line."""
    text = re.sub(r"#{2,}.*$", "", text, flags=re.DOTALL)
    text = re.sub(r"#+[A-Z_]*$", "", text)
    text = text.strip()
    text = re.sub(r'^[\["“]+|[\]"”]+$', "", text)
    return text.strip()


def _clean_speaker(name: str) -> str:
    name = re.sub(r"#+", "", name)
    return name.strip().strip('[]"“”').strip()


def decode_dialogue(section: Section) -> list[DialoguePair]:
    """Split the dialogue section into (speaker, text) pairs.

    A pair is only produced once its ``##TEXT##`` token has arrived, so a
    speaker name is never reported half-written. The last pair stays open
    until another speaker token follows or the section itself closes.
    """
    fragments = section.content.split(SPEAKER_TOKEN)[1:]
    pairs: list[DialoguePair] = []
    for i, fragment in enumerate(fragments):
        if TEXT_TOKEN not in fragment:
            continue
        raw_speaker, raw_text = fragment.split(TEXT_TOKEN, 1)
        speaker = _clean_speaker(raw_speaker)
        if not speaker:
            continue
        is_last = i == len(fragments) - 1
        pairs.append(DialoguePair(
            position=len(pairs),
            speaker=speaker,
            text=clean_dialogue_text(raw_text),
            closed=section.closed or not is_last,
        ))
    return pairs


# ── JSON sections ──────────────────────────────────────────


def strip_fences(text: str) -> str:
    """Remove a ```json ... ``` wrapper around an LLM reply."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines).strip()
    return cleaned


def decode_json(section: Section, terminator: str) -> Any | None:
    """Parse a JSON section once it contains its terminating character.

    Returns None while the payload is still partial. Raises
    PayloadParseError when it looks complete but fails to parse.
    """
    cleaned = strip_fences(section.content)
    if terminator not in cleaned:
        return None
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise PayloadParseError(f"{section.name} payload is not valid JSON: {e}") from e


def _as_items(data: Any) -> list[dict]:
    if isinstance(data, dict):
        return [data]
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    return []


def _content_id(prefix: str, item: dict) -> str:
    digest = hashlib.sha1(json.dumps(item, sort_keys=True).encode()).hexdigest()
    return f"{prefix}-{digest[:10]}"


def decode_deductions(section: Section) -> list[Deduction] | None:
    data = decode_json(section, "]")
    if data is None:
        return None
    deductions: list[Deduction] = []
    for item in _as_items(data):
        author = str(item.get("author", "HOLMES")).upper()
        deductions.append(Deduction(
            id=str(item.get("id") or _content_id("ded", item)),
            observation=str(item.get("observation", "")),
            conclusion=str(item.get("conclusion", "")),
            description=str(item.get("description", "")),
            author=author if author in ("HOLMES", "WATSON") else "HOLMES",
        ))
    return deductions


def decode_evidence(section: Section) -> list[Evidence] | None:
    data = decode_json(section, "]")
    if data is None:
        return None
    items: list[Evidence] = []
    for item in _as_items(data):
        if not item.get("id"):
            logger.warning("Evidence entry without id dropped: %r", item)
            continue
        details = item.get("details") if isinstance(item.get("details"), dict) else {}
        content = item.get("content") or details.get("text") or ""
        items.append(Evidence(
            id=str(item["id"]),
            type=str(item.get("type", "")),
            title=str(item.get("title", "")),
            description=str(item.get("description", "")),
            content=str(content),
            available_actions=[str(a) for a in item.get("availableActions", []) or []],
        ))
    return items


def normalize_kind(raw: Any, has_options: bool = False) -> ChallengeKind:
    """Map the many spellings of a challenge type onto ChallengeKind.

    "ACTIONS", "Actions", "action" -> ACTION; "PUZZLES" -> PUZZLE.
    """
    name = str(raw or "").strip().upper()
    if name.endswith("S") and name[:-1] in ChallengeKind.__members__:
        name = name[:-1]
    if name in ChallengeKind.__members__:
        return ChallengeKind[name]
    inferred = ChallengeKind.ACTION if has_options else ChallengeKind.RIDDLE
    logger.warning("Unknown challenge type %r, treating as %s", raw, inferred.value)
    return inferred


def decode_challenge(section: Section) -> Challenge | None:
    """Decode the single challenge object from the ACTION section."""
    data = decode_json(section, "}")
    if data is None:
        return None
    items = _as_items(data)
    if not items:
        raise PayloadParseError(f"{section.name} payload holds no challenge object")
    item = items[0]
    if not item.get("id"):
        raise PayloadParseError(f"{section.name} challenge has no id")

    puzzle = item.get("challenge") if isinstance(item.get("challenge"), dict) else {}
    action = item.get("action") if isinstance(item.get("action"), dict) else {}
    options = [str(o) for o in action.get("actionOptions", []) or []]
    kind = normalize_kind(item.get("type"), has_options=bool(options))

    text = str(action.get("text") or item.get("text") or "")
    difficulty = str(puzzle.get("difficulty", "EASY")).upper()
    reward = item.get("reward") if isinstance(item.get("reward"), dict) else {}

    return Challenge(
        id=str(item["id"]),
        kind=kind,
        text=text,
        prompt=str(puzzle.get("question") or text),
        hints=[str(h) for h in puzzle.get("hints", []) or []],
        solution=str(puzzle.get("solution", "")),
        difficulty=difficulty if difficulty in _DIFFICULTIES else "EASY",
        options=options,
        reward=Reward(
            type=str(reward.get("type", "")),
            description=str(reward.get("description", "")),
        ),
        required_evidence=[str(e) for e in item.get("requiresEvidence", []) or []],
        available_for=str(item.get("availableFor", "WATSON")),
    )


# ── Whole-buffer decoding ──────────────────────────────────


class TextValue(BaseModel):
    text: str
    closed: bool


class Decoded(BaseModel):
    """Everything decodable from one scan of the buffer."""

    title: TextValue | None = None
    narrative: TextValue | None = None
    dialogue: list[DialoguePair] | None = None
    deductions: list[Deduction] | None = None
    evidence: list[Evidence] | None = None
    challenge: Challenge | None = None


def _decode_payload(section: Section, decoder):
    try:
        return decoder(section)
    except PayloadParseError as e:
        if section.closed:
            logger.warning("Dropping %s section: %s", section.name, e)
        else:
            logger.debug("%s section not parseable yet: %s", section.name, e)
        return None


def decode_sections(result: ScanResult) -> Decoded:
    """Run each lexed section through its decoder.

    JSON failures never propagate: an open section is retried on the next
    tick, a closed one is dropped.
    """
    decoded = Decoded()
    if (section := result.get("CHAPTER")) is not None:
        decoded.title = TextValue(text=decode_text(section), closed=section.closed)
    if (section := result.get("NARRATIVE")) is not None:
        decoded.narrative = TextValue(text=decode_text(section), closed=section.closed)
    if (section := result.get("DIALOGUE")) is not None:
        decoded.dialogue = decode_dialogue(section)
    if (section := result.get("DEDUCTIONS")) is not None:
        decoded.deductions = _decode_payload(section, decode_deductions)
    if (section := result.get("EVIDENCE")) is not None:
        decoded.evidence = _decode_payload(section, decode_evidence)
    if (section := result.get("ACTION")) is not None:
        decoded.challenge = _decode_payload(section, decode_challenge)
    return decoded
