"""Top-level marker lexer for the narrator stream.

The stream is a run of sections, each opened by a marker of the form
``###NAME###``. A section's content runs from just after its marker to the
next top-level marker, or to the end of the buffer when it is the most
recently opened section (the section is then still open).

A marker name that occurs twice in one buffer makes the buffer malformed:
scanning stops at the repeat, earlier sections are kept (the section before
the repeat is closed by it) and the caller is expected to close the stream
early.
"""

import logging
import re

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

MARKER_NAMES = ("CHAPTER", "NARRATIVE", "DIALOGUE", "DEDUCTIONS", "EVIDENCE", "ACTION")

# Spellings seen in generated output
MARKER_ALIASES = {"ACTIONS": "ACTION"}

_MARKER_RE = re.compile(r"###([A-Z_]+)###")

# Trailing text that may still grow into a marker: "#", "##", "###NARR", "###NARRATIVE##"
_PARTIAL_MARKER_RE = re.compile(r"#{1,3}(?:[A-Z_]+#{0,2})?$")


class Section(BaseModel):
    name: str
    content: str
    closed: bool


class ScanResult(BaseModel):
    sections: dict[str, Section] = Field(default_factory=dict)
    malformed: bool = False

    def get(self, name: str) -> Section | None:
        return self.sections.get(name)


def canonical_marker(name: str) -> str | None:
    """Return the canonical section name for a raw marker, or None if unknown."""
    name = MARKER_ALIASES.get(name, name)
    return name if name in MARKER_NAMES else None


def withhold_partial_marker(text: str) -> str:
    """Drop a trailing fragment that could still become a marker."""
    return _PARTIAL_MARKER_RE.sub("", text)


def scan(buffer: str, final: bool = False) -> ScanResult:
    """Split the cumulative buffer into sections.

    ``final`` marks the buffer as complete (end-of-stream): the last
    section is closed and nothing is withheld.
    """
    result = ScanResult()
    matches = list(_MARKER_RE.finditer(buffer))
    seen: set[str] = set()

    for i, match in enumerate(matches):
        raw = match.group(1)
        name = canonical_marker(raw)
        if name is None:
            # Unknown markers still bound the previous section
            logger.debug("Ignoring unknown section marker %r", raw)
            continue
        if name in seen:
            logger.warning("Section marker %s repeated; stopping at offset %d", name, match.start())
            result.malformed = True
            break
        seen.add(name)

        start = match.end()
        if i + 1 < len(matches):
            content = buffer[start:matches[i + 1].start()]
            closed = True
        else:
            content = buffer[start:]
            closed = final
            if not closed:
                content = withhold_partial_marker(content)
        result.sections[name] = Section(name=name, content=content, closed=closed)

    return result
