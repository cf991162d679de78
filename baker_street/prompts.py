"""Handlebars prompt rendering for the narrator stream.

Each stage has its own instructions; all of them share the section format
the marker lexer understands and the same context block.
"""

from collections.abc import Callable
from typing import Any

import pybars

from baker_street.models import Stage


_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_last(this, options, items, count):
    """{{#last array N}}...{{/last}}: iterate over the last N items."""
    result = []
    for item in list(items or [])[-int(count):]:
        result.extend(options["fn"](item))
    return result


_HELPERS: dict[str, Callable] = {
    "last": _helper_last,
}


SYSTEM_PROMPT = (
    "You are a Victorian-era narrator crafting a Sherlock Holmes mystery. "
    "Follow the section formatting rules exactly. Never duplicate section "
    "markers and keep their order."
)

STAGE_INSTRUCTIONS: dict[Stage, str] = {
    Stage.INTRODUCTION: """Set the Victorian noir atmosphere for our Sherlock Holmes case.
Required sections: NARRATIVE only
Include:
- A rich description of London's atmosphere, the time of day and the weather
- Recent events leading to the case
- The initial mystery or crime""",

    Stage.REACTION: """Write Holmes's initial reaction to the case in his characteristic style.
Required sections: NARRATIVE, DIALOGUE only
Include:
- His first deductions from the initial information
- A brief exchange with Watson, including Watson's medical or practical insights
- His immediate thoughts on the case's peculiarities""",

    Stage.DEVELOPMENT: """Develop the story with new revelations (chapter {{chapter}}).
Required sections: CHAPTER, NARRATIVE, DIALOGUE, DEDUCTIONS, EVIDENCE, ACTION
Include:
- New information, witness accounts and atmosphere
- Evidence that is text-based and decodable through words, not pictures
- Exactly ONE interactive element: an ACTION choice for Watson (about half the
  time) or one RIDDLE, PUZZLE, MEDICAL, OBSERVATION, LOGIC or PHYSICAL challenge
- A challenge that is unique, fits the story, advances it and carries subtle clues""",

    Stage.CONCLUSION: """Write the dramatic conclusion of the case.
Required sections: NARRATIVE, DIALOGUE, DEDUCTIONS only
Include:
- Holmes's complete revelation of the case and Watson's contributions
- How the evidence connects
- The culprit's capture""",

    Stage.EPILOGUE: """Write the epilogue scene.
Required sections: NARRATIVE, DIALOGUE only
Include:
- The wrap-up of loose ends and the return to Baker Street
- Holmes's final comments and Watson's closing thoughts""",
}

SECTION_FORMAT = """Your response must follow these exact rules:

1. Use these section markers EXACTLY ONCE, in this order, and only when the section has content:
   ###CHAPTER###
   ###NARRATIVE###
   ###DIALOGUE###
   ###DEDUCTIONS###
   ###EVIDENCE###
   ###ACTION###

2. Section formats:
   CHAPTER: a single-line chapter title
   NARRATIVE: one continuous paragraph
   DIALOGUE: entries on one line, no JSON:
     ##SPEAKER## [name] ##TEXT## [dialogue] ##SPEAKER## [name] ##TEXT## [dialogue]
   DEDUCTIONS: JSON array of {"id", "observation", "conclusion", "description", "author"}
   EVIDENCE: JSON array of {"id", "type", "title", "description", "content"}
   ACTION: one JSON challenge object:
     {"id": "unique_id", "text": "Description", "type": "ACTION|RIDDLE|PUZZLE|MEDICAL|OBSERVATION|LOGIC|PHYSICAL",
      "challenge": {"question": "...", "hints": ["..."], "solution": "one word", "difficulty": "EASY|MEDIUM|HARD"},
      "action": {"text": "...", "actionOptions": ["Option1", "Option2"]},
      "requiresEvidence": ["evidence_ids"], "availableFor": "WATSON",
      "reward": {"type": "EVIDENCE|DEDUCTION|LOCATION", "description": "..."}}
     ("challenge" for every type except ACTION, "action" for ACTION only)

3. No repeated content, no extra markers, valid JSON in DEDUCTIONS, EVIDENCE and ACTION."""

CONTEXT_TEMPLATE = """{{{instructions}}}

{{{section_format}}}

Current Context:
Location: {{{location}}}
Chapter: {{chapter}}
Companion joined: {{#if companion_joined}}yes{{else}}no{{/if}}
Selected Action: {{#if selected_action}}{{{selected_action}}}{{else}}None{{/if}}
Selected Solution: {{#if selected_solution}}{{{selected_solution}}}{{else}}None{{/if}}
Available Evidence:
{{#each evidence}}- [{{{id}}}] {{{description}}}
{{else}}None
{{/each}}
Recent Dialogue:
{{#last recent_dialogue 8}}{{{speaker}}}: {{{text}}}
{{/last}}
Recent Deductions:
{{#last recent_deductions 5}}- {{{text}}}
{{/last}}"""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return compiled(context, helpers=_HELPERS)
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def build_prompt(stage: Stage, context: dict[str, Any]) -> str:
    """Render the full narrator prompt for one stream of ``stage``."""
    instructions = render_prompt(STAGE_INSTRUCTIONS[stage], context)
    return render_prompt(CONTEXT_TEMPLATE, {
        **context,
        "instructions": instructions,
        "section_format": SECTION_FORMAT,
    })
