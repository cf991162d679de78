"""On-demand evidence reports and Holmes's analysis of them.

Both are single non-streaming LLM calls made outside the narrator stream:

  lookup_evidence  : a police clerk's report for a piece of evidence, written
                      so that careful reading leads to the challenge solution.
                      The reply is a JSON object (metadata, description,
                      content, content-type, hints).
  analyse_evidence : Holmes's free-text deductions about that content.
"""

import json
import logging

from pydantic import BaseModel, Field

from baker_street.llm import LLM
from baker_street.pipeline.decoders import PayloadParseError, strip_fences
from baker_street.prompts import render_prompt

logger = logging.getLogger(__name__)


class EvidenceDetails(BaseModel):
    id: str
    metadata: dict[str, str] = Field(default_factory=dict)
    description: str = ""
    content: str = ""
    content_type: str = ""
    hints: list[str] = Field(default_factory=list)


class EvidenceAnalysis(BaseModel):
    id: str
    analysis: str


_KIND_GUIDANCE: dict[str, str] = {
    "RIDDLE": """Create a cryptic riddle or poem that, when solved correctly, leads to the solution: "{{{solution}}}".
Requirements:
- Victorian-era language and references
- Subtle hints or wordplay pointing to the solution
- Challenging but solvable with careful thought
- Text-based clues only""",
    "PUZZLE": """Create a puzzle or coded message that, when decoded, reveals the solution: "{{{solution}}}".
Requirements:
- A period-appropriate cipher or code (substitution cipher, number code)
- A subtle hint about the decoding method
- Solvable with logical deduction
- Text-based elements only""",
    "MEDICAL": """Create a medical report or autopsy finding containing clues to the solution: "{{{solution}}}".
Requirements:
- Victorian medical terminology
- Relevant symptoms, observations or test results
- Scientifically plausible for the era""",
    "LOGIC": """Create a logical puzzle or timeline that, when analysed, reveals the solution: "{{{solution}}}".
Requirements:
- A series of connected events or statements
- Temporal or causal relationships
- A solution reachable through reasoning alone""",
    "ACTION": """Create a detailed scene description or witness statement pointing to the solution: "{{{solution}}}".
Requirements:
- Relevant environmental details
- Subtle behavioural clues a detective would notice
- Engaging and period-appropriate""",
}

EVIDENCE_PROMPT = """You are a Victorian-era police evidence clerk writing detailed evidence reports.

Current Case Information:
Evidence: {{{evidence_id}}}
Type: {{{kind}}}
Description: {{{description}}}
Hints: {{#each hints}}{{{this}}}; {{/each}}
Required Solution: {{{solution}}}

Write evidence that leads an investigator to the solution through careful analysis.

{{{guidance}}}

Return only a JSON object:
{
  "metadata": {"date": "...", "location": "...", "caseNumber": "...", "evidenceType": "..."},
  "description": "Brief 10-20 word summary of the evidence",
  "content": "The main evidence text that leads to the solution",
  "content-type": "{{{kind}}}",
  "hints": ["2-3 subtle hints that do not give the solution away"]
}"""

ANALYSIS_PROMPT = """You are Sherlock Holmes analysing evidence in a case. Give insightful,
deductive observations in your characteristic Victorian style.

Analyse this evidence keeping in mind the solution: {{{solution}}}

Evidence {{{evidence_id}}}:
{{{content}}}

Highlight your key deductions and observations."""


def _guidance(kind: str) -> str:
    name = kind.strip().upper()
    if name.endswith("S") and name[:-1] in _KIND_GUIDANCE:
        name = name[:-1]
    return _KIND_GUIDANCE.get(name, _KIND_GUIDANCE["ACTION"])


def _parse_report(text: str) -> dict:
    try:
        data = json.loads(strip_fences(text))
    except json.JSONDecodeError as e:
        raise PayloadParseError(f"Evidence report is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise PayloadParseError("Evidence report is not a JSON object")
    return data


async def lookup_evidence(
    llm: LLM,
    evidence_id: str,
    kind: str = "ACTION",
    description: str = "",
    hints: list[str] | None = None,
    solution: str = "",
) -> EvidenceDetails:
    context = {
        "evidence_id": evidence_id,
        "kind": kind,
        "description": description,
        "hints": hints or [],
        "solution": solution,
    }
    context["guidance"] = render_prompt(_guidance(kind), context)
    text = await llm("evidence", render_prompt(EVIDENCE_PROMPT, context))
    data = _parse_report(text)

    metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
    details = EvidenceDetails(
        id=evidence_id,
        metadata={str(k): str(v) for k, v in metadata.items()},
        description=str(data.get("description", "")),
        content=str(data.get("content", "")),
        content_type=str(data.get("content-type") or data.get("content_type") or kind),
        hints=[str(h) for h in data.get("hints", []) or []],
    )
    logger.info("Evidence report for %s (%d chars)", evidence_id, len(details.content))
    return details


async def analyse_evidence(llm: LLM, evidence_id: str, content: str, solution: str = "") -> EvidenceAnalysis:
    prompt = render_prompt(ANALYSIS_PROMPT, {
        "evidence_id": evidence_id,
        "content": content,
        "solution": solution,
    })
    text = await llm("analysis", prompt)
    return EvidenceAnalysis(id=evidence_id, analysis=text.strip())
