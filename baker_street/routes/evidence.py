"""On-demand evidence report and Holmes analysis endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Request

from baker_street import evidence as evidence_lookup
from baker_street.llm import TransportError
from baker_street.models import Challenge, Evidence
from baker_street.pipeline import CaseEngine
from baker_street.pipeline.decoders import PayloadParseError

from .session import get_engine

router = APIRouter()


def _find_evidence(engine: CaseEngine, evidence_id: str) -> Evidence:
    evidence = engine.session.evidence.get(evidence_id)
    if evidence is None:
        raise HTTPException(404, "Evidence not found")
    return evidence


def _challenge_for(engine: CaseEngine, evidence_id: str) -> Challenge | None:
    """The newest challenge requiring this evidence (ids matched loosely)."""
    for challenge in reversed(list(engine.session.challenges.values())):
        if any(req and req in evidence_id for req in challenge.required_evidence):
            return challenge
    return None


@router.get("/evidence/{evidence_id}")
async def get_evidence_report(
    evidence_id: str,
    request: Request,
    engine: CaseEngine = Depends(get_engine),
):
    """Generate the clerk's report for a discovered piece of evidence."""
    evidence = _find_evidence(engine, evidence_id)
    challenge = _challenge_for(engine, evidence_id)
    try:
        details = await evidence_lookup.lookup_evidence(
            request.app.state.llm,
            evidence_id,
            kind=challenge.kind.value if challenge else "ACTION",
            description=evidence.description or evidence.title,
            hints=challenge.hints if challenge else [],
            solution=challenge.solution if challenge else "",
        )
    except (TransportError, PayloadParseError) as e:
        raise HTTPException(502, str(e))
    return details.model_dump()


@router.get("/evidence/{evidence_id}/analysis")
async def get_evidence_analysis(
    evidence_id: str,
    request: Request,
    engine: CaseEngine = Depends(get_engine),
):
    """Holmes's analysis of a discovered piece of evidence."""
    evidence = _find_evidence(engine, evidence_id)
    challenge = _challenge_for(engine, evidence_id)
    try:
        analysis = await evidence_lookup.analyse_evidence(
            request.app.state.llm,
            evidence_id,
            evidence.content or evidence.description,
            solution=challenge.solution if challenge else "",
        )
    except TransportError as e:
        raise HTTPException(502, str(e))
    return analysis.model_dump()
