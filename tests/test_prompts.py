"""Tests for Handlebars prompt rendering and the per-stage narrator prompts."""

import pytest

from baker_street.models import GameSession, Stage
from baker_street.pipeline import build_context
from baker_street.prompts import STAGE_INSTRUCTIONS, PromptError, build_prompt, render_prompt


# ── render_prompt ────────────────────────────────────────────


def test_render_variable():
    assert render_prompt("Chapter {{chapter}}", {"chapter": 3}) == "Chapter 3"


def test_render_missing_variable():
    assert render_prompt("At {{location}}.", {}) == "At ."


def test_render_last_helper():
    tpl = "{{#last lines 2}}{{this}};{{/last}}"
    assert render_prompt(tpl, {"lines": ["a", "b", "c"]}) == "b;c;"


def test_render_invalid_template():
    with pytest.raises(PromptError):
        render_prompt("{{> missing_partial}}", {})


# ── build_prompt ─────────────────────────────────────────────


def test_every_stage_has_instructions():
    assert set(STAGE_INSTRUCTIONS) == set(Stage)


@pytest.mark.parametrize("stage", list(Stage))
def test_build_prompt_includes_section_format(stage):
    prompt = build_prompt(stage, build_context(GameSession(stage=stage)))
    assert "###NARRATIVE###" in prompt
    assert "##SPEAKER##" in prompt
    assert "Location: 221B Baker Street" in prompt


def test_build_prompt_development_chapter():
    context = build_context(GameSession(stage=Stage.DEVELOPMENT, chapter=5))
    prompt = build_prompt(Stage.DEVELOPMENT, context)
    assert "(chapter 5)" in prompt
    assert "Chapter: 5" in prompt


def test_build_prompt_context_block():
    context = {
        "location": "The Diogenes Club",
        "chapter": 4,
        "companion_joined": True,
        "selected_action": "Follow the cab",
        "selected_solution": None,
        "evidence": [{"id": "ev-1", "description": "A <torn> letter"}],
        "recent_dialogue": [{"speaker": "HOLMES", "text": "Quite so."}],
        "recent_deductions": [{"text": "The visitor smoked."}],
    }
    prompt = build_prompt(Stage.DEVELOPMENT, context)
    assert "Location: The Diogenes Club" in prompt
    assert "Companion joined: yes" in prompt
    assert "Selected Action: Follow the cab" in prompt
    assert "Selected Solution: None" in prompt
    assert "- [ev-1] A <torn> letter" in prompt
    assert "HOLMES: Quite so." in prompt
    assert "- The visitor smoked." in prompt


def test_build_prompt_without_evidence():
    prompt = build_prompt(Stage.INTRODUCTION, build_context(GameSession()))
    assert "Available Evidence:\nNone" in prompt
    assert "Companion joined: no" in prompt
