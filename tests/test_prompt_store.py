from __future__ import annotations

import pytest

from cognito.services.prompt_store import clear_prompt_cache, render_prompt


def test_render_prompt_substitutes_template_values():
    prompt = render_prompt(
        "planner.system_prompt",
        tools='["web_search", "note.save"]',
        feedback_instruction="",
        task="Compare two frameworks",
    )
    assert '["web_search", "note.save"]' in prompt
    assert 'User Task: "Compare two frameworks"' in prompt
    assert "$context.step_1_result" in prompt


def test_render_prompt_joins_list_entries_with_newlines():
    prompt = render_prompt("prompt_optimizer.prompt", prompt="make it better")
    assert prompt.startswith("Optimize the following prompt")
    assert '\nOriginal prompt: "make it better"\n' in prompt


def test_render_prompt_raises_for_unknown_key():
    with pytest.raises(KeyError):
        render_prompt("missing.prompt.key")


def test_render_prompt_names_missing_value():
    with pytest.raises(KeyError, match="feedback"):
        render_prompt("planner.feedback_instruction")


def test_clear_prompt_cache_forces_reload():
    first = render_prompt("chat.citation_instruction")
    clear_prompt_cache()
    assert render_prompt("chat.citation_instruction") == first
