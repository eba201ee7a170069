from __future__ import annotations

from agora_agents.deliberation.methodology import METHODOLOGIES, language_instruction, methodology_context


def test_language_falls_back_to_english() -> None:
    assert "Respond in English" in language_instruction("en")
    assert "Rispondi in italiano" in language_instruction("it")
    assert language_instruction("fr") == language_instruction("en")


def test_every_methodology_has_a_fragment_per_locale() -> None:
    for name in METHODOLOGIES:
        english = methodology_context(name, 1, 3, "en")
        italian = methodology_context(name, 1, 3, "it")
        assert english
        assert italian
        assert english != italian


def test_unknown_methodology_adds_nothing() -> None:
    assert methodology_context("group_chat", 1, 3) == ""
