"""Room methodology and response-language prompt fragments.

Rooms pick a methodology; each agent's system prompt gets the matching
fragment for the current round, plus an instruction fixing the response
language to the session locale.
"""

from __future__ import annotations

from typing import Callable, Dict

DEFAULT_LOCALE = "en"

LANGUAGE_INSTRUCTIONS: Dict[str, str] = {
    "en": "IMPORTANT: Respond in English. All your analysis, insights, and conclusions must be written in English.",
    "it": (
        "IMPORTANTE: Rispondi in italiano. Tutte le tue analisi, intuizioni e conclusioni "
        "devono essere scritte in italiano."
    ),
}


def language_instruction(locale: str) -> str:
    return LANGUAGE_INSTRUCTIONS.get(locale, LANGUAGE_INSTRUCTIONS[DEFAULT_LOCALE])


def _analytical_structured(round_number: int, max_rounds: int, italian: bool) -> str:
    if italian:
        phase = (
            "Definizione e scomposizione del problema"
            if round_number <= 2
            else "Analisi e raccolta dati" if round_number <= 4 else "Sintesi e raccomandazioni"
        )
        return (
            "Segui l'approccio strutturato McKinsey:\n"
            "- Usa il principio MECE (mutuamente esclusivo, collettivamente esaustivo)\n"
            "- Scomponi il problema in componenti logiche\n"
            "- Costruisci una sintesi usando il Principio della Piramide\n"
            f"Fase corrente: {phase}"
        )
    phase = (
        "Problem definition and decomposition"
        if round_number <= 2
        else "Analysis and data gathering" if round_number <= 4 else "Synthesis and recommendations"
    )
    return (
        "Follow the McKinsey structured approach:\n"
        "- Use MECE principle (mutually exclusive, collectively exhaustive)\n"
        "- Break down the problem into logical components\n"
        "- Build up to a synthesis using the Pyramid Principle\n"
        f"Current phase: {phase}"
    )


def _strategic_executive(round_number: int, max_rounds: int, italian: bool) -> str:
    if italian:
        focus = "Analisi delle prospettive" if round_number <= 2 else "Allineamento strategico e pianificazione azioni"
        return (
            "Applica il pensiero Balanced Scorecard:\n"
            "- Considera le prospettive finanziaria, cliente, processi interni e apprendimento/crescita\n"
            "- Allinea con gli obiettivi strategici a lungo termine\n"
            "- Definisci KPI misurabili dove rilevante\n"
            f"Area di focus: {focus}"
        )
    focus = "Perspective analysis" if round_number <= 2 else "Strategic alignment and action planning"
    return (
        "Apply Balanced Scorecard thinking:\n"
        "- Consider financial, customer, internal process, and learning/growth perspectives\n"
        "- Align with long-term strategic objectives\n"
        "- Define measurable KPIs where relevant\n"
        f"Focus area: {focus}"
    )


def _creative_brainstorming(round_number: int, max_rounds: int, italian: bool) -> str:
    divergent = round_number <= max_rounds / 2
    if italian:
        mode = (
            "Ideazione divergente - genera molte idee"
            if divergent
            else "Sintesi convergente - affina e combina le migliori idee"
        )
        return (
            "Impegnati nel Design Thinking:\n"
            "- Prima pensa in modo divergente, poi convergi\n"
            '- Costruisci sulle idee degli altri ("Sì, e...")\n'
            "- Sfida le assunzioni in modo creativo\n"
            f"Modalità: {mode}"
        )
    mode = "Divergent ideation - generate many ideas" if divergent else "Convergent synthesis - refine and combine best ideas"
    return (
        "Engage in Design Thinking:\n"
        "- Think divergently first, then converge\n"
        '- Build on others\' ideas ("Yes, and...")\n'
        "- Challenge assumptions creatively\n"
        f"Mode: {mode}"
    )


def _lean_iterative(round_number: int, max_rounds: int, italian: bool) -> str:
    if italian:
        phase = (
            "Formazione delle ipotesi"
            if round_number == 1
            else "Design MVP/esperimento" if round_number <= 3 else "Misurazione e apprendimento"
        )
        return (
            "Applica la metodologia Lean Startup:\n"
            "- Concentrati sui cicli Build-Measure-Learn\n"
            "- Proponi ipotesi testabili\n"
            "- Pensa in termini di MVP ed esperimenti\n"
            f"Fase: {phase}"
        )
    phase = (
        "Hypothesis formation"
        if round_number == 1
        else "MVP/experiment design" if round_number <= 3 else "Measurement and learning"
    )
    return (
        "Apply Lean Startup methodology:\n"
        "- Focus on Build-Measure-Learn cycles\n"
        "- Propose testable hypotheses\n"
        "- Think in terms of MVP and experiments\n"
        f"Phase: {phase}"
    )


def _parallel_ensemble(round_number: int, max_rounds: int, italian: bool) -> str:
    if italian:
        return (
            "Fornisci la tua analisi esperta indipendente:\n"
            "- Concentrati sulla tua prospettiva unica\n"
            "- Non limitarti ad essere d'accordo con gli altri\n"
            "- Offri intuizioni distinte che possono essere sintetizzate successivamente"
        )
    return (
        "Provide your independent expert analysis:\n"
        "- Focus on your unique perspective\n"
        "- Don't simply agree with others\n"
        "- Offer distinct insights that can be synthesized later"
    )


METHODOLOGIES: Dict[str, Callable[[int, int, bool], str]] = {
    "analytical_structured": _analytical_structured,
    "strategic_executive": _strategic_executive,
    "creative_brainstorming": _creative_brainstorming,
    "lean_iterative": _lean_iterative,
    "parallel_ensemble": _parallel_ensemble,
}


def methodology_context(methodology: str, round_number: int, max_rounds: int, locale: str = DEFAULT_LOCALE) -> str:
    """Prompt fragment for ``methodology`` at this round; empty for unknown methodologies."""

    builder = METHODOLOGIES.get(methodology)
    if builder is None:
        return ""
    return builder(round_number, max_rounds, locale == "it")
