"""Quiz-derived personality traits and deterministic persona fallbacks."""

from apps.persona.provider import MatchNarrative, PersonalityInsight

QUIZ_OPTIONS = ("A", "B", "C", "D")

# Answer letter -> traits it signals
PERSONALITY_TRAITS_MAP: dict[str, list[str]] = {
    "A": ["adventurous", "outgoing", "spontaneous"],
    "B": ["thoughtful", "caring", "empathetic"],
    "C": ["ambitious", "organized", "driven"],
    "D": ["creative", "curious", "independent"],
}

FALLBACK_SUMMARY = "You have a unique personality!"
FALLBACK_TIPS = "You would match well with someone who shares your values."
GENERIC_MATCH_REASON = "You might be a great match"


def normalize_answer(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    upper = value.strip().upper()
    return upper if upper in QUIZ_OPTIONS else None


def traits_from_answers(answers: list[str | None]) -> list[str]:
    """Ordered, de-duplicated traits for a list of quiz answers."""
    traits: list[str] = []
    for answer in answers:
        for trait in PERSONALITY_TRAITS_MAP.get(answer or "", []):
            if trait not in traits:
                traits.append(trait)
    return traits


def fallback_insight(traits: list[str]) -> PersonalityInsight:
    return PersonalityInsight(summary=FALLBACK_SUMMARY, top_traits=traits[:3], compatibility_tips=FALLBACK_TIPS)


def fallback_narrative(shared_interests: list[str], reason: str = GENERIC_MATCH_REASON) -> MatchNarrative:
    """Deterministic highlights and openers built from what the pair has in common."""
    if shared_interests:
        highlights = [f"You both enjoy {interest}" for interest in shared_interests[:3]]
        openers = [
            f"What got you into {shared_interests[0]}?",
            "What does a perfect weekend look like for you?",
        ]
    else:
        highlights = ["Your profiles suggest an easy first conversation"]
        openers = [
            "Ask about a recent moment that made them feel alive",
            "What does a perfect weekend look like for you?",
        ]
    return MatchNarrative(summary=reason, highlights=highlights, openers=openers)
