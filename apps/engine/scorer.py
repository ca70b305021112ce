"""
Candidate scoring.

Blends five signals into a single 1-99 match percentage:

    interests overlap        40  (20 when the seeker lists no interests)
    personality overlap      40  (20 when the seeker lists no traits)
    query keywords           20  (10 when the query is empty)
    inferred preferences     up to 15, only counted when present
    persona embeddings       15, only counted when both vectors exist

score = round(points / active_weight * 100), capped at 99, floored at 1.
Every function here is pure; nothing touches the database or the network.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass, field

INTEREST_WEIGHT = 40
TRAIT_WEIGHT = 40
QUERY_WEIGHT = 20
EMBEDDING_WEIGHT = 15

AI_INTEREST_BONUS = 5
AI_TRAIT_BONUS = 5
AI_VALUES_BONUS = 3
AI_LIFESTYLE_BONUS = 2

MIN_KEYWORD_LENGTH = 4
MAX_SCORE = 99
MIN_SCORE = 1

_EARTH_RADIUS_KM = 6371.0


@dataclass
class QueryPreferences:
    """Preferences inferred from a free-text search query."""

    personality_traits: list[str] = field(default_factory=list)
    interests: list[str] = field(default_factory=list)
    physical_attributes: list[str] = field(default_factory=list)
    lifestyle: list[str] = field(default_factory=list)
    values: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: dict | None) -> "QueryPreferences":
        raw = raw or {}

        def _list(key: str) -> list[str]:
            value = raw.get(key) or []
            return [str(v) for v in value if v] if isinstance(value, list) else []

        return cls(
            personality_traits=_list("personality_traits"),
            interests=_list("interests"),
            physical_attributes=_list("physical_attributes"),
            lifestyle=_list("lifestyle"),
            values=_list("values"),
        )

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "personality_traits": self.personality_traits,
            "interests": self.interests,
            "physical_attributes": self.physical_attributes,
            "lifestyle": self.lifestyle,
            "values": self.values,
        }


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _overlap_points(mine: Sequence[str], theirs: Sequence[str], weight: int) -> float:
    if not mine:
        return weight / 2
    common = [item for item in mine if item in theirs]
    return len(common) / len(mine) * weight


def _keyword_points(query: str, candidate_interests: Sequence[str], candidate_traits: Sequence[str]) -> float:
    words = query.lower().split()
    if not words:
        return QUERY_WEIGHT / 2
    haystack = " ".join([*candidate_interests, *candidate_traits]).lower()
    matching = [w for w in words if len(w) >= MIN_KEYWORD_LENGTH and w in haystack]
    return len(matching) / len(words) * QUERY_WEIGHT


def _lowered(items: Sequence[str]) -> set[str]:
    return {i.lower() for i in items if i}


def _preference_points(
    prefs: QueryPreferences, candidate_interests: Sequence[str], candidate_traits: Sequence[str]
) -> tuple[float, float]:
    """Returns (points, weight) for the inferred-preference bonus."""
    points = 0.0
    weight = 0.0
    interests = _lowered(candidate_interests)
    traits = _lowered(candidate_traits)

    if prefs.interests:
        weight += AI_INTEREST_BONUS
        if any(i.lower() in interests for i in prefs.interests):
            points += AI_INTEREST_BONUS

    if prefs.personality_traits:
        weight += AI_TRAIT_BONUS
        if any(t.lower() in traits for t in prefs.personality_traits):
            points += AI_TRAIT_BONUS

    if prefs.values:
        weight += AI_VALUES_BONUS
        if any(v.lower() in interests | traits for v in prefs.values):
            points += AI_VALUES_BONUS

    if prefs.lifestyle:
        weight += AI_LIFESTYLE_BONUS
        points += AI_LIFESTYLE_BONUS

    return points, weight


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def score(
    query: str | None,
    ai_preferences: QueryPreferences | None,
    user_interests: Sequence[str] | None,
    user_traits: Sequence[str] | None,
    candidate_interests: Sequence[str] | None,
    candidate_traits: Sequence[str] | None,
    user_embedding: Sequence[float] | None = None,
    candidate_embedding: Sequence[float] | None = None,
) -> int:
    """
    Compute the match percentage of a candidate for a seeker.

    A factor whose inputs are None is inactive and left out of the
    denominator. Empty lists are data ("lists nothing") and earn the baseline.

    Returns:
        Integer in [1, 99]
    """
    points = 0.0
    weight = 0.0

    if user_interests is not None and candidate_interests is not None:
        points += _overlap_points(user_interests, candidate_interests, INTEREST_WEIGHT)
        weight += INTEREST_WEIGHT

    if user_traits is not None and candidate_traits is not None:
        points += _overlap_points(user_traits, candidate_traits, TRAIT_WEIGHT)
        weight += TRAIT_WEIGHT

    if query is not None:
        points += _keyword_points(query, candidate_interests or [], candidate_traits or [])
        weight += QUERY_WEIGHT

    if ai_preferences is not None:
        bonus, bonus_weight = _preference_points(ai_preferences, candidate_interests or [], candidate_traits or [])
        points += bonus
        weight += bonus_weight

    if user_embedding and candidate_embedding and len(user_embedding) == len(candidate_embedding):
        similarity = cosine_similarity(user_embedding, candidate_embedding)
        points += max(0.0, similarity) * EMBEDDING_WEIGHT
        weight += EMBEDDING_WEIGHT

    if weight == 0:
        return MIN_SCORE

    return max(MIN_SCORE, min(_round_half_up(points / weight * 100), MAX_SCORE))


def haversine_km(lat1: float | None, lon1: float | None, lat2: float | None, lon2: float | None) -> float | None:
    """Return the great-circle distance in km between two coordinates, None if any is missing."""
    if lat1 is None or lon1 is None or lat2 is None or lon2 is None:
        return None
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    sin_dphi = math.sin(dphi / 2.0)
    sin_dlambda = math.sin(dlambda / 2.0)
    a = sin_dphi * sin_dphi + math.cos(phi1) * math.cos(phi2) * sin_dlambda * sin_dlambda
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(max(0.0, 1 - a)))
    return _EARTH_RADIUS_KM * c
