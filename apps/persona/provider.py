"""AI persona enrichment: query parsing, match narratives, embeddings, personality insights."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from apps.engine.scorer import QueryPreferences
from core.config import Settings, settings
from core.errors import EnrichmentUnavailable

logger = logging.getLogger(__name__)

# Prompt templates
PARSE_QUERY_PROMPT = """
You are an AI dating app assistant. Parse the following natural language search query into
structured preferences and filters.

Search Query: "{query}"

Return a JSON object with this exact structure:
{{
  "preferences": {{
    "personality_traits": [], "interests": [], "physical_attributes": [], "lifestyle": [], "values": []
  }},
  "filters": {{
    "min_age": number or null, "max_age": number or null,
    "min_height": number in cm or null, "max_height": number in cm or null,
    "city": "city name" or null,
    "relationship_goal": "serious/casual/long-term/friendship" or null
  }},
  "search_intent": "A brief summary of what the user is looking for"
}}

Examples:
- "tall, loves hiking, 25-30, Delhi" -> min_age: 25, max_age: 30, city: "Delhi", interests: ["hiking"]
- "funny girl who likes travel and books" -> personality_traits: ["funny"], interests: ["travel", "books"]

Only return the JSON object.
"""

NARRATIVE_PROMPT = """
You are an emotionally intelligent dating coach. Explain why two people (User A and User B) could be
a meaningful match.

User A Persona:
{seeker}

User B Persona:
{candidate}

They have a compatibility score of {score}%.

Return JSON with keys summary (2 sentences max), highlights (array of 2-3 short points describing
alignment) and suggested_openers (array of 2 gentle conversation starters tied to their common ground).
"""

REASON_PROMPT = """
You are a dating app matchmaker. Explain why these two people are a {score}% match in one short,
friendly sentence (max 15 words).

User 1 Profile: {seeker}

User 2 Profile: {candidate}

Return only the match reason.
"""

PERSONALITY_PROMPT = """
You are a relationship psychologist. Based on these personality quiz answers (A-D) and the person's
own words, describe their personality.

Answers: {answers}
About them: {about}

Return JSON with keys summary (2-3 sentences), top_traits (array of 3 single-word traits) and
compatibility_tips (one sentence on who they would match well with).
"""

SELFIE_AGE_PROMPT = """
Estimate the age of the person in this selfie. If there is no single clearly visible face, use null.
Return JSON: {"estimated_age": number or null}
"""


@dataclass
class ParsedQuery:
    preferences: QueryPreferences = field(default_factory=QueryPreferences)
    filters: dict[str, Any] = field(default_factory=dict)
    intent: str = ""


@dataclass
class MatchNarrative:
    summary: str
    highlights: list[str] = field(default_factory=list)
    openers: list[str] = field(default_factory=list)


@dataclass
class PersonalityInsight:
    summary: str
    top_traits: list[str] = field(default_factory=list)
    compatibility_tips: str = ""


class PersonaEnricher:
    """
    Optional AI capability behind one interface.

    Each method either returns a result or raises EnrichmentUnavailable;
    callers own the fallback.
    """

    available: bool = False

    async def parse_query(self, query: str) -> ParsedQuery:
        raise EnrichmentUnavailable("parse_query")

    async def narrate(self, seeker: str, candidate: str, score: int) -> MatchNarrative:
        raise EnrichmentUnavailable("narrate")

    async def explain_match(self, seeker: str, candidate: str, score: int) -> str:
        raise EnrichmentUnavailable("explain_match")

    async def embed(self, text: str) -> list[float]:
        raise EnrichmentUnavailable("embed")

    async def analyze_personality(self, answers: list[str], about: str) -> PersonalityInsight:
        raise EnrichmentUnavailable("analyze_personality")

    async def check_selfie_age(self, image_url: str) -> int | None:
        raise EnrichmentUnavailable("check_selfie_age")

    async def close(self) -> None:
        return None


class UnavailableEnricher(PersonaEnricher):
    """Used when no AI provider is configured; every call raises EnrichmentUnavailable."""


class OpenAIEnricher(PersonaEnricher):
    """PersonaEnricher backed by the OpenAI REST API."""

    available = True

    def __init__(self, config: Settings) -> None:
        self.model = config.ai_model
        self.embedding_model = config.embedding_model
        self.client = httpx.AsyncClient(
            base_url=config.openai_base_url,
            headers={"Authorization": f"Bearer {config.openai_api_key}"},
            timeout=httpx.Timeout(config.ai_timeout_seconds),
        )

    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self.client.post(path, json=body)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"OpenAI request to {path} failed: {e}")
            raise EnrichmentUnavailable(str(e)) from e

    async def _chat(self, content: Any, temperature: float, json_mode: bool = True, max_tokens: int | None = None) -> str:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": content}],
            "temperature": temperature,
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}
        if max_tokens:
            body["max_tokens"] = max_tokens

        data = await self._post("/chat/completions", body)
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise EnrichmentUnavailable("Malformed completion") from e
        if not text:
            raise EnrichmentUnavailable("Empty completion")
        return str(text).strip()

    async def _chat_json(self, content: Any, temperature: float) -> dict[str, Any]:
        text = await self._chat(content, temperature)
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as e:
            raise EnrichmentUnavailable("Completion is not JSON") from e
        if not isinstance(parsed, dict):
            raise EnrichmentUnavailable("Completion is not a JSON object")
        return parsed

    async def parse_query(self, query: str) -> ParsedQuery:
        parsed = await self._chat_json(PARSE_QUERY_PROMPT.format(query=query), temperature=0.3)
        filters = parsed.get("filters") if isinstance(parsed.get("filters"), dict) else {}
        return ParsedQuery(
            preferences=QueryPreferences.from_dict(parsed.get("preferences")),
            filters={k: v for k, v in (filters or {}).items() if v is not None},
            intent=str(parsed.get("search_intent") or query),
        )

    async def narrate(self, seeker: str, candidate: str, score: int) -> MatchNarrative:
        parsed = await self._chat_json(
            NARRATIVE_PROMPT.format(seeker=seeker, candidate=candidate, score=score), temperature=0.6
        )
        summary = str(parsed.get("summary") or "").strip()
        if not summary:
            raise EnrichmentUnavailable("Narrative without summary")
        return MatchNarrative(
            summary=summary,
            highlights=[str(h) for h in parsed.get("highlights") or []][:3],
            openers=[str(o) for o in parsed.get("suggested_openers") or []][:2],
        )

    async def explain_match(self, seeker: str, candidate: str, score: int) -> str:
        return await self._chat(
            REASON_PROMPT.format(seeker=seeker, candidate=candidate, score=score),
            temperature=0.7,
            json_mode=False,
            max_tokens=50,
        )

    async def embed(self, text: str) -> list[float]:
        if not text.strip():
            return []
        data = await self._post("/embeddings", {"model": self.embedding_model, "input": text[:8000]})
        try:
            return [float(x) for x in data["data"][0]["embedding"]]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise EnrichmentUnavailable("Malformed embedding response") from e

    async def analyze_personality(self, answers: list[str], about: str) -> PersonalityInsight:
        parsed = await self._chat_json(
            PERSONALITY_PROMPT.format(answers=", ".join(answers) or "none", about=about or "n/a"), temperature=0.7
        )
        return PersonalityInsight(
            summary=str(parsed.get("summary") or "").strip(),
            top_traits=[str(t) for t in parsed.get("top_traits") or []][:3],
            compatibility_tips=str(parsed.get("compatibility_tips") or "").strip(),
        )

    async def check_selfie_age(self, image_url: str) -> int | None:
        content = [
            {"type": "text", "text": SELFIE_AGE_PROMPT},
            {"type": "image_url", "image_url": {"url": image_url}},
        ]
        parsed = await self._chat_json(content, temperature=0.0)
        age = parsed.get("estimated_age")
        return int(age) if isinstance(age, (int, float)) else None

    async def close(self) -> None:
        await self.client.aclose()


def build_enricher(config: Settings) -> PersonaEnricher:
    if config.ai_enabled:
        logger.info(f"AI enrichment enabled (model={config.ai_model})")
        return OpenAIEnricher(config)
    logger.info("AI enrichment disabled, using deterministic fallbacks")
    return UnavailableEnricher()


# Resolved once per process
enricher = build_enricher(settings)


def get_enricher() -> PersonaEnricher:
    """FastAPI dependency returning the process-wide enricher."""
    return enricher
