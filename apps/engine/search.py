"""Candidate search: retrieval, scoring, ranking and on/off-grid partition."""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError
from sqlalchemy import exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from apps.engine.credits import CreditLedger
from apps.engine.safety import block_between, is_blocked
from apps.engine.scorer import QueryPreferences, haversine_km, score
from apps.persona.provider import MatchNarrative, ParsedQuery, PersonaEnricher
from apps.persona.traits import GENERIC_MATCH_REASON, fallback_narrative
from core.clock import calculate_age, utcnow, years_ago
from core.config import MatchPolicy, settings
from core.db import transaction
from core.errors import NotFoundError, ValidationError
from core.metrics import ai_search_charges_total, enrichment_fallbacks_total, search_candidates, searches_total
from models.like import Like
from models.profile import Profile
from models.search import SearchHistory
from models.user import PrivacySettings, User

logger = logging.getLogger(__name__)

INFERABLE_FILTERS = ("min_age", "max_age", "min_height", "max_height", "city", "relationship_goal")


class SearchFilters(BaseModel):
    """Explicit search filters. Accepts snake_case and the mobile client's camelCase."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    min_age: int | None = Field(None, alias="minAge", ge=18, le=120)
    max_age: int | None = Field(None, alias="maxAge", ge=18, le=120)
    min_height: int | None = Field(None, alias="minHeight", ge=100, le=250)
    max_height: int | None = Field(None, alias="maxHeight", ge=100, le=250)
    distance_km: float | None = Field(None, alias="distanceKm", gt=0)
    city: str | None = None
    smoker: bool | None = None
    drinker: str | None = None
    relationship_goal: str | None = Field(None, alias="relationshipGoal")

    def merged_with(self, inferred: dict[str, Any]) -> "SearchFilters":
        """Fill unset fields from inferred ones; explicit values always win."""
        merged = self.model_dump()
        for key in INFERABLE_FILTERS:
            if merged.get(key) is None and inferred.get(key) not in (None, ""):
                merged[key] = inferred[key]
        try:
            return SearchFilters.model_validate(merged)
        except PydanticValidationError:
            logger.warning(f"Ignoring unusable inferred filters: {inferred}")
            return self


@dataclass
class Candidate:
    user: User
    profile: Profile | None
    privacy: PrivacySettings | None
    score: int
    distance_km: float | None
    boosted: bool


@dataclass
class SearchResult:
    on_grid: list[dict[str, Any]] = field(default_factory=list)
    off_grid: list[dict[str, Any]] = field(default_factory=list)
    ai_context: dict[str, Any] | None = None
    credit_balance: int = 0
    charged: bool = False


def persona_summary(user: User, profile: Profile | None, today: Any = None) -> str:
    """Plain-text persona used as narrative input."""
    parts = [f"Name: {user.name}", f"Age: {calculate_age(user.date_of_birth, today)}", f"City: {user.city}"]
    if profile is not None:
        if profile.interests:
            parts.append(f"Interests: {', '.join(profile.interests)}")
        if profile.personality_traits:
            parts.append(f"Personality: {', '.join(profile.personality_traits)}")
        if profile.relationship_goal:
            parts.append(f"Looking for: {profile.relationship_goal}")
        for text in (profile.bio, profile.self_summary, profile.ideal_partner_prompt):
            if text:
                parts.append(text)
    return "\n".join(parts)


def candidate_card(
    user: User,
    profile: Profile | None,
    privacy: PrivacySettings | None,
    match_percentage: int | None,
    distance_km: float | None,
    now: datetime,
) -> dict[str, Any]:
    """Public view of a candidate, honoring their privacy switches."""
    hide_city = privacy is not None and privacy.hide_city
    hide_distance = privacy is not None and privacy.hide_distance
    return {
        "id": user.id,
        "name": user.name,
        "gender": user.gender,
        "age": calculate_age(user.date_of_birth, now.date()),
        "city": None if hide_city else user.city,
        "distance_km": None if hide_distance or distance_km is None else round(distance_km, 1),
        "is_verified": user.is_verified,
        "boost_active": user.boost_active(now),
        "height": profile.height if profile else None,
        "interests": list(profile.interests or []) if profile else [],
        "personality_traits": list(profile.personality_traits or []) if profile else [],
        "bio": profile.bio if profile else None,
        "prompts": [p for p in (profile.prompt1, profile.prompt2, profile.prompt3) if p] if profile else [],
        "smoker": profile.smoker if profile else None,
        "drinker": profile.drinker if profile else None,
        "relationship_goal": profile.relationship_goal if profile else None,
        "match_percentage": match_percentage,
    }


class MatchEngine:
    """Builds, scores and ranks the candidate set for one seeker."""

    def __init__(
        self,
        db: AsyncSession,
        policy: MatchPolicy,
        enricher: PersonaEnricher,
        rng: random.Random | None = None,
        timeout: float | None = None,
    ) -> None:
        self.db = db
        self.policy = policy
        self.enricher = enricher
        self.rng = rng or random.Random()
        self.timeout = timeout if timeout is not None else settings.ai_timeout_seconds
        self.ledger = CreditLedger(db)

    async def _load_seeker(self, user_id: int) -> tuple[User, Profile | None]:
        row = (
            await self.db.execute(
                select(User, Profile).outerjoin(Profile, Profile.user_id == User.id).where(User.id == user_id)
            )
        ).first()
        if row is None:
            raise NotFoundError("User not found")
        return row[0], row[1]

    async def _parse_query(self, query: str) -> ParsedQuery | None:
        try:
            return await asyncio.wait_for(self.enricher.parse_query(query), self.timeout)
        except Exception as e:
            logger.debug(f"Query parsing unavailable, using explicit filters only: {e!r}")
            return None

    def _candidate_query(
        self, seeker: User, filters: SearchFilters, exclude_ids: list[int], now: datetime
    ) -> Any:
        stmt = (
            select(User, Profile, PrivacySettings)
            .outerjoin(Profile, Profile.user_id == User.id)
            .outerjoin(PrivacySettings, PrivacySettings.user_id == User.id)
            .where(
                User.id != seeker.id,
                User.is_banned.is_(False),
                or_(User.cooldown_until.is_(None), User.cooldown_until <= now),
                or_(PrivacySettings.user_id.is_(None), PrivacySettings.incognito_mode.is_(False)),
                ~exists().where(Like.liker_id == seeker.id, Like.liked_id == User.id),
                ~block_between(seeker.id, User.id),
                User.interested_in.in_([seeker.gender, "both"]),
            )
        )

        if seeker.interested_in != "both":
            stmt = stmt.where(User.gender == seeker.interested_in)
        if exclude_ids:
            stmt = stmt.where(User.id.not_in(exclude_ids))

        today = now.date()
        if filters.min_age is not None:
            stmt = stmt.where(User.date_of_birth <= years_ago(today, filters.min_age))
        if filters.max_age is not None:
            stmt = stmt.where(User.date_of_birth > years_ago(today, filters.max_age + 1))
        if filters.min_height is not None:
            stmt = stmt.where(Profile.height >= filters.min_height)
        if filters.max_height is not None:
            stmt = stmt.where(Profile.height <= filters.max_height)
        if filters.city:
            stmt = stmt.where(func.lower(User.city) == filters.city.strip().lower())
        if filters.smoker is not None:
            stmt = stmt.where(Profile.smoker.is_(filters.smoker))
        if filters.drinker:
            stmt = stmt.where(Profile.drinker == filters.drinker)
        if filters.relationship_goal:
            stmt = stmt.where(Profile.relationship_goal == filters.relationship_goal)

        return stmt.order_by(User.id)

    def _score(
        self, query: str, prefs: QueryPreferences | None, seeker_profile: Profile | None, profile: Profile | None
    ) -> int:
        return score(
            query,
            prefs,
            list(seeker_profile.interests or []) if seeker_profile else [],
            list(seeker_profile.personality_traits or []) if seeker_profile else [],
            list(profile.interests or []) if profile else [],
            list(profile.personality_traits or []) if profile else [],
            seeker_profile.persona_embedding if seeker_profile else None,
            profile.persona_embedding if profile else None,
        )

    async def rank(
        self,
        seeker: User,
        seeker_profile: Profile | None,
        query: str,
        prefs: QueryPreferences | None,
        filters: SearchFilters,
        exclude_ids: list[int],
        now: datetime,
    ) -> list[Candidate]:
        """Filter, score and order candidates: active boosts first, then score, then id."""
        rows = (await self.db.execute(self._candidate_query(seeker, filters, exclude_ids, now))).all()

        max_distance = filters.distance_km or seeker.distance_radius or settings.default_distance_km
        candidates = []
        for user, profile, privacy in rows:
            distance = haversine_km(seeker.latitude, seeker.longitude, user.latitude, user.longitude)
            if distance is not None and distance > max_distance:
                continue
            candidates.append(
                Candidate(
                    user=user,
                    profile=profile,
                    privacy=privacy,
                    score=self._score(query, prefs, seeker_profile, profile),
                    distance_km=distance,
                    boosted=user.boost_active(now),
                )
            )

        candidates.sort(key=lambda c: (not c.boosted, -c.score, c.user.id))
        search_candidates.observe(len(candidates))
        return candidates

    def partition(
        self, ranked: list[Candidate], quota_on: int, quota_off: int, is_on_grid: bool | None, limit: int | None
    ) -> tuple[list[Candidate], list[Candidate]]:
        """
        Split ranked candidates into the on-grid and off-grid feeds.

        on-grid only: top `limit or quota_on` by rank
        off-grid only: random `limit or quota_off` of the whole set
        both: top `quota_on` on-grid, random `quota_off` of the remainder off-grid
        """
        if is_on_grid is True:
            return ranked[: limit or quota_on], []

        if is_on_grid is False:
            shuffled = list(ranked)
            self.rng.shuffle(shuffled)
            return [], shuffled[: limit or quota_off]

        on_grid = ranked[: limit or quota_on]
        rest = ranked[len(on_grid) :]
        off_grid = self.rng.sample(rest, min(quota_off, len(rest)))
        return on_grid, off_grid

    async def _narrative(self, seeker_summary: str, candidate: Candidate, shared: list[str]) -> MatchNarrative:
        """Three tiers: full narrative, one-line reason, fixed reason. Never raises."""
        other = persona_summary(candidate.user, candidate.profile)
        try:
            return await asyncio.wait_for(self.enricher.narrate(seeker_summary, other, candidate.score), self.timeout)
        except Exception as e:
            logger.debug(f"Narrative unavailable for candidate {candidate.user.id}: {e!r}")
            enrichment_fallbacks_total.labels(tier="reason").inc()

        try:
            reason = await asyncio.wait_for(
                self.enricher.explain_match(seeker_summary, other, candidate.score), self.timeout
            )
            if reason and reason.strip():
                return fallback_narrative(shared, reason.strip())
        except Exception as e:
            logger.debug(f"Match reason unavailable for candidate {candidate.user.id}: {e!r}")

        enrichment_fallbacks_total.labels(tier="generic").inc()
        return fallback_narrative(shared, GENERIC_MATCH_REASON)

    async def _on_grid_cards(
        self, seeker: User, seeker_profile: Profile | None, candidates: list[Candidate], now: datetime
    ) -> list[dict[str, Any]]:
        seeker_summary = persona_summary(seeker, seeker_profile, now.date())
        seeker_interests = list(seeker_profile.interests or []) if seeker_profile else []

        def shared(c: Candidate) -> list[str]:
            theirs = set(c.profile.interests or []) if c.profile else set()
            return [i for i in seeker_interests if i in theirs]

        narratives = await asyncio.gather(*(self._narrative(seeker_summary, c, shared(c)) for c in candidates))

        cards = []
        for candidate, narrative in zip(candidates, narratives):
            card = self._card(candidate, now)
            card["match_reason"] = narrative.summary or GENERIC_MATCH_REASON
            card["match_highlights"] = narrative.highlights
            card["suggested_openers"] = narrative.openers
            cards.append(card)
        return cards

    def _card(self, candidate: Candidate, now: datetime) -> dict[str, Any]:
        return candidate_card(
            candidate.user, candidate.profile, candidate.privacy, candidate.score, candidate.distance_km, now
        )

    async def search(
        self,
        user_id: int,
        query: str | None = None,
        filters: SearchFilters | None = None,
        exclude_ids: list[int] | None = None,
        is_on_grid: bool | None = None,
        limit: int | None = None,
        charge_credits: bool = False,
        record_history: bool = True,
    ) -> SearchResult:
        """
        Run one search for a user.

        Enrichment failures only degrade the narrative; an uncovered AI charge
        fails the whole request and discards the computed results.

        Raises:
            NotFoundError: Unknown user
            InsufficientCreditsError: Charge required but not covered
        """
        if limit is not None and limit <= 0:
            raise ValidationError("limit must be positive")

        query = (query or "").strip()
        filters = filters or SearchFilters()
        explicit_filters = filters.model_dump(exclude_none=True)
        now = utcnow()

        seeker, seeker_profile = await self._load_seeker(user_id)

        parsed = await self._parse_query(query) if query else None
        prefs = None
        if parsed is not None:
            filters = filters.merged_with(parsed.filters)
            prefs = parsed.preferences

        ranked = await self.rank(seeker, seeker_profile, query, prefs, filters, exclude_ids or [], now)

        quota = self.policy.quota_for(seeker.gender)
        on_grid, off_grid = self.partition(ranked, quota.on_grid_results, quota.off_grid_results, is_on_grid, limit)

        result = SearchResult(
            on_grid=await self._on_grid_cards(seeker, seeker_profile, on_grid, now) if on_grid else [],
            off_grid=[self._card(c, now) for c in off_grid],
            credit_balance=seeker.credit_balance,
        )
        if parsed is not None:
            result.ai_context = {
                "search_intent": parsed.intent,
                "preferences": parsed.preferences.to_dict(),
                "applied_filters": filters.model_dump(exclude_none=True),
            }

        should_charge = charge_credits and bool(query) and is_on_grid is True and len(result.on_grid) > 0

        async with transaction(self.db):
            if should_charge:
                result.credit_balance = await self.ledger.consume(
                    user_id, self.policy.ai_search_cost, "ai_search", {"search_query": query}
                )
                result.charged = True
            else:
                result.credit_balance = await self.ledger.get_balance(user_id)

            if record_history:
                self.db.add(SearchHistory(user_id=user_id, search_query=query, filters=explicit_filters))

        if result.charged:
            ai_search_charges_total.inc()
        grid = "both" if is_on_grid is None else ("on" if is_on_grid else "off")
        searches_total.labels(grid=grid).inc()
        logger.info(
            f"Search user={user_id} grid={grid} candidates={len(ranked)} "
            f"on={len(result.on_grid)} off={len(result.off_grid)} charged={result.charged}"
        )
        return result

    async def refresh_off_grid(self, user_id: int, exclude_ids: list[int] | None = None) -> SearchResult:
        """Replay the user's last search as an off-grid-only search."""
        last = (
            await self.db.execute(
                select(SearchHistory)
                .where(SearchHistory.user_id == user_id)
                .order_by(SearchHistory.created_at.desc(), SearchHistory.id.desc())
                .limit(1)
            )
        ).scalar_one_or_none()
        if last is None:
            raise ValidationError("No previous search to refresh")

        return await self.search(
            user_id,
            query=last.search_query,
            filters=SearchFilters.model_validate(last.filters or {}),
            exclude_ids=exclude_ids,
            is_on_grid=False,
            record_history=False,
        )

    async def details(self, viewer_id: int, target_id: int) -> dict[str, Any]:
        """Full card for one user as seen by the viewer."""
        now = utcnow()
        viewer, viewer_profile = await self._load_seeker(viewer_id)

        row = (
            await self.db.execute(
                select(User, Profile, PrivacySettings)
                .outerjoin(Profile, Profile.user_id == User.id)
                .outerjoin(PrivacySettings, PrivacySettings.user_id == User.id)
                .where(User.id == target_id)
            )
        ).first()
        if row is None or row[0].is_banned or await is_blocked(self.db, viewer_id, target_id):
            raise NotFoundError("User not found")

        user, profile, privacy = row
        distance = haversine_km(viewer.latitude, viewer.longitude, user.latitude, user.longitude)
        card = candidate_card(user, profile, privacy, self._score("", None, viewer_profile, profile), distance, now)
        card["liked_by_me"] = bool(
            (
                await self.db.execute(select(exists().where(Like.liker_id == viewer_id, Like.liked_id == target_id)))
            ).scalar()
        )
        return card
