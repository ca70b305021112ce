"""Profile completion and account self-service endpoints."""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.deps import get_db, get_enricher, get_policy
from apps.api.serializers import privacy_payload, profile_payload, user_payload
from apps.engine.limits import ActivityLimitTracker
from apps.persona.provider import PersonaEnricher
from apps.persona.traits import fallback_insight, normalize_answer, traits_from_answers
from core.auth import current_user_id
from core.clock import utcnow
from core.config import MatchPolicy, settings
from core.errors import ForbiddenError, NotFoundError, ServiceUnavailableError, ValidationError
from core.metrics import enrichment_fallbacks_total, profiles_completed_total
from models import PrivacySettings, Profile, User

router = APIRouter(prefix="/profile", tags=["profile"])
logger = logging.getLogger(__name__)

QUIZ_LENGTH = 8
MIN_VERIFIED_AGE = 18


class ProfileCompleteIn(BaseModel):
    """Input model for completing or updating a profile. Omitted fields are left unchanged."""

    height: int | None = Field(None, ge=100, le=250)
    interests: list[str] | None = Field(None, max_length=20)
    bio: str | None = Field(None, max_length=1000)
    prompt1: str | None = Field(None, max_length=500)
    prompt2: str | None = Field(None, max_length=500)
    prompt3: str | None = Field(None, max_length=500)
    smoker: bool | None = None
    drinker: Literal["never", "social", "regular"] | None = None
    relationship_goal: str | None = Field(None, max_length=32)
    quiz_answers: list[str] | None = Field(None, max_length=QUIZ_LENGTH)
    self_summary: str | None = Field(None, max_length=2000)
    ideal_partner_prompt: str | None = Field(None, max_length=2000)
    connection_preferences: str | None = Field(None, max_length=2000)
    dealbreakers: str | None = Field(None, max_length=2000)
    growth_journey: str | None = Field(None, max_length=2000)


class LocationIn(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    city: str | None = Field(None, max_length=100)
    distance_radius: int | None = Field(None, ge=1, le=500)


class PushTokenIn(BaseModel):
    push_token: str | None = Field(None, max_length=255)


class SelfieIn(BaseModel):
    image_url: str = Field(min_length=8, max_length=2048)


async def _get_user(db: AsyncSession, user_id: int) -> User:
    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")
    return user


async def _get_profile(db: AsyncSession, user_id: int) -> Profile | None:
    return (await db.execute(select(Profile).where(Profile.user_id == user_id))).scalar_one_or_none()


@router.post("/complete")
async def complete_profile(
    body: ProfileCompleteIn,
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
    enricher: PersonaEnricher = Depends(get_enricher),
) -> dict[str, Any]:
    """
    Upsert the caller's profile and regenerate their persona.

    Traits come from the quiz answers; the AI personality insight and the
    persona embedding are optional and degrade to deterministic values.
    """
    user = await _get_user(db, user_id)
    profile = await _get_profile(db, user_id)
    if profile is None:
        profile = Profile(user_id=user_id, interests=[], quiz_answers=[], personality_traits=[], top_traits=[])
        db.add(profile)

    fields = body.model_dump(exclude_unset=True, exclude={"quiz_answers", "interests"})
    for key, value in fields.items():
        setattr(profile, key, value.strip() if isinstance(value, str) else value)

    if body.interests is not None:
        interests: list[str] = []
        for interest in body.interests:
            cleaned = interest.strip()
            if cleaned and cleaned not in interests:
                interests.append(cleaned)
        profile.interests = interests

    # Saved answers survive requests that do not resend them
    if body.quiz_answers is not None:
        answers = [normalize_answer(a) for a in body.quiz_answers]
        if any(a is None for a in answers):
            raise ValidationError("Quiz answers must be one of A, B, C, D")
        profile.quiz_answers = [a for a in answers if a]

    answers = list(profile.quiz_answers or [])
    traits = traits_from_answers(answers)
    profile.personality_traits = traits

    about = "\n".join(t for t in (profile.bio, profile.prompt1, profile.prompt2, profile.prompt3) if t)
    insight = fallback_insight(traits)
    if answers or about:
        try:
            analyzed = await asyncio.wait_for(
                enricher.analyze_personality(answers, about), settings.ai_timeout_seconds
            )
            insight.summary = analyzed.summary or insight.summary
            insight.top_traits = analyzed.top_traits or insight.top_traits
            insight.compatibility_tips = analyzed.compatibility_tips or insight.compatibility_tips
        except Exception as e:
            enrichment_fallbacks_total.labels(tier="personality").inc()
            logger.debug(f"Personality analysis unavailable for user {user_id}: {e!r}")

    profile.personality_summary = insight.summary
    profile.top_traits = insight.top_traits
    profile.compatibility_tips = insight.compatibility_tips

    try:
        profile.persona_embedding = await asyncio.wait_for(
            enricher.embed(profile.persona_text()), settings.ai_timeout_seconds
        )
    except Exception as e:
        profile.persona_embedding = []
        enrichment_fallbacks_total.labels(tier="embedding").inc()
        logger.debug(f"Embedding unavailable for user {user_id}: {e!r}")

    profile.updated_at = utcnow()
    await db.commit()
    profiles_completed_total.inc()

    return {
        "message": "Profile saved",
        "user": user_payload(user),
        "profile": profile_payload(profile),
        "ai_persona": {
            "summary": insight.summary,
            "top_traits": insight.top_traits,
            "compatibility_tips": insight.compatibility_tips,
        },
    }


@router.get("/me")
async def get_me(
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
    policy: MatchPolicy = Depends(get_policy),
) -> dict[str, Any]:
    """The caller's account, profile, privacy switches and remaining likes."""
    user = await _get_user(db, user_id)
    profile = await _get_profile(db, user_id)
    privacy = (
        await db.execute(select(PrivacySettings).where(PrivacySettings.user_id == user_id))
    ).scalar_one_or_none()

    tracker = ActivityLimitTracker(db, policy)
    limits = await tracker.peek(user_id)

    return {
        "user": user_payload(user),
        "profile": profile_payload(profile),
        "privacy": privacy_payload(privacy),
        "credit_balance": user.credit_balance,
        "likes_remaining": tracker.remaining(limits, policy.quota_for(user.gender)),
        "ai_persona": (
            {
                "summary": profile.personality_summary,
                "top_traits": list(profile.top_traits or []),
                "compatibility_tips": profile.compatibility_tips,
            }
            if profile
            else None
        ),
    }


@router.post("/boost")
async def activate_boost(
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
    policy: MatchPolicy = Depends(get_policy),
) -> dict[str, Any]:
    """Rank the caller ahead of equally-scored peers for a while. Paid plans only."""
    now = utcnow()
    user = await _get_user(db, user_id)

    if not user.premium_active(now):
        raise ForbiddenError("Boost is available only for paid plans")

    if user.boost_active(now):
        return {
            "message": "Boost is already active",
            "boost_active": True,
            "boost_expires_at": user.boost_expires_at.isoformat(),
        }

    user.boost_expires_at = now + timedelta(hours=policy.boost_hours)
    await db.commit()
    logger.info(f"Boost activated for user {user_id}")
    return {
        "message": f"Boost activated for {policy.boost_hours} hours",
        "boost_active": True,
        "boost_expires_at": user.boost_expires_at.isoformat(),
    }


@router.post("/location")
async def update_location(
    body: LocationIn,
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    user = await _get_user(db, user_id)
    user.latitude = body.latitude
    user.longitude = body.longitude
    if body.city:
        user.city = body.city.strip()
    if body.distance_radius is not None:
        user.distance_radius = body.distance_radius
    await db.commit()
    return {"message": "Location updated", "user": user_payload(user)}


@router.post("/push-token")
async def register_push_token(
    body: PushTokenIn,
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
) -> dict[str, bool]:
    """Store (or clear, with null) the device's Expo push token."""
    user = await _get_user(db, user_id)
    user.push_token = body.push_token or None
    await db.commit()
    return {"ok": True}


@router.post("/verify-selfie")
async def verify_selfie(
    body: SelfieIn,
    user_id: int = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
    enricher: PersonaEnricher = Depends(get_enricher),
) -> dict[str, Any]:
    """Mark the account verified when the selfie's estimated age is adult."""
    user = await _get_user(db, user_id)
    try:
        estimated_age = await asyncio.wait_for(enricher.check_selfie_age(body.image_url), settings.ai_timeout_seconds)
    except Exception as e:
        logger.error(f"Selfie age check failed for user {user_id}: {e!r}")
        raise ServiceUnavailableError("Selfie verification is not available right now") from None

    if estimated_age is None:
        raise ValidationError("No face detected, please retake your selfie")

    verified = estimated_age >= MIN_VERIFIED_AGE
    if verified and not user.is_verified:
        user.is_verified = True
        await db.commit()

    return {"is_verified": user.is_verified, "estimated_age": estimated_age, "passed": verified}
