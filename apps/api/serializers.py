"""Response payload builders shared by routers."""

from datetime import datetime
from typing import Any

from core.clock import calculate_age, utcnow
from models.profile import Profile
from models.user import PrivacySettings, User


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def user_payload(user: User, now: datetime | None = None) -> dict[str, Any]:
    """The account as its owner sees it."""
    now = now or utcnow()
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "gender": user.gender,
        "interested_in": user.interested_in,
        "date_of_birth": user.date_of_birth.isoformat(),
        "age": calculate_age(user.date_of_birth, now.date()),
        "city": user.city,
        "latitude": user.latitude,
        "longitude": user.longitude,
        "distance_radius": user.distance_radius,
        "is_verified": user.is_verified,
        "is_premium": user.is_premium,
        "premium_expires_at": _iso(user.premium_expires_at),
        "credit_balance": user.credit_balance,
        "cooldown_enabled": user.cooldown_enabled,
        "cooldown_until": _iso(user.cooldown_until) if user.in_cooldown(now) else None,
        "boost_active": user.boost_active(now),
        "boost_expires_at": _iso(user.boost_expires_at) if user.boost_active(now) else None,
    }


def profile_payload(profile: Profile | None) -> dict[str, Any] | None:
    if profile is None:
        return None
    return {
        "height": profile.height,
        "interests": list(profile.interests or []),
        "bio": profile.bio,
        "prompt1": profile.prompt1,
        "prompt2": profile.prompt2,
        "prompt3": profile.prompt3,
        "smoker": profile.smoker,
        "drinker": profile.drinker,
        "relationship_goal": profile.relationship_goal,
        "quiz_answers": list(profile.quiz_answers or []),
        "personality_traits": list(profile.personality_traits or []),
        "self_summary": profile.self_summary,
        "ideal_partner_prompt": profile.ideal_partner_prompt,
        "connection_preferences": profile.connection_preferences,
        "dealbreakers": profile.dealbreakers,
        "growth_journey": profile.growth_journey,
        "has_persona_embedding": bool(profile.persona_embedding),
    }


def privacy_payload(privacy: PrivacySettings | None) -> dict[str, bool]:
    if privacy is None:
        return {"hide_distance": False, "hide_city": False, "incognito_mode": False, "show_online_status": True}
    return {
        "hide_distance": privacy.hide_distance,
        "hide_city": privacy.hide_city,
        "incognito_mode": privacy.incognito_mode,
        "show_online_status": privacy.show_online_status,
    }
