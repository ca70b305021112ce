"""Account signup and login endpoints."""

import logging
from datetime import date
from typing import Any, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.deps import get_db, get_policy
from apps.api.middlewares.rate_limit import RateLimit
from apps.api.serializers import user_payload
from core.clock import calculate_age
from core.config import MatchPolicy
from core.errors import AuthenticationError, ForbiddenError, ValidationError
from core.metrics import signups_total
from core.security import create_access_token, hash_password, verify_password
from models import ActivityLimits, PrivacySettings, User

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)

MIN_AGE = 18


class SignupIn(BaseModel):
    """Input model for creating an account."""

    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(min_length=8, max_length=128)
    name: str = Field(min_length=1, max_length=100)
    gender: Literal["male", "female", "other"]
    interested_in: Literal["male", "female", "both"]
    date_of_birth: date
    city: str = Field(min_length=1, max_length=100)
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)


class LoginIn(BaseModel):
    email: str
    password: str


@router.post("/signup", status_code=201, dependencies=[Depends(RateLimit("signup", limit=5, window_seconds=3600))])
async def signup(
    body: SignupIn,
    db: AsyncSession = Depends(get_db),
    policy: MatchPolicy = Depends(get_policy),
) -> dict[str, Any]:
    """
    Create an account with its activity limits and privacy rows.

    Returns:
        {"token": ..., "user": {...}}

    Raises:
        ValidationError: Under-age or email already registered
    """
    age = calculate_age(body.date_of_birth)
    if age is None or age < MIN_AGE:
        raise ValidationError(f"You must be at least {MIN_AGE} years old")

    email = body.email.strip().lower()
    existing = (await db.execute(select(User.id).where(func.lower(User.email) == email))).scalar_one_or_none()
    if existing is not None:
        raise ValidationError("Email already registered")

    user = User(
        email=email,
        password_hash=hash_password(body.password),
        name=body.name.strip(),
        gender=body.gender,
        interested_in=body.interested_in,
        date_of_birth=body.date_of_birth,
        city=body.city.strip(),
        latitude=body.latitude,
        longitude=body.longitude,
        cooldown_enabled=policy.quota_for(body.gender).cooldown_enabled_default,
        credit_balance=0,
    )
    db.add(user)
    try:
        await db.flush()
        db.add(ActivityLimits(user_id=user.id))
        db.add(PrivacySettings(user_id=user.id))
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ValidationError("Email already registered") from None

    signups_total.labels(gender=user.gender).inc()
    logger.info(f"User {user.id} signed up")
    return {"token": create_access_token(user.id), "user": user_payload(user)}


@router.post("/login", dependencies=[Depends(RateLimit("login", limit=10, window_seconds=300))])
async def login(body: LoginIn, db: AsyncSession = Depends(get_db)) -> dict[str, Any]:
    """Exchange email and password for a bearer token."""
    email = body.email.strip().lower()
    user = (await db.execute(select(User).where(func.lower(User.email) == email))).scalar_one_or_none()

    if user is None or not verify_password(body.password, user.password_hash):
        raise AuthenticationError("Invalid email or password")
    if user.is_banned:
        raise ForbiddenError("Account suspended")

    return {"token": create_access_token(user.id), "user": user_payload(user)}
