from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Date, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.clock import utcnow
from core.db import Base, BigId

if TYPE_CHECKING:
    from models.profile import Profile


class User(Base):
    """User account with demographic data and engine-owned state (credits, cooldown, boost)."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    gender: Mapped[str] = mapped_column(String(16), nullable=False)  # male, female, other
    interested_in: Mapped[str] = mapped_column(String(16), nullable=False)  # male, female, both
    date_of_birth: Mapped[date] = mapped_column(Date, nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    distance_radius: Mapped[int] = mapped_column(Integer, nullable=False, default=50)  # km

    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_premium: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    premium_expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    is_banned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    credit_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cooldown_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cooldown_until: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    boost_expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    push_token: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    profile: Mapped["Profile | None"] = relationship("Profile", back_populates="user", uselist=False)

    __table_args__ = (
        CheckConstraint("credit_balance >= 0", name="chk_users_credit_non_negative"),
        CheckConstraint("interested_in IN ('male','female','both')", name="chk_users_interested_in"),
    )

    def premium_active(self, now: datetime) -> bool:
        return self.is_premium and (self.premium_expires_at is None or self.premium_expires_at > now)

    def in_cooldown(self, now: datetime) -> bool:
        return self.cooldown_until is not None and self.cooldown_until > now

    def boost_active(self, now: datetime) -> bool:
        return self.boost_expires_at is not None and self.boost_expires_at > now

    def __repr__(self) -> str:
        return f"<User(id={self.id}, name={self.name})>"


class PrivacySettings(Base):
    """Per-user visibility switches."""

    __tablename__ = "user_privacy_settings"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, nullable=False
    )
    hide_distance: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hide_city: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    incognito_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    show_online_status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<PrivacySettings(user_id={self.user_id}, incognito={self.incognito_mode})>"
