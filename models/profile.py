from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.clock import utcnow
from core.db import Base, BigId

if TYPE_CHECKING:
    from models.user import User


class Profile(Base):
    """Profile fields, quiz-derived traits and persona embedding used as scoring input."""

    __tablename__ = "user_profiles"

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False, index=True
    )

    height: Mapped[int | None] = mapped_column(Integer, nullable=True)  # cm
    interests: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    prompt1: Mapped[str | None] = mapped_column(Text, nullable=True)
    prompt2: Mapped[str | None] = mapped_column(Text, nullable=True)
    prompt3: Mapped[str | None] = mapped_column(Text, nullable=True)
    smoker: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    drinker: Mapped[str | None] = mapped_column(String(32), nullable=True)  # never, social, regular
    relationship_goal: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Personality quiz
    quiz_answers: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    personality_traits: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    personality_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    top_traits: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    compatibility_tips: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Persona free text
    self_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    ideal_partner_prompt: Mapped[str | None] = mapped_column(Text, nullable=True)
    connection_preferences: Mapped[str | None] = mapped_column(Text, nullable=True)
    dealbreakers: Mapped[str | None] = mapped_column(Text, nullable=True)
    growth_journey: Mapped[str | None] = mapped_column(Text, nullable=True)
    persona_embedding: Mapped[list[float]] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="profile")

    def persona_text(self) -> str:
        """Free-text self description fed to the embedding provider."""
        parts: list[Any] = [
            self.self_summary,
            self.ideal_partner_prompt,
            self.connection_preferences,
            self.growth_journey,
            self.bio,
            ", ".join(self.interests or []),
            ", ".join(self.personality_traits or []),
        ]
        return "\n".join(str(p) for p in parts if p)

    def __repr__(self) -> str:
        return f"<Profile(user_id={self.user_id})>"
