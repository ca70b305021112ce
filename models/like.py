from datetime import datetime

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, ForeignKey, Index, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from core.clock import utcnow
from core.db import Base, BigId


class Like(Base):
    """Directional like; at most one row per (liker, liked)."""

    __tablename__ = "likes"

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    liker_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    liked_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    is_on_grid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_superlike: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_compliment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    compliment_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("liker_id", "liked_id", name="uq_likes_pair"),
        CheckConstraint("liker_id <> liked_id", name="chk_like_no_self"),
        Index("idx_likes_liker", "liker_id"),
    )

    def __repr__(self) -> str:
        return f"<Like(id={self.id}, liker={self.liker_id}, liked={self.liked_id})>"
