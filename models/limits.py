from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column

from core.clock import utcnow
from core.db import Base


class ActivityLimits(Base):
    """Rolling-window counters for likes and messages, one row per user."""

    __tablename__ = "user_activity_limits"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, nullable=False
    )
    on_grid_likes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    off_grid_likes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    messages_started_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_reset_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    @property
    def total_likes(self) -> int:
        return self.on_grid_likes_count + self.off_grid_likes_count

    def __repr__(self) -> str:
        return (
            f"<ActivityLimits(user_id={self.user_id}, on={self.on_grid_likes_count}, "
            f"off={self.off_grid_likes_count}, msgs={self.messages_started_count})>"
        )
