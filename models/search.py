from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.clock import utcnow
from core.db import Base, BigId


class SearchHistory(Base):
    """Raw search query and filters, replayed by off-grid refresh."""

    __tablename__ = "search_history"

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    search_query: Mapped[str] = mapped_column(Text, nullable=False, default="")
    filters: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("idx_search_history_user_created", "user_id", "created_at"),)

    def __repr__(self) -> str:
        return f"<SearchHistory(id={self.id}, user_id={self.user_id})>"
