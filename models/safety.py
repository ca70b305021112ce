"""Safety & Moderation models - blocks, reports and moderation actions."""

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from core.clock import utcnow
from core.db import Base, BigId


class Block(Base):
    """Directional block. Either direction hides the pair from each other."""

    __tablename__ = "blocks"

    blocker_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, nullable=False
    )
    blocked_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("blocker_id <> blocked_id", name="chk_block_no_self"),
        Index("idx_blocks_blocked", "blocked_id"),
    )

    def __repr__(self) -> str:
        return f"<Block(blocker={self.blocker_id}, blocked={self.blocked_id})>"


class Report(Base):
    """User-generated report (complaint) about another user."""

    __tablename__ = "reports"

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    reporter_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reported_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reason: Mapped[str] = mapped_column(String(24), nullable=False)  # spam|abuse|fake|inappropriate|other
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="new")  # new|in_review|resolved
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("reason IN ('spam','abuse','fake','inappropriate','other')", name="chk_report_reason"),
        CheckConstraint("status IN ('new','in_review','resolved')", name="chk_report_status"),
        # Index for finding open reports by target user
        Index(
            "idx_reports_target_open",
            "reported_id",
            "status",
            postgresql_where=text("status IN ('new','in_review')"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Report(id={self.id}, from={self.reporter_id}, to={self.reported_id}, reason={self.reason})>"


class ModerationAction(Base):
    """Admin moderation action history."""

    __tablename__ = "moderation_actions"

    id: Mapped[int] = mapped_column(BigId, primary_key=True, autoincrement=True)
    target_user: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    action: Mapped[str] = mapped_column(String(24), nullable=False)  # ban|unban
    actor: Mapped[str] = mapped_column(String(64), nullable=False)  # admin_user
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ModerationAction(id={self.id}, target={self.target_user}, action={self.action})>"
