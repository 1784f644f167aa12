"""SQLAlchemy 2.0 ORM models for the run ledger."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class VideoRun(Base):
    """One end-to-end pipeline run and its intermediate artifacts.

    Shot and plan payloads are stored sanitized (no inline image data).
    """
    __tablename__ = "video_runs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(default=_utcnow, index=True)
    status: Mapped[str] = mapped_column(String(20), default="started")
    storyboard: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    transition_plans: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    clip_results: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    final_video_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
