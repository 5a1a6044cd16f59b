"""Core SQLAlchemy models (2.x style) for the program store.

The sync job only reads programs and updates their date/status columns;
rows are created and deleted by the main application.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class ProgramStatus(str, Enum):
    """Lifecycle status of a program."""
    DRAFT = "DRAFT"
    UPCOMING = "UPCOMING"
    RECRUITING = "RECRUITING"
    RECRUIT_CLOSED = "RECRUIT_CLOSED"
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"


# Columns the sync job is allowed to write.
SYNCABLE_FIELDS = (
    "recruit_start_date",
    "recruit_end_date",
    "start_date",
    "end_date",
    "status",
)


class Program(Base):
    """Programs table (authoritative identity for every program)."""
    __tablename__ = "programs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    program_type: Mapped[str | None] = mapped_column(String(50), index=True)
    status: Mapped[str] = mapped_column(String(20), default=ProgramStatus.DRAFT.value, nullable=False)
    recruit_start_date: Mapped[date | None] = mapped_column(Date)
    recruit_end_date: Mapped[date | None] = mapped_column(Date)
    start_date: Mapped[date | None] = mapped_column(Date, index=True)
    end_date: Mapped[date | None] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_programs_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"Program(id={self.id!r}, title={self.title!r})"
