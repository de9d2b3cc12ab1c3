from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, Text, Integer, JSON, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, ULIDMixin, utcnow

# Both are enforced by CHECK constraints in the migrated schema
CAMPUSES = ("김해캠퍼스", "부산캠퍼스")
DESCRIPTION_MIN_LENGTH = 10


class Report(Base, ULIDMixin):
    __tablename__ = "reports"

    campus: Mapped[str] = mapped_column(String(50))
    building: Mapped[str] = mapped_column(String(255))
    location: Mapped[str] = mapped_column(String(255))
    problem_types: Mapped[list] = mapped_column(JSON, default=list)
    custom_problem: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    description: Mapped[str] = mapped_column(Text)
    password_hash: Mapped[str] = mapped_column(String(255))
    # Maintained by the empathy ledger; always equals the number of empathy rows
    empathy_count: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow,
    )

    empathies = relationship(
        "Empathy", back_populates="report",
        cascade="all, delete-orphan", passive_deletes=True,
    )
