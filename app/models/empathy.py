from __future__ import annotations

from sqlalchemy import String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, ULIDMixin


class Empathy(Base, ULIDMixin):
    __tablename__ = "empathies"
    __table_args__ = (UniqueConstraint("report_id", "user_identifier"),)

    report_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("reports.id", ondelete="CASCADE"),
    )
    user_identifier: Mapped[str] = mapped_column(String(255))

    report = relationship("Report", back_populates="empathies")
