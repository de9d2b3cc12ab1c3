"""SQLAlchemy ORM models.

The schema these map onto is owned by ``app.db.migrations``.
"""

from app.models.base import Base
from app.models.report import CAMPUSES, DESCRIPTION_MIN_LENGTH, Report
from app.models.empathy import Empathy
from app.models.migration import MigrationRecord

__all__ = ["Base", "Report", "Empathy", "MigrationRecord", "CAMPUSES", "DESCRIPTION_MIN_LENGTH"]
