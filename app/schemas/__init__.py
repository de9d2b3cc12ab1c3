"""Pydantic request/response schemas."""

from app.schemas.report import ReportCreate, ReportUpdate, ReportRead, ReportQuery, ReportList
from app.schemas.empathy import EmpathyCount, EmpathyStatus
from app.schemas.migration import MigrationStatus

__all__ = [
    "ReportCreate", "ReportUpdate", "ReportRead", "ReportQuery", "ReportList",
    "EmpathyCount", "EmpathyStatus",
    "MigrationStatus",
]
