"""Row-level operations on reports and empathies.

These run inside a transaction opened by the caller (``Database.transaction``)
and never commit on their own.
"""

from __future__ import annotations

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Empathy, Report


# ── Report ───────────────────────────────────────────────

async def create_report(
    db: AsyncSession, campus: str, building: str, location: str,
    problem_types: list[str], description: str, password_hash: str,
    custom_problem: str | None = None,
) -> Report:
    report = Report(
        campus=campus, building=building, location=location,
        problem_types=problem_types, custom_problem=custom_problem,
        description=description, password_hash=password_hash,
        empathy_count=0,
    )
    db.add(report)
    await db.flush()
    await db.refresh(report)
    return report


async def get_report(db: AsyncSession, report_id: str) -> Report | None:
    return await db.get(Report, report_id)


async def list_reports(
    db: AsyncSession, sort: str = "latest", campus: str | None = None,
    building: str | None = None, offset: int = 0, limit: int = 20,
) -> tuple[list[Report], int]:
    filters = []
    if campus and campus != "all":
        filters.append(Report.campus == campus)
    if building:
        filters.append(Report.building.contains(building, autoescape=True))

    total = (await db.execute(
        select(func.count()).select_from(Report).where(*filters)
    )).scalar_one()

    query = select(Report).where(*filters)
    if sort == "empathy":
        query = query.order_by(Report.empathy_count.desc(), Report.created_at.desc())
    else:
        query = query.order_by(Report.created_at.desc())
    result = await db.execute(query.offset(offset).limit(limit))
    return list(result.scalars().all()), total


async def update_report(db: AsyncSession, report: Report, **kwargs) -> Report:
    for k, v in kwargs.items():
        setattr(report, k, v)
    await db.flush()
    await db.refresh(report)
    return report


async def delete_report(db: AsyncSession, report_id: str) -> int:
    result = await db.execute(
        delete(Report).where(Report.id == report_id).execution_options(synchronize_session=False)
    )
    return result.rowcount


async def get_password_hash(db: AsyncSession, report_id: str) -> str | None:
    result = await db.execute(select(Report.password_hash).where(Report.id == report_id))
    return result.scalar_one_or_none()


async def lock_report(db: AsyncSession, report_id: str) -> bool:
    """Row-lock the report for the rest of the transaction. False if it does not exist."""
    result = await db.execute(
        select(Report.id).where(Report.id == report_id).with_for_update()
    )
    return result.scalar_one_or_none() is not None


async def get_empathy_count(db: AsyncSession, report_id: str) -> int | None:
    """Read the stored counter column, not a row count."""
    result = await db.execute(select(Report.empathy_count).where(Report.id == report_id))
    return result.scalar_one_or_none()


# ── Empathy ──────────────────────────────────────────────

async def find_empathy(db: AsyncSession, report_id: str, user_identifier: str) -> Empathy | None:
    result = await db.execute(
        select(Empathy).where(
            Empathy.report_id == report_id,
            Empathy.user_identifier == user_identifier,
        )
    )
    return result.scalars().first()


async def create_empathy(db: AsyncSession, report_id: str, user_identifier: str) -> Empathy:
    empathy = Empathy(report_id=report_id, user_identifier=user_identifier)
    db.add(empathy)
    await db.flush()
    return empathy


async def delete_empathy(db: AsyncSession, report_id: str, user_identifier: str) -> int:
    result = await db.execute(
        delete(Empathy)
        .where(Empathy.report_id == report_id, Empathy.user_identifier == user_identifier)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def count_empathies(db: AsyncSession, report_id: str) -> int:
    result = await db.execute(
        select(func.count(Empathy.id)).where(Empathy.report_id == report_id)
    )
    return result.scalar_one()


async def get_empathy_status(db: AsyncSession, report_id: str, user_identifier: str) -> tuple[bool, int] | None:
    """Vote presence and counter from a single statement, so both describe the same instant."""
    voted = (
        select(Empathy.id)
        .where(Empathy.report_id == Report.id, Empathy.user_identifier == user_identifier)
        .exists()
    )
    result = await db.execute(
        select(voted.label("has_empathy"), Report.empathy_count).where(Report.id == report_id)
    )
    row = result.first()
    if row is None:
        return None
    return bool(row.has_empathy), row.empathy_count
