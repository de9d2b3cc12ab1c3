"""Empathy ledger: one anonymous "me too" vote per (report, voter).

Each add/remove runs in a single write transaction that also brings
``reports.empathy_count`` up to date, so the counter is never observed out of
step with the vote rows. Uniqueness is enforced by the store: the existence
check before insert only saves a failed insert in the common case, and the
constraint violation from the insert is what decides a duplicate.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import crud
from app.db.engine import Database
from app.errors import CounterInvariantError, DuplicateVoteError, NotFoundError, ValidationError
from app.schemas.empathy import EmpathyCount, EmpathyStatus

logger = logging.getLogger(__name__)

REPORT_NOT_FOUND = "제보를 찾을 수 없습니다"
EMPATHY_NOT_FOUND = "공감 기록을 찾을 수 없습니다"


def _require_voter(user_identifier: str) -> None:
    if not user_identifier:
        raise ValidationError("사용자 식별자가 필요합니다")


async def _settled_count(database: Database, db: AsyncSession, report_id: str) -> int:
    """Bring the counter up to date and re-read it from the report row."""
    await database.counter.sync(db, report_id)
    count = await crud.get_empathy_count(db, report_id)
    if count is None:
        raise NotFoundError(REPORT_NOT_FOUND)
    if count < 0:
        logger.error(f"empathy_count for report {report_id} went negative ({count})")
        raise CounterInvariantError(details={"report_id": report_id, "empathy_count": count})
    return count


async def add_empathy(database: Database, report_id: str, user_identifier: str) -> EmpathyCount:
    _require_voter(user_identifier)
    try:
        async with database.transaction() as db:
            if not await crud.lock_report(db, report_id):
                raise NotFoundError(REPORT_NOT_FOUND)

            if await crud.find_empathy(db, report_id, user_identifier) is not None:
                raise DuplicateVoteError()

            try:
                await crud.create_empathy(db, report_id, user_identifier)
            except IntegrityError as e:
                if database.backend.is_unique_violation(e):
                    # Lost a race with a concurrent vote for the same pair
                    raise DuplicateVoteError() from e
                raise

            count = await _settled_count(database, db, report_id)
    except DBAPIError as e:
        raise database.backend.translate(e, "공감 추가 중 오류가 발생했습니다") from e

    logger.debug(f"Empathy added to report {report_id}, count={count}")
    return EmpathyCount(empathy_count=count)


async def remove_empathy(database: Database, report_id: str, user_identifier: str) -> EmpathyCount:
    _require_voter(user_identifier)
    try:
        async with database.transaction() as db:
            if not await crud.lock_report(db, report_id):
                raise NotFoundError(REPORT_NOT_FOUND)

            try:
                removed = await crud.delete_empathy(db, report_id, user_identifier)
            except IntegrityError as e:
                if database.backend.is_check_violation(e):
                    # The trigger tried to take empathy_count below zero
                    logger.error(f"Counter underflow removing empathy on report {report_id}: {e.orig}")
                    raise CounterInvariantError(details={"report_id": report_id}) from e
                raise
            if removed == 0:
                raise NotFoundError(EMPATHY_NOT_FOUND)

            count = await _settled_count(database, db, report_id)
    except DBAPIError as e:
        raise database.backend.translate(e, "공감 제거 중 오류가 발생했습니다") from e

    logger.debug(f"Empathy removed from report {report_id}, count={count}")
    return EmpathyCount(empathy_count=count)


async def check_status(database: Database, report_id: str, user_identifier: str) -> EmpathyStatus:
    try:
        async with database.transaction(write=False) as db:
            status = await crud.get_empathy_status(db, report_id, user_identifier)
    except DBAPIError as e:
        raise database.backend.translate(e, "공감 상태 확인 중 오류가 발생했습니다") from e

    if status is None:
        return EmpathyStatus(has_empathy=False, empathy_count=0)
    has_empathy, count = status
    return EmpathyStatus(has_empathy=has_empathy, empathy_count=count)


async def get_empathy_count(database: Database, report_id: str) -> int:
    """Stored counter for a report; 0 when the report does not exist."""
    try:
        async with database.transaction(write=False) as db:
            count = await crud.get_empathy_count(db, report_id)
    except DBAPIError as e:
        raise database.backend.translate(e, "공감 수 조회 중 오류가 발생했습니다") from e
    return count or 0
