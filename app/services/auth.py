"""Authorization gate: bcrypt-hashed per-report passwords for edit/delete."""

from __future__ import annotations

import asyncio
import logging
from functools import lru_cache

import bcrypt
from sqlalchemy.exc import DBAPIError

from app.db import crud
from app.db.engine import Database
from app.errors import UnauthorizedError

logger = logging.getLogger(__name__)

DEFAULT_ROUNDS = 10


def hash_password(plain: str, rounds: int = DEFAULT_ROUNDS) -> str:
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


@lru_cache(maxsize=4)
def _dummy_hash(rounds: int) -> str:
    """Hash checked against when the report is missing, so both paths cost one bcrypt round."""
    return hash_password("not-a-real-password", rounds)


async def warm_dummy_hash(rounds: int = DEFAULT_ROUNDS) -> None:
    """Compute the missing-report hash ahead of the first password check."""
    await asyncio.to_thread(_dummy_hash, rounds)


async def hash_password_async(plain: str, rounds: int = DEFAULT_ROUNDS) -> str:
    return await asyncio.to_thread(hash_password, plain, rounds)


async def verify_report_password(
    database: Database, report_id: str, password: str, rounds: int = DEFAULT_ROUNDS,
) -> bool:
    """True only if the report exists and ``password`` matches its hash.

    A missing report returns False after the same amount of hashing work as
    a wrong password.
    """
    try:
        async with database.transaction(write=False) as db:
            hashed = await crud.get_password_hash(db, report_id)
    except DBAPIError as e:
        raise database.backend.translate(e, "비밀번호 확인 중 오류가 발생했습니다") from e

    if hashed is None:
        dummy = await asyncio.to_thread(_dummy_hash, rounds)
        await asyncio.to_thread(verify_password, password, dummy)
        return False
    return await asyncio.to_thread(verify_password, password, hashed)


async def require_report_password(
    database: Database, report_id: str, password: str, rounds: int = DEFAULT_ROUNDS,
) -> None:
    """Raise UnauthorizedError unless ``password`` unlocks the report.

    Wrong password and unknown report are reported the same way.
    """
    if not await verify_report_password(database, report_id, password, rounds):
        logger.info(f"Password check failed for report {report_id}")
        raise UnauthorizedError()
