"""Report store: create, read, list, update and delete complaint reports.

Mutations go through the password gate first. The empathy counter column is
never written here; it belongs to the empathy ledger.
"""

from __future__ import annotations

import logging
import math
import re

from sqlalchemy.exc import DBAPIError

from app.config import ReportConfig, Settings, get_settings
from app.db import crud
from app.db.engine import Database
from app.errors import NotFoundError, ValidationError
from app.models.report import CAMPUSES, DESCRIPTION_MIN_LENGTH
from app.schemas.report import ReportCreate, ReportList, ReportQuery, ReportRead, ReportUpdate
from app.services.auth import hash_password_async, require_report_password

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = ("campus", "building", "location", "problem_types", "custom_problem", "description")


def _normalize(fields: dict, config: ReportConfig) -> dict:
    out = dict(fields)
    for key in ("building", "location", "description", "custom_problem"):
        if isinstance(out.get(key), str):
            out[key] = out[key].strip()

    problem_types = out.get("problem_types") or []
    # Drop repeats but keep the order the reporter picked them in
    out["problem_types"] = list(dict.fromkeys(problem_types))

    # Free-text problem only makes sense alongside the "other" choice
    custom = out.get("custom_problem") or None
    out["custom_problem"] = custom if config.other_problem_type in out["problem_types"] else None
    return out


def _validate(fields: dict, config: ReportConfig) -> list[dict]:
    errors = []

    if fields.get("campus") not in CAMPUSES:
        errors.append({"field": "campus", "message": "캠퍼스를 선택해주세요"})

    if not fields.get("building"):
        errors.append({"field": "building", "message": "건물명을 입력해주세요"})

    if not fields.get("location"):
        errors.append({"field": "location", "message": "상세 위치를 입력해주세요"})

    problem_types = fields.get("problem_types") or []
    if not problem_types:
        errors.append({"field": "problem_types", "message": "문제 유형을 선택해주세요"})
    else:
        unknown = [p for p in problem_types if p not in config.problem_types]
        if unknown:
            errors.append({
                "field": "problem_types",
                "message": f"알 수 없는 문제 유형입니다: {', '.join(unknown)}",
            })

    if config.other_problem_type in problem_types and not fields.get("custom_problem"):
        errors.append({"field": "custom_problem", "message": "기타 문제 내용을 입력해주세요"})

    if len(fields.get("description") or "") < DESCRIPTION_MIN_LENGTH:
        errors.append({
            "field": "description",
            "message": f"문제 설명을 {DESCRIPTION_MIN_LENGTH}자 이상 입력해주세요",
        })

    return errors


async def create_report(database: Database, data: ReportCreate, settings: Settings | None = None) -> ReportRead:
    settings = settings or get_settings()
    fields = _normalize(data.model_dump(exclude={"password"}), settings.report)

    errors = _validate(fields, settings.report)
    if not re.match(settings.report.password_pattern, data.password or ""):
        errors.append({"field": "password", "message": "4자리 숫자 비밀번호를 입력해주세요"})
    if errors:
        raise ValidationError(details=errors)

    password_hash = await hash_password_async(data.password, settings.bcrypt_rounds)
    try:
        async with database.transaction() as db:
            report = await crud.create_report(db, password_hash=password_hash, **fields)
            result = ReportRead.model_validate(report)
    except DBAPIError as e:
        raise database.backend.translate(e, "제보 저장 중 오류가 발생했습니다") from e

    logger.info(f"Report {result.id} created ({result.campus} / {result.building})")
    return result


async def get_report(database: Database, report_id: str) -> ReportRead | None:
    try:
        async with database.transaction(write=False) as db:
            report = await crud.get_report(db, report_id)
            return ReportRead.model_validate(report) if report else None
    except DBAPIError as e:
        raise database.backend.translate(e, "제보 조회 중 오류가 발생했습니다") from e


async def list_reports(
    database: Database, query: ReportQuery | None = None, settings: Settings | None = None,
) -> ReportList:
    settings = settings or get_settings()
    query = query or ReportQuery()
    limit = min(query.limit or settings.report.page_size, settings.report.max_page_size)
    offset = (query.page - 1) * limit

    try:
        async with database.transaction(write=False) as db:
            rows, total = await crud.list_reports(
                db, sort=query.sort, campus=query.campus, building=query.building,
                offset=offset, limit=limit,
            )
            reports = [ReportRead.model_validate(r) for r in rows]
    except DBAPIError as e:
        raise database.backend.translate(e, "제보 목록 조회 중 오류가 발생했습니다") from e

    return ReportList(
        reports=reports,
        total=total,
        page=query.page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 0,
    )


async def update_report(
    database: Database, report_id: str, data: ReportUpdate, settings: Settings | None = None,
) -> ReportRead:
    settings = settings or get_settings()
    await require_report_password(database, report_id, data.password, settings.bcrypt_rounds)

    changes = data.model_dump(exclude={"password"}, exclude_unset=True)
    try:
        async with database.transaction() as db:
            report = await crud.get_report(db, report_id)
            if report is None:
                raise NotFoundError("제보를 찾을 수 없습니다")

            if changes:
                current = {k: getattr(report, k) for k in _EDITABLE_FIELDS}
                fields = _normalize({**current, **changes}, settings.report)
                errors = _validate(fields, settings.report)
                if errors:
                    raise ValidationError(details=errors)

                updates = {k: v for k, v in fields.items() if getattr(report, k) != v}
                if updates:
                    report = await crud.update_report(db, report, **updates)
            result = ReportRead.model_validate(report)
    except DBAPIError as e:
        raise database.backend.translate(e, "제보 수정 중 오류가 발생했습니다") from e

    logger.info(f"Report {report_id} updated")
    return result


async def delete_report(
    database: Database, report_id: str, password: str, settings: Settings | None = None,
) -> None:
    """Delete a report and, through the foreign key, every empathy on it."""
    settings = settings or get_settings()
    await require_report_password(database, report_id, password, settings.bcrypt_rounds)

    try:
        async with database.transaction() as db:
            deleted = await crud.delete_report(db, report_id)
            if deleted == 0:
                raise NotFoundError("제보를 찾을 수 없습니다")
    except DBAPIError as e:
        raise database.backend.translate(e, "제보 삭제 중 오류가 발생했습니다") from e

    logger.info(f"Report {report_id} deleted")
