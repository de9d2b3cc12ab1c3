import pytest

from app.errors import NotFoundError, UnauthorizedError, ValidationError
from app.models import CAMPUSES, DESCRIPTION_MIN_LENGTH
from app.schemas.report import ReportCreate, ReportQuery, ReportUpdate
from app.services import empathy
from app.services import reports as report_service


def _fields(exc: ValidationError) -> set[str]:
    return {d["field"] for d in exc.details}


async def test_create_and_get(migrated, report_factory):
    report = await report_factory(problem_types=["WiFi 연결 끊김", "WiFi 신호 약함", "WiFi 연결 끊김"])
    assert report.id is not None
    assert report.empathy_count == 0
    assert report.problem_types == ["WiFi 연결 끊김", "WiFi 신호 약함"]
    assert not hasattr(report, "password_hash")

    fetched = await report_service.get_report(migrated, report.id)
    assert fetched is not None
    assert fetched.building == "공학관"
    assert fetched.problem_types == ["WiFi 연결 끊김", "WiFi 신호 약함"]


async def test_get_missing_report(migrated):
    assert await report_service.get_report(migrated, "no-such-report") is None


async def test_password_is_stored_hashed(migrated, report_factory):
    report = await report_factory(password="9876")
    row = await migrated.fetch_one("SELECT password_hash FROM reports WHERE id = :id", {"id": report.id})
    assert row["password_hash"] != "9876"
    assert row["password_hash"].startswith("$2b$")


async def test_create_validation_errors(migrated, settings):
    data = ReportCreate(
        campus="서울캠퍼스", building="  ", location="", problem_types=[],
        description="짧음", password="12ab",
    )
    with pytest.raises(ValidationError) as exc_info:
        await report_service.create_report(migrated, data, settings)
    assert _fields(exc_info.value) == {
        "campus", "building", "location", "problem_types", "description", "password",
    }


async def test_unknown_problem_type_rejected(migrated, report_factory):
    with pytest.raises(ValidationError) as exc_info:
        await report_factory(problem_types=["전원 문제"])
    assert _fields(exc_info.value) == {"problem_types"}


async def test_other_requires_custom_problem(migrated, report_factory):
    with pytest.raises(ValidationError) as exc_info:
        await report_factory(problem_types=["기타"], custom_problem="   ")
    assert _fields(exc_info.value) == {"custom_problem"}

    report = await report_factory(problem_types=["기타"], custom_problem="프린터 연결 안 됨")
    assert report.custom_problem == "프린터 연결 안 됨"


async def test_custom_problem_dropped_without_other(migrated, report_factory):
    report = await report_factory(custom_problem="무시되어야 함")
    assert report.custom_problem is None


async def test_list_sorting_filtering_and_paging(migrated, report_factory):
    a = await report_factory(building="공학관")
    b = await report_factory(building="도서관", campus="부산캠퍼스")
    c = await report_factory(building="공학관 별관")
    await empathy.add_empathy(migrated, b.id, "u1")
    await empathy.add_empathy(migrated, b.id, "u2")
    await empathy.add_empathy(migrated, a.id, "u1")

    by_empathy = await report_service.list_reports(migrated, ReportQuery(sort="empathy"))
    assert [r.id for r in by_empathy.reports] == [b.id, a.id, c.id]
    assert by_empathy.total == 3
    assert by_empathy.reports[0].empathy_count == 2

    gimhae = await report_service.list_reports(migrated, ReportQuery(campus="김해캠퍼스"))
    assert {r.id for r in gimhae.reports} == {a.id, c.id}

    everyone = await report_service.list_reports(migrated, ReportQuery(campus="all"))
    assert everyone.total == 3

    annex = await report_service.list_reports(migrated, ReportQuery(building="별관"))
    assert [r.id for r in annex.reports] == [c.id]

    page = await report_service.list_reports(migrated, ReportQuery(sort="empathy", page=2, limit=2))
    assert [r.id for r in page.reports] == [c.id]
    assert page.total_pages == 2
    assert page.limit == 2


async def test_update_with_password(migrated, report_factory, settings):
    report = await report_factory()
    await empathy.add_empathy(migrated, report.id, "u1")

    updated = await report_service.update_report(
        migrated, report.id,
        ReportUpdate(location="4층 복도", problem_types=["기타"], custom_problem="AP 전원 꺼짐", password="1234"),
        settings,
    )
    assert updated.location == "4층 복도"
    assert updated.problem_types == ["기타"]
    assert updated.custom_problem == "AP 전원 꺼짐"
    assert updated.building == report.building
    # Counter is untouched by edits
    assert updated.empathy_count == 1


async def test_update_validates_merged_record(migrated, report_factory, settings):
    report = await report_factory()
    with pytest.raises(ValidationError) as exc_info:
        await report_service.update_report(
            migrated, report.id, ReportUpdate(problem_types=["기타"], password="1234"), settings,
        )
    assert _fields(exc_info.value) == {"custom_problem"}


async def test_update_wrong_password(migrated, report_factory, settings):
    report = await report_factory()
    with pytest.raises(UnauthorizedError):
        await report_service.update_report(
            migrated, report.id, ReportUpdate(location="다른 곳", password="0000"), settings,
        )
    assert (await report_service.get_report(migrated, report.id)).location == report.location


async def test_update_missing_report_is_unauthorized(migrated, settings):
    with pytest.raises(UnauthorizedError):
        await report_service.update_report(
            migrated, "no-such-report", ReportUpdate(location="x", password="1234"), settings,
        )


async def test_update_without_changes_returns_current(migrated, report_factory, settings):
    report = await report_factory()
    same = await report_service.update_report(migrated, report.id, ReportUpdate(password="1234"), settings)
    assert same.id == report.id
    assert same.description == report.description


async def test_delete(migrated, report_factory, settings):
    report = await report_factory()
    with pytest.raises(UnauthorizedError):
        await report_service.delete_report(migrated, report.id, "0000", settings)

    await report_service.delete_report(migrated, report.id, "1234", settings)
    assert await report_service.get_report(migrated, report.id) is None

    with pytest.raises(UnauthorizedError):
        await report_service.delete_report(migrated, report.id, "1234", settings)


async def test_delete_race_reports_not_found(migrated, report_factory, settings, monkeypatch):
    """Report vanishes between the password check and the delete."""
    report = await report_factory()

    async def passes(*args, **kwargs):
        return None

    monkeypatch.setattr(report_service, "require_report_password", passes)
    await report_service.delete_report(migrated, report.id, "1234", settings)
    with pytest.raises(NotFoundError):
        await report_service.delete_report(migrated, report.id, "1234", settings)


async def test_every_valid_campus_is_accepted_by_the_store(migrated, report_factory):
    for campus in CAMPUSES:
        report = await report_factory(campus=campus)
        assert report.campus == campus


async def test_description_length_boundary(migrated, report_factory):
    shortest = "가" * DESCRIPTION_MIN_LENGTH
    report = await report_factory(description=shortest)
    assert report.description == shortest

    with pytest.raises(ValidationError) as exc_info:
        await report_factory(description="가" * (DESCRIPTION_MIN_LENGTH - 1))
    assert _fields(exc_info.value) == {"description"}


async def test_unknown_campus_is_a_validation_error(migrated, report_factory):
    with pytest.raises(ValidationError) as exc_info:
        await report_factory(campus="서울캠퍼스")
    assert _fields(exc_info.value) == {"campus"}
