import pytest
from pydantic import ValidationError

from app.schemas import EmpathyCount, EmpathyStatus, ReportCreate, ReportQuery, ReportRead, ReportUpdate


def test_report_create_valid():
    report = ReportCreate(
        campus="김해캠퍼스", building="공학관", location="301호",
        problem_types=["WiFi 연결 끊김"], description="자꾸 연결이 끊어집니다", password="1234",
    )
    assert report.custom_problem is None
    assert report.problem_types == ["WiFi 연결 끊김"]


def test_report_update_requires_password():
    with pytest.raises(ValidationError):
        ReportUpdate(building="도서관")


def test_report_read_has_no_password_field():
    assert "password_hash" not in ReportRead.model_fields
    assert "password" not in ReportRead.model_fields


def test_report_query_defaults():
    q = ReportQuery()
    assert q.sort == "latest"
    assert q.page == 1


def test_report_query_rejects_bad_page_and_sort():
    with pytest.raises(ValidationError):
        ReportQuery(page=0)
    with pytest.raises(ValidationError):
        ReportQuery(sort="oldest")


def test_empathy_count_cannot_be_negative():
    with pytest.raises(ValidationError):
        EmpathyCount(empathy_count=-1)


def test_empathy_status():
    status = EmpathyStatus(has_empathy=True, empathy_count=3)
    assert status.model_dump() == {"has_empathy": True, "empathy_count": 3}
