import pytest

from app.errors import UnauthorizedError
from app.services import auth
from app.services.auth import (
    hash_password, require_report_password, verify_password, verify_report_password, warm_dummy_hash,
)


def test_hash_is_one_way_and_salted():
    h1 = hash_password("1234", rounds=4)
    h2 = hash_password("1234", rounds=4)
    assert "1234" not in h1
    assert h1 != h2
    assert h1.startswith("$2b$04$")


def test_verify_password():
    hashed = hash_password("1234", rounds=4)
    assert verify_password("1234", hashed)
    assert not verify_password("4321", hashed)


def test_verify_against_malformed_hash():
    assert verify_password("1234", "not-a-bcrypt-hash") is False


async def test_verify_report_password(migrated, report_factory):
    report = await report_factory(password="2468")
    assert await verify_report_password(migrated, report.id, "2468", rounds=4) is True
    assert await verify_report_password(migrated, report.id, "1357", rounds=4) is False


async def test_verify_missing_report_is_false(migrated):
    assert await verify_report_password(migrated, "no-such-report", "1234", rounds=4) is False


async def test_gate_does_not_say_which_check_failed(migrated, report_factory):
    report = await report_factory(password="2468")

    with pytest.raises(UnauthorizedError) as wrong:
        await require_report_password(migrated, report.id, "0000", rounds=4)
    with pytest.raises(UnauthorizedError) as missing:
        await require_report_password(migrated, "no-such-report", "0000", rounds=4)

    assert wrong.value.to_dict() == missing.value.to_dict()


async def test_gate_passes_with_right_password(migrated, report_factory):
    report = await report_factory(password="2468")
    await require_report_password(migrated, report.id, "2468", rounds=4)


async def test_missing_report_check_hashes_nothing_once_warm(migrated, monkeypatch):
    await warm_dummy_hash(4)

    def no_hashing(*args, **kwargs):
        raise AssertionError("bcrypt.hashpw called during a password check")

    monkeypatch.setattr(auth.bcrypt, "hashpw", no_hashing)
    assert await verify_report_password(migrated, "no-such-report", "1234", rounds=4) is False
