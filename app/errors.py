"""Error taxonomy shared by the storage core and its callers.

Every error the core raises is an ``AppError``. Driver-specific failures are
translated into one of these kinds before they leave a service function, so
callers never need to know which storage engine is underneath.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    code = "SERVER_ERROR"
    status_code = 500
    default_message = "서버 내부 오류가 발생했습니다"

    def __init__(self, message: str | None = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self, include_details: bool = True) -> dict:
        error = {"code": self.code, "message": self.message}
        if include_details and self.details is not None:
            error["details"] = self.details
        return error


class ValidationError(AppError):
    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "입력 데이터가 올바르지 않습니다"


class UnauthorizedError(AppError):
    code = "UNAUTHORIZED"
    status_code = 401
    default_message = "비밀번호가 일치하지 않습니다"


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "요청한 리소스를 찾을 수 없습니다"


class DuplicateVoteError(AppError):
    code = "DUPLICATE_EMPATHY"
    status_code = 409
    default_message = "이미 공감하셨습니다"


class ServerError(AppError):
    pass


class CounterInvariantError(ServerError):
    """The denormalized empathy counter disagrees with the vote rows."""

    default_message = "공감 수가 일관되지 않습니다"


class MigrationError(AppError):
    """Fatal: the store could not be brought to the current schema."""

    code = "MIGRATION_ERROR"
    default_message = "데이터베이스 마이그레이션에 실패했습니다"

    def __init__(self, message: str | None = None, version: int | None = None, details: Any = None):
        super().__init__(message, details)
        self.version = version
