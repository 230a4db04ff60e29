from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class ErrorCode(str, Enum):
    OWNER_REQUIRED = "OWNER_REQUIRED"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    NO_SPLITS = "NO_SPLITS"
    BUDGET_NOT_FOUND = "BUDGET_NOT_FOUND"
    BUDGET_OWNER_MISMATCH = "BUDGET_OWNER_MISMATCH"
    BUDGET_STILL_ACTIVE = "BUDGET_STILL_ACTIVE"
    PERIOD_NOT_FOUND = "PERIOD_NOT_FOUND"
    CALENDAR_NOT_GENERATED = "CALENDAR_NOT_GENERATED"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"


class ErrorDetail(BaseModel):
    code: ErrorCode
    message: str


class BudgetEngineError(Exception):
    """Base error carrying a machine-readable code."""

    code: ErrorCode = ErrorCode.PERSISTENCE_ERROR

    def __init__(self, message: str, code: ErrorCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_detail(self) -> ErrorDetail:
        return ErrorDetail(code=self.code, message=self.message)


class InvalidAmountError(BudgetEngineError, ValueError):
    code = ErrorCode.INVALID_AMOUNT


class CalendarCoverageError(BudgetEngineError):
    code = ErrorCode.CALENDAR_NOT_GENERATED


class PeriodNotFoundError(BudgetEngineError, LookupError):
    code = ErrorCode.PERIOD_NOT_FOUND
