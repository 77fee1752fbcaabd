"""Typed operation results"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorCode(str, enum.Enum):
    NOT_FOUND = "NOT_FOUND"
    INTEGRATION_NOT_FOUND = "INTEGRATION_NOT_FOUND"
    INVALID_TYPE = "INVALID_TYPE"
    INACTIVE = "INACTIVE"
    SETTINGS_ERROR = "SETTINGS_ERROR"
    CONFIG_ERROR = "CONFIG_ERROR"
    SYNC_FAILED = "SYNC_FAILED"


# Failures that retrying cannot fix.
NON_RETRYABLE_CODES = frozenset({ErrorCode.NOT_FOUND, ErrorCode.INVALID_TYPE, ErrorCode.INACTIVE})


@dataclass(frozen=True)
class Result(Generic[T]):
    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    code: Optional[ErrorCode] = None

    @classmethod
    def ok(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: str, code: ErrorCode) -> "Result[T]":
        return cls(success=False, error=error, code=code)

    @property
    def retryable(self) -> bool:
        return not self.success and self.code not in NON_RETRYABLE_CODES
