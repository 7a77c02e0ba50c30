"""Error taxonomy for the ledger engine.

Every rejected operation maps to exactly one ErrorCode. Domain engines
raise a LedgerError subclass; the service facade converts it into a
failed ServiceResult carrying the same code. Errors are always raised
before the first staged write of an operation, so a failure never leaves
partial state behind.
"""

from __future__ import annotations

import enum


class ErrorCode(str, enum.Enum):
    """Stable failure codes exposed to callers."""
    NOT_INITIALIZED = "not_initialized"
    ALREADY_INITIALIZED = "already_initialized"
    NOT_AUTHORIZED = "not_authorized"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    ALREADY_AWARDED = "already_awarded"
    ALREADY_JOINED = "already_joined"
    NOT_JOINED = "not_joined"
    NOT_ACTIVE = "not_active"
    ALREADY_FINALIZED = "already_finalized"
    INVALID_INPUT = "invalid_input"
    INVALID_AMOUNT = "invalid_amount"


class LedgerError(Exception):
    """Base class for all typed engine failures."""

    code: ErrorCode = ErrorCode.INVALID_INPUT

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code.value)
        self.message = message or self.code.value


class NotInitializedError(LedgerError):
    code = ErrorCode.NOT_INITIALIZED


class AlreadyInitializedError(LedgerError):
    code = ErrorCode.ALREADY_INITIALIZED


class NotAuthorizedError(LedgerError):
    code = ErrorCode.NOT_AUTHORIZED


class MissingAuthorizationError(NotAuthorizedError):
    """The caller supplied no authorization proof at all."""


class NotFoundError(LedgerError):
    code = ErrorCode.NOT_FOUND


class AlreadyExistsError(LedgerError):
    code = ErrorCode.ALREADY_EXISTS


class AlreadyAwardedError(LedgerError):
    code = ErrorCode.ALREADY_AWARDED


class AlreadyJoinedError(LedgerError):
    code = ErrorCode.ALREADY_JOINED


class NotJoinedError(LedgerError):
    code = ErrorCode.NOT_JOINED


class NotActiveError(LedgerError):
    code = ErrorCode.NOT_ACTIVE


class AlreadyFinalizedError(LedgerError):
    code = ErrorCode.ALREADY_FINALIZED


class InvalidInputError(LedgerError):
    code = ErrorCode.INVALID_INPUT


class InvalidAmountError(LedgerError):
    code = ErrorCode.INVALID_AMOUNT
