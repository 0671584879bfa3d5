from __future__ import annotations

from typing import Any

from fastapi import HTTPException


class DomainError(Exception):
    """
    Base for everything the services raise on purpose.

    `code` is a stable machine-readable identifier, `context` carries what an
    administrator needs to act on the failure (serial, ids, constraint).
    """

    code = "domain_error"
    status_code = 400
    public_message = "The request could not be processed."

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def admin_detail(self) -> dict:
        return {"code": self.code, "message": self.message, "context": self.context}

    def public_detail(self) -> dict:
        return {"code": self.code, "message": self.public_message}


class ValidationError(DomainError):
    code = "validation_error"
    status_code = 422

    # validation messages are written for end users already
    def public_detail(self) -> dict:
        return {"code": self.code, "message": self.message}


class NotFoundError(DomainError):
    code = "not_found"
    status_code = 404
    public_message = "Not found."


class ConflictError(DomainError):
    code = "conflict"
    status_code = 409
    public_message = "The request conflicts with the current state."


class AlreadyUsed(ConflictError):
    code = "already_used"
    public_message = "This serial number has already been registered."


class SerialBlocked(ConflictError):
    code = "serial_blocked"
    public_message = "This serial number cannot be registered."


class AlreadyExecuted(ConflictError):
    code = "already_executed"
    public_message = "The draw has already been executed."


class DuplicateSerial(ConflictError):
    code = "duplicate_serial"


class DuplicateCouponCode(ConflictError):
    code = "duplicate_coupon_code"


class InvalidTransition(ConflictError):
    code = "invalid_transition"


class IntegrityViolation(DomainError):
    """Internal invariant broken. Never corrected silently."""

    code = "integrity_violation"
    status_code = 500
    public_message = "Internal error."


def http_error(e: DomainError, *, public: bool = False) -> HTTPException:
    detail = e.public_detail() if public else e.admin_detail()
    return HTTPException(status_code=e.status_code, detail=detail)
