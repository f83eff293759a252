from __future__ import annotations

from typing import Any

from fastapi import HTTPException


class BookingError(HTTPException):
    """Base class for booking-engine rejections.

    Subclasses carry the HTTP status so routes can let them propagate
    unchanged; non-HTTP callers (watcher, CLI) read `message` instead.
    """

    status_code_default = 400
    code = "BOOKING_ERROR"

    def __init__(self, message: str, *, detail: Any = None) -> None:
        self.message = message
        super().__init__(status_code=self.status_code_default, detail=detail if detail is not None else message)


class BookingValidationError(BookingError):
    code = "VALIDATION"


class BookingForbidden(BookingError):
    status_code_default = 403
    code = "FORBIDDEN"


class BookingNotFound(BookingError):
    status_code_default = 404
    code = "NOT_FOUND"


class QuotaExceeded(BookingError):
    code = "QUOTA_EXCEEDED"

    def __init__(self, message: str, *, user_id: str, user_label: str, limit: int) -> None:
        self.user_id = user_id
        self.user_label = user_label
        self.limit = limit
        super().__init__(message, detail={"code": self.code, "message": message, "user_id": user_id, "user": user_label, "limit": limit})


class RequestLimitExceeded(BookingError):
    status_code_default = 429
    code = "REQUEST_LIMIT"


class SlotConflict(BookingError):
    status_code_default = 409
    code = "SLOT_CONFLICT"

    def __init__(self, message: str, *, slot: str, occupant: str | None = None) -> None:
        self.slot = slot
        self.occupant = occupant
        super().__init__(message, detail={"code": self.code, "message": message, "slot": slot, "occupant": occupant})


class InvalidTransition(BookingError):
    code = "INVALID_TRANSITION"

    def __init__(self, message: str, *, current_status: str | None = None, target_status: str | None = None) -> None:
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(message)


class ReplacementRequired(BookingError):
    """Requester is at quota but every booking holding the quota is still pending."""

    status_code_default = 409
    code = "REQUIRES_CONFIRMATION"

    def __init__(self, message: str, *, existing_bookings: list[dict], new_booking: dict) -> None:
        self.existing_bookings = existing_bookings
        self.new_booking = new_booking
        super().__init__(
            message,
            detail={
                "code": self.code,
                "message": message,
                "requires_confirmation": True,
                "existing_bookings": existing_bookings,
                "new_booking_data": new_booking,
            },
        )
