"""Error taxonomy and the shared error envelope.

Every failure the queue core can report is a `QueueError` subclass carrying a
stable `code`. The server turns them into the same wire envelope so clients
see consistent error messages.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ErrorResponse:
    code: str
    message: str

    def to_message(self, *, corr_id: str | None = None) -> dict[str, Any]:
        msg: dict[str, Any] = {"type": "error", "code": self.code, "message": self.message}
        if corr_id is not None:
            msg["corr_id"] = corr_id
        return msg


class QueueError(Exception):
    """Base class for typed queue failures."""

    code = "queue_error"
    default_message = "Queue operation failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(self.code, self.message)


class DuplicateEntry(QueueError):
    code = "duplicate_entry"
    default_message = "Already in queue"


class NotFound(QueueError):
    code = "not_found"
    default_message = "Queue entry not found"


class InvalidTransition(QueueError):
    code = "invalid_transition"
    default_message = "Entry is no longer waiting"


class NotAuthorized(QueueError):
    code = "not_authorized"
    # Generic on purpose: never say whose entry it was.
    default_message = "Not authorized"


class EmptyQueue(QueueError):
    code = "empty_queue"
    default_message = "No customers waiting"


class VendorClosed(QueueError):
    code = "vendor_closed"
    default_message = "Vendor is not accepting customers right now"


class VendorNotFound(QueueError):
    code = "vendor_not_found"
    default_message = "Vendor not found"


class EstimationUnavailable(QueueError):
    """Raised by estimation helpers; callers fall back to the heuristic."""

    code = "estimation_unavailable"
    default_message = "Wait time estimate unavailable"


class SlotUnavailable(QueueError):
    code = "slot_unavailable"
    default_message = "Time slot already booked"


class LedgerIntegrityError(QueueError):
    """Waiting positions are not exactly 1..N."""

    code = "ledger_integrity"
    default_message = "Queue positions are inconsistent"
