"""Domain error taxonomy.

Every error raised by the policy, scheduler, services and gateways derives
from FieldTrackError. The API layer renders them through a single exception
handler (see main.py), so services never build HTTP responses themselves.
"""

from typing import Optional


class FieldTrackError(Exception):
    """Base class for recoverable domain errors"""

    status_code = 400
    code = "error"
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None, *, slot_index: Optional[int] = None):
        self.message = message or self.default_message
        self.slot_index = slot_index
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code, "slotIndex": self.slot_index}


class ValidationError(FieldTrackError):
    code = "validation_error"
    default_message = "Invalid input"
    status_code = 422


class AuthError(FieldTrackError):
    code = "auth_error"
    default_message = "Invalid email id or password. Please try again."
    status_code = 401


class PermissionDenied(FieldTrackError):
    code = "permission_denied"
    default_message = "You do not have permission to perform this action"
    status_code = 403


class NotFound(FieldTrackError):
    code = "not_found"
    default_message = "Record not found"
    status_code = 404


# Scheduler errors are reported against the offending slot


class DuplicateDateError(FieldTrackError):
    code = "duplicate_date"
    default_message = "A time slot already exists for this date"
    status_code = 409


class InvalidRange(FieldTrackError):
    code = "invalid_range"
    default_message = "End time must be after start time"
    status_code = 422


class Locked(FieldTrackError):
    code = "locked"
    default_message = "This time slot is approved and cannot be modified"
    status_code = 423


class MissingSlot(FieldTrackError):
    code = "missing_slot"
    default_message = "Time slot is required"
    status_code = 422


class MissingStartTime(FieldTrackError):
    code = "missing_start_time"
    default_message = "Start time is required"
    status_code = 422


# Save-level failures


class CompressionError(FieldTrackError):
    code = "compression_error"
    default_message = "Failed to compress image"
    status_code = 422


class UploadError(FieldTrackError):
    code = "upload_error"
    default_message = "Failed to upload image"
    status_code = 502


class PersistenceError(FieldTrackError):
    code = "persistence_error"
    default_message = "Failed to save changes. Please try again."
    status_code = 503
