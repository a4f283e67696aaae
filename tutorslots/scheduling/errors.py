"""Error taxonomy for slot, booking, attendance and compliance operations."""

from __future__ import annotations

from typing import Any


class SchedulingError(Exception):
  """Base class for failures surfaced to callers of the scheduling engine."""

  status_code = 400
  code = "scheduling_error"
  retryable = False

  def __init__(self, message: str, **context: Any) -> None:
    super().__init__(message)
    self.message = message
    self.context = context

  def to_detail(self) -> dict[str, Any]:
    """Return a client-facing description of the violated rule."""
    detail: dict[str, Any] = {"code": self.code, "message": self.message, "retryable": self.retryable}
    if self.context:
      detail["context"] = {key: str(value) for key, value in self.context.items()}
    return detail


class ScheduleValidationError(SchedulingError):
  """Client-correctable input or timing problem."""

  status_code = 400
  code = "validation_error"


class LeadTimeError(ScheduleValidationError):
  """Raised when an instant is too close to now for the requested operation."""

  code = "lead_time_violation"

  def __init__(self, message: str, *, rule: str, required_minutes: int, **context: Any) -> None:
    super().__init__(message, rule=rule, required_minutes=required_minutes, **context)
    self.rule = rule
    self.required_minutes = required_minutes


class BatchTooLargeError(ScheduleValidationError):
  code = "batch_too_large"


class InvalidScheduleInputError(ScheduleValidationError):
  code = "invalid_input"


class ScheduleConflictError(SchedulingError):
  """State changed underneath the caller; retry against fresh state."""

  status_code = 409
  code = "conflict"
  retryable = True


class SlotUnavailableError(ScheduleConflictError):
  code = "slot_unavailable"


class SlotBookedError(ScheduleConflictError):
  code = "slot_booked"


class SlotExistsError(ScheduleConflictError):
  code = "slot_exists"


class BookingResolvedError(ScheduleConflictError):
  code = "booking_resolved"


class DoubleBookingError(ScheduleConflictError):
  code = "double_booking"


class ScheduleNotFoundError(SchedulingError):
  """Unknown identifier, or an identifier owned by someone else."""

  status_code = 404
  code = "not_found"


class SlotNotFoundError(ScheduleNotFoundError):
  code = "slot_not_found"


class BookingNotFoundError(ScheduleNotFoundError):
  code = "booking_not_found"


class TemplateNotFoundError(ScheduleNotFoundError):
  code = "template_not_found"


class PenaltyNotFoundError(ScheduleNotFoundError):
  code = "penalty_not_found"


class TutorBlockedError(SchedulingError):
  """Raised when a tutor under an active compliance block tries to take on new sessions."""

  status_code = 403
  code = "tutor_blocked"


class AttendanceRoleError(SchedulingError):
  """Raised when a session party tries to mark the other party's attendance."""

  status_code = 403
  code = "attendance_role_forbidden"
