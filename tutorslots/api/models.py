"""Request bodies for the scheduling API.

Requests are pydantic models with camelCase aliases that reject unknown fields; responses are
msgspec structs encoded by the route helpers.
"""

from __future__ import annotations

import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator, model_validator
from pydantic.alias_generators import to_camel

from tutorslots.scheduling.errors import SchedulingError
from tutorslots.scheduling.models import SlotRequest
from tutorslots.scheduling.penalty_codes import PenaltyCode
from tutorslots.scheduling.time_rules import MAX_BULK_SLOTS, parse_slot_time


def _time_of_day(raw: object) -> datetime.time:
  """Accept `HH:MM` or `h:MM AM/PM` and surface parse failures as validation errors."""
  if not isinstance(raw, str | datetime.time):
    raise ValueError("time must be a string like 14:30 or 2:30 PM")
  try:
    return parse_slot_time(raw)
  except SchedulingError as exc:
    raise ValueError(exc.message) from exc


class CamelModel(BaseModel):
  """Request payloads use camelCase on the wire and reject unknown keys."""

  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class SlotInput(CamelModel):
  date: datetime.date
  time: datetime.time

  @field_validator("time", mode="before")
  @classmethod
  def _parse_time(cls, value: object) -> datetime.time:
    return _time_of_day(value)

  def to_request(self) -> SlotRequest:
    return SlotRequest(slot_date=self.date, slot_time=self.time)


class OpenSlotsRequest(CamelModel):
  slots: list[SlotInput] = Field(min_length=1, max_length=MAX_BULK_SLOTS)
  skip_existing: bool = Field(default=False, description="Skip slots that already exist instead of failing the batch.")


class CloseSlotsRequest(CamelModel):
  slot_ids: list[StrictStr] = Field(min_length=1, max_length=MAX_BULK_SLOTS)


class BulkOpenRequest(CamelModel):
  start_date: datetime.date
  end_date: datetime.date
  times: list[datetime.time] = Field(min_length=1)
  days_of_week: list[int] | None = Field(default=None, description="Days to include, 0=Sunday .. 6=Saturday. Omitted means every day.")

  @field_validator("times", mode="before")
  @classmethod
  def _parse_times(cls, value: object) -> list[datetime.time]:
    if not isinstance(value, list):
      raise ValueError("times must be a list")
    return [_time_of_day(item) for item in value]

  @model_validator(mode="after")
  def _check_range(self) -> BulkOpenRequest:
    if self.start_date > self.end_date:
      raise ValueError("startDate must not be after endDate")
    return self


class TemplateEntryInput(CamelModel):
  day_of_week: int = Field(ge=0, le=6)
  time: datetime.time

  @field_validator("time", mode="before")
  @classmethod
  def _parse_time(cls, value: object) -> datetime.time:
    return _time_of_day(value)


class TemplateRequest(CamelModel):
  entries: list[TemplateEntryInput] = Field(default_factory=list, max_length=7 * 24 * 4)


class ApplyTemplateRequest(CamelModel):
  start_date: datetime.date
  end_date: datetime.date


class AttendanceRequest(CamelModel):
  booking_id: StrictStr | None = None
  slot_id: StrictStr | None = None
  role: Literal["tutor", "student"] | None = None
  status: Literal["present", "absent"]

  @model_validator(mode="after")
  def _exactly_one_target(self) -> AttendanceRequest:
    if (self.booking_id is None) == (self.slot_id is None):
      raise ValueError("Provide exactly one of bookingId or slotId")
    return self


class BookSlotRequest(CamelModel):
  slot_id: StrictStr = Field(min_length=1)


class CancelBookingRequest(CamelModel):
  reason: StrictStr | None = Field(default=None, max_length=500)


class AssignPenaltyRequest(CamelModel):
  tutor_id: StrictStr = Field(min_length=1)
  code: PenaltyCode
  reason: StrictStr = Field(min_length=1, max_length=500)
  booking_id: StrictStr | None = None
  slot_id: StrictStr | None = None

  @field_validator("code", mode="before")
  @classmethod
  def _code_as_string(cls, value: object) -> object:
    # Clients commonly send the numeric form (301).
    if isinstance(value, int) and not isinstance(value, bool):
      return str(value)
    return value

  @field_validator("code")
  @classmethod
  def _not_block(cls, value: PenaltyCode) -> PenaltyCode:
    if value == PenaltyCode.PENALTY_BLOCK:
      raise ValueError("601 is applied automatically and cannot be assigned manually")
    return value


class AppealRequest(CamelModel):
  status: Literal["pending", "approved", "denied"]
