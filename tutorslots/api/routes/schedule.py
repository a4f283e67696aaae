"""Tutor schedule management: opening and closing slots, templates and attendance."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from starlette.responses import Response

from tutorslots.api.deps import get_scheduling_services
from tutorslots.api.models import ApplyTemplateRequest, AttendanceRequest, BulkOpenRequest, CloseSlotsRequest, OpenSlotsRequest, TemplateRequest
from tutorslots.api.msgspec_utils import encode_msgspec_response
from tutorslots.core.security import Actor, require_role
from tutorslots.scheduling.errors import InvalidScheduleInputError
from tutorslots.services.factory import SchedulingServices

router = APIRouter()
logger = logging.getLogger(__name__)

TutorActor = Annotated[Actor, Depends(require_role("tutor"))]
Services = Annotated[SchedulingServices, Depends(get_scheduling_services)]


@router.post("/slots/open", status_code=status.HTTP_201_CREATED)
async def open_slots(payload: OpenSlotsRequest, actor: TutorActor, services: Services) -> Response:
  """Open one or more slots; the whole batch fails if any slot is too soon or already taken."""
  opened = await services.slots.open_slots(actor.actor_id, [slot.to_request() for slot in payload.slots], skip_existing=payload.skip_existing)
  return encode_msgspec_response({"slots": opened, "count": len(opened)}, status_code=status.HTTP_201_CREATED)


@router.post("/slots/close")
async def close_slots(payload: CloseSlotsRequest, actor: TutorActor, services: Services) -> Response:
  closed = await services.slots.close_slots(actor.actor_id, payload.slot_ids)
  return encode_msgspec_response({"slots": closed, "count": len(closed)})


@router.post("/slots/bulk-open", status_code=status.HTTP_201_CREATED)
async def bulk_open_slots(payload: BulkOpenRequest, actor: TutorActor, services: Services) -> Response:
  opened = await services.slots.bulk_open_slots(actor.actor_id, payload.start_date, payload.end_date, payload.times, payload.days_of_week)
  return encode_msgspec_response({"slots": opened, "count": len(opened)}, status_code=status.HTTP_201_CREATED)


@router.delete("/slots/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_open_slot(slot_id: str, actor: TutorActor, services: Services) -> Response:
  await services.slots.delete_open_slot(actor.actor_id, slot_id)
  return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/week")
async def get_tutor_week(actor: TutorActor, services: Services, week_offset: Annotated[int, Query(alias="weekOffset", ge=-52, le=52)] = 0) -> Response:
  week = await services.slots.get_tutor_week(actor.actor_id, week_offset)
  return encode_msgspec_response(week)


@router.put("/template")
async def save_weekly_template(payload: TemplateRequest, actor: TutorActor, services: Services) -> Response:
  entries = await services.slots.save_weekly_template(actor.actor_id, [(entry.day_of_week, entry.time) for entry in payload.entries])
  return encode_msgspec_response({"entries": entries})


@router.get("/template")
async def get_weekly_template(actor: TutorActor, services: Services) -> Response:
  entries = await services.slots.get_weekly_template(actor.actor_id)
  return encode_msgspec_response({"entries": entries})


@router.post("/template/apply", status_code=status.HTTP_201_CREATED)
async def apply_template(payload: ApplyTemplateRequest, actor: TutorActor, services: Services) -> Response:
  opened = await services.slots.apply_template(actor.actor_id, payload.start_date, payload.end_date)
  return encode_msgspec_response({"slots": opened, "count": len(opened)}, status_code=status.HTTP_201_CREATED)


@router.post("/attendance")
async def mark_attendance(payload: AttendanceRequest, actor: Annotated[Actor, Depends(require_role("tutor", "student", "operator"))], services: Services) -> Response:
  """Record presence or absence for a booking or an unbooked slot; absences raise penalties.

  Tutors and students mark their own side, so `role` defaults to the caller's role. Operators name the party.
  """
  if actor.is_operator:
    if payload.role is None:
      raise InvalidScheduleInputError("Operators must name the party being marked")
    role = payload.role
  else:
    role = payload.role or actor.role
  result = await services.attendance.mark_attendance(actor_id=actor.actor_id, role=role, status=payload.status, booking_id=payload.booking_id, slot_id=payload.slot_id, is_operator=actor.is_operator)
  return encode_msgspec_response(result)
