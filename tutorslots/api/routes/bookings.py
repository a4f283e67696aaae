"""Student booking endpoints: availability, booking, cancellation and personal stats."""

from __future__ import annotations

import datetime
import logging
from typing import Annotated

from fastapi import APIRouter, Body, Depends, Query, status
from starlette.responses import Response

from tutorslots.api.deps import get_scheduling_services
from tutorslots.api.models import BookSlotRequest, CancelBookingRequest
from tutorslots.api.msgspec_utils import encode_msgspec_response
from tutorslots.core.security import Actor, get_current_actor, require_role
from tutorslots.services.factory import SchedulingServices

router = APIRouter()
logger = logging.getLogger(__name__)

Services = Annotated[SchedulingServices, Depends(get_scheduling_services)]


@router.get("/available/{tutor_id}")
async def get_available_slots(
  tutor_id: str,
  actor: Annotated[Actor, Depends(get_current_actor)],
  services: Services,
  start_date: Annotated[datetime.date | None, Query(alias="startDate")] = None,
  end_date: Annotated[datetime.date | None, Query(alias="endDate")] = None,
) -> Response:
  """List bookable slots for a tutor; the range defaults to today through a week from today."""
  start, end = services.bookings.available_range(start_date, end_date)
  slots = await services.bookings.get_available_slots(tutor_id, start, end)
  return encode_msgspec_response({"tutorId": tutor_id, "startDate": start, "endDate": end, "slots": slots})


@router.post("", status_code=status.HTTP_201_CREATED)
async def book_slot(payload: BookSlotRequest, actor: Annotated[Actor, Depends(require_role("student"))], services: Services) -> Response:
  booking = await services.bookings.book_slot(actor.actor_id, payload.slot_id)
  return encode_msgspec_response(booking, status_code=status.HTTP_201_CREATED)


@router.get("/mine")
async def list_student_bookings(actor: Annotated[Actor, Depends(require_role("student"))], services: Services) -> Response:
  bookings = await services.bookings.list_student_bookings(actor.actor_id)
  return encode_msgspec_response({"bookings": bookings})


@router.get("/mine/stats")
async def get_student_stats(actor: Annotated[Actor, Depends(require_role("student"))], services: Services) -> Response:
  stats = await services.bookings.get_student_stats(actor.actor_id)
  return encode_msgspec_response(stats)


@router.post("/{booking_id}/cancel")
async def cancel_booking(booking_id: str, actor: Annotated[Actor, Depends(get_current_actor)], services: Services, payload: Annotated[CancelBookingRequest | None, Body()] = None) -> Response:
  reason = payload.reason if payload is not None else None
  booking = await services.bookings.cancel_booking(booking_id, actor_id=actor.actor_id, is_operator=actor.is_operator, reason=reason)
  return encode_msgspec_response(booking)


@router.post("/{booking_id}/complete")
async def complete_session(booking_id: str, actor: Annotated[Actor, Depends(require_role("tutor", "operator"))], services: Services) -> Response:
  booking = await services.bookings.complete_session(booking_id, actor_id=actor.actor_id, is_operator=actor.is_operator)
  return encode_msgspec_response(booking)
