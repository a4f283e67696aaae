"""Compliance endpoints: penalty summaries, manual ledger entries and appeal decisions."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from starlette.responses import Response

from tutorslots.api.deps import get_scheduling_services
from tutorslots.api.models import AppealRequest, AssignPenaltyRequest
from tutorslots.api.msgspec_utils import encode_msgspec_response
from tutorslots.core.security import Actor, get_current_actor, require_role
from tutorslots.services.factory import SchedulingServices

router = APIRouter()
logger = logging.getLogger(__name__)

OperatorActor = Annotated[Actor, Depends(require_role("operator"))]
Services = Annotated[SchedulingServices, Depends(get_scheduling_services)]


@router.get("/tutors/{tutor_id}/summary")
async def get_penalty_summary(tutor_id: str, actor: Annotated[Actor, Depends(get_current_actor)], services: Services) -> Response:
  """Penalty counts, block state and recent entries; visible to operators and the tutor themself."""
  if not actor.is_operator and not (actor.role == "tutor" and actor.actor_id == tutor_id):
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to view this tutor's compliance summary.")
  summary = await services.compliance.get_penalty_summary(tutor_id)
  return encode_msgspec_response(summary)


@router.post("/penalties", status_code=status.HTTP_201_CREATED)
async def assign_penalty(payload: AssignPenaltyRequest, actor: OperatorActor, services: Services) -> Response:
  record = await services.penalties.assign_penalty(tutor_id=payload.tutor_id, code=payload.code, reason=payload.reason, booking_id=payload.booking_id, slot_id=payload.slot_id)
  logger.info("Manual penalty recorded by operator_id=%s penalty_id=%s", actor.actor_id, record.penalty_id)
  return encode_msgspec_response(record, status_code=status.HTTP_201_CREATED)


@router.patch("/penalties/{penalty_id}/appeal")
async def set_appeal_status(penalty_id: str, payload: AppealRequest, actor: OperatorActor, services: Services) -> Response:
  record = await services.penalties.set_appeal_status(penalty_id, payload.status)
  return encode_msgspec_response(record)
