"""Internal sweep triggers for an external scheduler (cron, Cloud Scheduler)."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status

from tutorslots.api.deps import get_scheduling_services
from tutorslots.core.security import verify_task_secret
from tutorslots.services.factory import SchedulingServices

router = APIRouter(prefix="/tasks", tags=["tasks"], dependencies=[Depends(verify_task_secret)])
logger = logging.getLogger(__name__)


@router.post("/release-expired-blocks", status_code=status.HTTP_200_OK)
async def release_expired_blocks(services: Annotated[SchedulingServices, Depends(get_scheduling_services)]) -> dict[str, int]:
  released = await services.maintenance.release_expired_blocks()
  logger.info("Release-expired-blocks task finished released=%d", released)
  return {"released": released}


@router.post("/send-reminders", status_code=status.HTTP_200_OK)
async def send_due_reminders(services: Annotated[SchedulingServices, Depends(get_scheduling_services)]) -> dict[str, int]:
  result = await services.maintenance.send_due_reminders()
  # Parked penalty writes ride on the most frequent trigger.
  replayed = await services.maintenance.replay_pending_penalties()
  return {"fifteenMinute": result.fifteen_minute, "fiveMinute": result.five_minute, "total": result.total, "penaltiesReplayed": replayed}
