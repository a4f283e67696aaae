from __future__ import annotations

from fastapi import HTTPException, Request, status

from tutorslots.services.factory import SchedulingServices


def get_scheduling_services(request: Request) -> SchedulingServices:
  """Return the process-wide service graph built by the lifespan."""
  services: SchedulingServices | None = getattr(request.app.state, "services", None)
  if services is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Scheduling services are not initialized.")
  return services
