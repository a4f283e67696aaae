from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from tutorslots.api.routes import bookings, compliance, schedule, tasks
from tutorslots.config import get_settings
from tutorslots.core.exceptions import global_exception_handler, http_exception_handler, request_validation_exception_handler, scheduling_exception_handler
from tutorslots.core.lifespan import lifespan
from tutorslots.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from tutorslots.scheduling.errors import SchedulingError

settings = get_settings()

app = FastAPI(title="tutorslots", lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

app.add_middleware(
  CORSMiddleware,
  allow_origins=list(settings.allowed_origins),
  allow_credentials=True,
  allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
  allow_headers=["content-type", "authorization", "x-actor-id", "x-actor-role", "x-request-id"],
  expose_headers=["content-length", "x-request-id"],
)


# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(SchedulingError, scheduling_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Liveness check; does not touch the database."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(schedule.router, prefix="/v1/schedule", tags=["schedule"])
app.include_router(bookings.router, prefix="/v1/bookings", tags=["bookings"])
app.include_router(compliance.router, prefix="/v1/compliance", tags=["compliance"])
app.include_router(tasks.router, prefix="/internal", tags=["tasks"])
