import logging
from collections.abc import Mapping
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tutorslots.scheduling.errors import SchedulingError

logger = logging.getLogger("tutorslots.api.errors")

INTERNAL_ERROR_DETAIL = "Internal Server Error"


def _json_safe(value: Any) -> Any:
  """Reduce arbitrary error context to JSON primitives; exceptions become ``Type: message``."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, Mapping):
    return {str(key): _json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set | frozenset):
    return [_json_safe(item) for item in value]
  if isinstance(value, BaseException):
    return f"{type(value).__name__}: {value}" if str(value) else type(value).__name__
  return str(value)


def _error_payload(detail: Any, *, request_id: str | None = None) -> dict[str, Any]:
  payload: dict[str, Any] = {"detail": detail}
  if request_id:
    payload["requestId"] = request_id
  return payload


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Strip submitted values from pydantic errors so slot times and ids are never echoed back."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    entry = {key: value for key, value in error.items() if key not in ("input", "url")}
    if isinstance(entry.get("ctx"), Mapping):
      entry["ctx"] = {key: value for key, value in entry["ctx"].items() if key != "input"}
    sanitized.append(_json_safe(entry))
  return sanitized


def _respond(request: Request, status_code: int, detail: Any, *, headers: Mapping[str, str] | None = None) -> JSONResponse:
  request_id = getattr(request.state, "request_id", None)
  return JSONResponse(status_code=status_code, content=_error_payload(detail, request_id=request_id), headers=dict(headers) if headers else None)


async def scheduling_exception_handler(request: Request, exc: SchedulingError) -> JSONResponse:
  """Map a domain failure to its status; lost races are routine and logged at info."""
  level = logging.INFO if exc.retryable else logging.WARNING
  logger.log(level, "%s %s -> %s code=%s message=%s", request.method, request.url.path, exc.status_code, exc.code, exc.message)
  return _respond(request, exc.status_code, exc.to_detail())


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  errors = _sanitize_validation_errors(list(exc.errors()))
  logger.warning("%s %s -> 422 errors=%s", request.method, request.url.path, [(error.get("loc"), error.get("type")) for error in errors])
  return _respond(request, status.HTTP_422_UNPROCESSABLE_ENTITY, errors)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Pass 4xx details through and mask anything 5xx."""
  from tutorslots.config import get_settings

  if exc.status_code >= 500:
    logger.error("%s %s -> %s detail=%s", request.method, request.url.path, exc.status_code, exc.detail)
    return _respond(request, exc.status_code, INTERNAL_ERROR_DETAIL)

  if get_settings().log_http_4xx:
    logger.warning("%s %s -> %s detail=%s", request.method, request.url.path, exc.status_code, _json_safe(exc.detail))
  return _respond(request, exc.status_code, exc.detail, headers=exc.headers)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  logger.error("%s %s -> 500 unhandled %s", request.method, request.url.path, type(exc).__name__, exc_info=exc)
  return _respond(request, status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_DETAIL)
