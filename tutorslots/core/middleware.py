import logging
import re
import time
import uuid
from typing import Any

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger("tutorslots.core.middleware")

_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{8,64}$")
_STRIPPED_RESPONSE_HEADERS = ("server", "x-powered-by")


def _request_id_for(headers: Headers) -> str:
  """Reuse a well-formed upstream request id so gateway and service logs line up."""
  inbound = headers.get("x-request-id", "")
  if _REQUEST_ID_PATTERN.match(inbound):
    return inbound
  return uuid.uuid4().hex


class RequestLoggingMiddleware:
  """One access line per HTTP request with actor role, status and latency."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    headers = Headers(scope=scope)
    request_id = _request_id_for(headers)
    scope.setdefault("state", {})["request_id"] = request_id
    role = headers.get("x-actor-role", "-").strip().lower() or "-"
    method = scope.get("method", "?")
    path = scope.get("path", "")
    started = time.perf_counter()
    status_code = 0

    async def send_with_request_id(message: dict[str, Any]) -> None:
      nonlocal status_code
      if message["type"] == "http.response.start":
        status_code = message["status"]
        MutableHeaders(scope=message)["x-request-id"] = request_id
      await send(message)

    try:
      await self.app(scope, receive, send_with_request_id)
    finally:
      elapsed_ms = (time.perf_counter() - started) * 1000
      level = logging.WARNING if status_code >= 500 or status_code == 0 else logging.INFO
      logger.log(level, "%s %s status=%s role=%s request_id=%s took=%.1fms", method, path, status_code, role, request_id, elapsed_ms)


class SecurityHeadersMiddleware:
  """Drop server fingerprinting headers and disable MIME sniffing."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    async def send_hardened(message: dict[str, Any]) -> None:
      if message["type"] == "http.response.start":
        headers = MutableHeaders(scope=message)
        for name in _STRIPPED_RESPONSE_HEADERS:
          if name in headers:
            del headers[name]
        headers["x-content-type-options"] = "nosniff"
      await send(message)

    await self.app(scope, receive, send_hardened)
