"""Caller identity from gateway headers and the shared secret guarding task endpoints."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Annotated, Literal

from fastapi import Depends, Header, HTTPException, status

from tutorslots.config import Settings, get_settings

logger = logging.getLogger(__name__)

ActorRole = Literal["tutor", "student", "operator"]
_ROLES: frozenset[str] = frozenset({"tutor", "student", "operator"})


@dataclass(frozen=True)
class Actor:
  """Authenticated caller as asserted by the upstream gateway."""

  actor_id: str
  role: ActorRole

  @property
  def is_operator(self) -> bool:
    return self.role == "operator"


async def get_current_actor(x_actor_id: Annotated[str | None, Header()] = None, x_actor_role: Annotated[str | None, Header()] = None) -> Actor:
  """Read the trusted identity headers; the service never authenticates users itself."""
  actor_id = (x_actor_id or "").strip()
  role = (x_actor_role or "").strip().lower()
  if not actor_id or role not in _ROLES:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing or invalid caller identity.")
  return Actor(actor_id=actor_id, role=role)  # type: ignore[arg-type]


def require_role(*roles: ActorRole):  # noqa: ANN201
  """Return a dependency that admits only callers holding one of `roles`."""

  async def _dependency(actor: Annotated[Actor, Depends(get_current_actor)]) -> Actor:
    if actor.role not in roles:
      logger.warning("Role check failed actor_id=%s role=%s required=%s", actor.actor_id, actor.role, ",".join(roles))
      raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role for this operation.")
    return actor

  return _dependency


async def verify_task_secret(settings: Annotated[Settings, Depends(get_settings)], authorization: str | None = Header(default=None), x_tutorslots_task_secret: str | None = Header(default=None)) -> None:
  """Admit internal sweep triggers that present the configured shared secret."""
  # Secure-by-default: without a configured secret the endpoints stay closed.
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  shared_secret_valid = secrets.compare_digest(x_tutorslots_task_secret or "", settings.task_secret)
  bearer_valid = secrets.compare_digest(authorization or "", f"Bearer {settings.task_secret}")
  if not shared_secret_valid and not bearer_valid:
    logger.warning("Unauthorized access attempt to an internal task endpoint")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")
