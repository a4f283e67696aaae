"""Contracts for domain events emitted by the scheduling engine."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Any, Protocol

BOOKING_CREATED = "booking.created"
BOOKING_CANCELLED = "booking.cancelled"
BOOKING_COMPLETED = "booking.completed"
PENALTY_ASSIGNED = "penalty.assigned"
AUTO_BLOCK_APPLIED = "compliance.auto_block_applied"
BLOCK_RELEASED = "compliance.block_released"
SESSION_REMINDER = "session.reminder"


@dataclass(frozen=True)
class DomainEvent:
  """A fact about the schedule that external delivery channels may act on."""

  name: str
  payload: dict[str, Any]
  occurred_at: datetime.datetime = field(default_factory=lambda: datetime.datetime.now(datetime.UTC))


class EventPublishError(Exception):
  """Raised by publishers that fail to hand an event to their transport."""


class EventPublisher(Protocol):
  """Hands domain events to an external delivery collaborator."""

  async def publish(self, event: DomainEvent) -> None:
    """Publish one event."""
