"""Event publishers and the best-effort publish helper used by services."""

from __future__ import annotations

import logging

import msgspec

from tutorslots.notifications.contracts import DomainEvent, EventPublisher

logger = logging.getLogger(__name__)


class LoggingEventPublisher(EventPublisher):
  """Writes each event as a JSON log line for a downstream shipper to deliver."""

  async def publish(self, event: DomainEvent) -> None:
    body = msgspec.json.encode({"name": event.name, "occurredAt": event.occurred_at, "payload": event.payload}).decode("utf-8")
    logger.info("Domain event %s %s", event.name, body)


class NullEventPublisher(EventPublisher):
  """No-op publisher used when event delivery is disabled."""

  async def publish(self, event: DomainEvent) -> None:
    logger.debug("Event publishing disabled; dropping event=%s", event.name)


async def publish_safely(publisher: EventPublisher, event: DomainEvent) -> None:
  """Publish without letting a delivery failure fail the triggering operation."""
  try:
    await publisher.publish(event)
  except Exception as exc:  # noqa: BLE001
    logger.error("Domain event publish failed: event=%s error=%s", event.name, exc, exc_info=True)
