"""In-process periodic runner for the maintenance sweeps.

Production deployments trigger the sweeps through the internal task endpoints from an
external scheduler; this runner covers local development and single-node installs.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from tutorslots.services.maintenance import MaintenanceService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepSpec:
  name: str
  interval_seconds: float
  run: Callable[[], Awaitable[object]]


class PeriodicSweeper:
  def __init__(self, specs: list[SweepSpec]) -> None:
    self._specs = specs
    self._tasks: list[asyncio.Task[None]] = []
    self._stopping = asyncio.Event()

  @property
  def running(self) -> bool:
    return any(not task.done() for task in self._tasks)

  def start(self) -> None:
    if self._tasks:
      return
    self._stopping.clear()
    for spec in self._specs:
      self._tasks.append(asyncio.create_task(self._loop(spec), name=f"sweep:{spec.name}"))
    logger.info("Periodic sweeps started: %s", ", ".join(f"{spec.name}@{spec.interval_seconds:g}s" for spec in self._specs))

  async def stop(self) -> None:
    self._stopping.set()
    for task in self._tasks:
      task.cancel()
    await asyncio.gather(*self._tasks, return_exceptions=True)
    self._tasks.clear()
    logger.info("Periodic sweeps stopped")

  async def _loop(self, spec: SweepSpec) -> None:
    while not self._stopping.is_set():
      try:
        await spec.run()
      except asyncio.CancelledError:
        raise
      except Exception as exc:  # noqa: BLE001
        # A failed pass is retried on the next tick.
        logger.error("Sweep failed name=%s error=%s", spec.name, exc, exc_info=True)
      try:
        await asyncio.wait_for(self._stopping.wait(), timeout=spec.interval_seconds)
      except TimeoutError:
        continue


def build_sweeper(maintenance: MaintenanceService, *, unblock_interval_seconds: float, reminder_interval_seconds: float) -> PeriodicSweeper:
  async def _housekeeping() -> None:
    await maintenance.sweep_cache()
    await maintenance.replay_pending_penalties()

  return PeriodicSweeper(
    [
      SweepSpec(name="release_expired_blocks", interval_seconds=unblock_interval_seconds, run=maintenance.release_expired_blocks),
      SweepSpec(name="send_due_reminders", interval_seconds=reminder_interval_seconds, run=maintenance.send_due_reminders),
      SweepSpec(name="housekeeping", interval_seconds=reminder_interval_seconds, run=_housekeeping),
    ]
  )
