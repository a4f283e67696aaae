from . import bookings, compliance, schedule, tasks

__all__ = ["bookings", "compliance", "schedule", "tasks"]
