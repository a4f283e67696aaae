"""Schema package exports."""

from .scheduling import Booking, PenaltyRecordRow, TimeSlot, TutorCompliance, WeeklyTemplateEntryRow

__all__ = ["Booking", "PenaltyRecordRow", "TimeSlot", "TutorCompliance", "WeeklyTemplateEntryRow"]
