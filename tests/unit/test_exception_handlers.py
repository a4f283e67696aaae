"""Unit tests for API error payload sanitization."""

from __future__ import annotations

from tutorslots.core.exceptions import _error_payload, _sanitize_validation_errors
from tutorslots.scheduling.errors import LeadTimeError, SlotUnavailableError


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Validation errors stay JSON-serializable and never echo the request payload."""
  errors = [{"type": "value_error", "loc": ("body", "slots", 0, "time"), "msg": "Value error, Invalid time: '25:99'", "input": "25:99", "ctx": {"error": ValueError("Invalid time: '25:99'"), "input": "25:99"}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert sanitized[0]["ctx"]["error"] == "ValueError: Invalid time: '25:99'"
  assert "input" not in sanitized[0]["ctx"]
  assert sanitized[0]["loc"] == ["body", "slots", 0, "time"]


def test_domain_error_detail_carries_code_and_context() -> None:
  detail = LeadTimeError("Too soon", rule="book_lead_time", required_minutes=30).to_detail()
  assert detail["code"] == "lead_time_violation"
  assert detail["retryable"] is False
  assert detail["context"] == {"rule": "book_lead_time", "required_minutes": "30"}

  conflict = SlotUnavailableError("Slot is no longer open")
  assert conflict.status_code == 409
  assert "context" not in conflict.to_detail()


def test_error_payload_attaches_request_id() -> None:
  assert _error_payload("Internal Server Error", request_id="req-1") == {"detail": "Internal Server Error", "requestId": "req-1"}
  assert _error_payload("nope") == {"detail": "nope"}
